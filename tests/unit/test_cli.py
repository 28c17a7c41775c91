"""
Unit tests for the ollama-completion command-line interface.

Test Coverage:
- complete: bash protocol output and failure isolation
- refresh / clear-cache / status against a temporary cache
- check and bash dependency gating
- config show / config init
"""

from unittest.mock import patch

import pytest
import tomlkit
from click.testing import CliRunner

from ollama_completion.cache.store import MODELS_KEY, MetadataStore, RefreshOutcome, RefreshResult
from ollama_completion.cli import format_completion, main
from ollama_completion.config import CompletionConfig
from ollama_completion.errors import MissingDependency
from ollama_completion.health import DependencyReport
from ollama_completion.resolver import Completion, CompletionKind


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, cache_dir):
    """Config file pointing at the temporary cache."""
    path = tmp_path / "config.toml"
    path.write_text(f'cache_dir = "{cache_dir}"\n')
    return path


def invoke(runner, config_file, *args):
    return runner.invoke(main, ["--config", str(config_file), *args])


class TestFormatCompletion:
    """Test bash protocol rendering."""

    def test_plain_lines(self):
        assert format_completion(CompletionKind.OBJECTS, ("a", "b")) == ["plain,a", "plain,b"]

    def test_paths(self):
        assert format_completion(CompletionKind.PATHS, ()) == ["file,"]


class TestCompleteCommand:
    """Test 'ollama-completion complete'."""

    @patch("ollama_completion.cli.CompletionEngine")
    def test_prints_candidates(self, mock_engine, runner, config_file):
        mock_engine.return_value.complete.return_value = Completion(
            CompletionKind.OBJECTS, ("llama3.1:latest", "mistral:7b")
        )

        result = invoke(runner, config_file, "complete", "--cword", "2", "--", "ollama", "run", "")

        assert result.exit_code == 0
        assert result.output == "plain,llama3.1:latest\nplain,mistral:7b\n"
        mock_engine.return_value.complete.assert_called_once_with(["ollama", "run", ""], 2)

    @patch("ollama_completion.cli.CompletionEngine")
    def test_flag_words_passed_through(self, mock_engine, runner, config_file):
        mock_engine.return_value.complete.return_value = Completion(CompletionKind.PATHS)

        result = invoke(runner, config_file, "complete", "--cword", "3", "--", "ollama", "create", "-f", "")

        assert result.output == "file,\n"
        mock_engine.return_value.complete.assert_called_once_with(["ollama", "create", "-f", ""], 3)

    @patch("ollama_completion.cli.CompletionEngine")
    def test_unexpected_error_prints_nothing(self, mock_engine, runner, config_file):
        mock_engine.return_value.complete.side_effect = RuntimeError("bug")

        result = invoke(runner, config_file, "complete", "--cword", "1", "--", "ollama", "")

        assert result.exit_code == 0
        assert result.output == ""

    def test_broken_config_still_completes(self, runner, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("commands_ttl = 'bad'\n")
        with patch("ollama_completion.cli.CompletionEngine") as mock_engine:
            mock_engine.return_value.complete.return_value = Completion(CompletionKind.COMMANDS, ("run",))
            result = invoke(runner, path, "complete", "--cword", "1", "--", "ollama", "r")

        assert result.output == "plain,run\n"


class TestCacheCommands:
    """Test refresh, clear-cache and status."""

    @pytest.mark.parametrize(
        "outcome,exit_code",
        [(RefreshOutcome.REFRESHED, 0), (RefreshOutcome.RATE_LIMITED, 0), (RefreshOutcome.FAILED, 1)],
    )
    @patch("ollama_completion.cli.CompletionEngine")
    def test_refresh(self, mock_engine, runner, config_file, outcome, exit_code):
        mock_engine.return_value.refresh_commands.return_value = RefreshResult(None, outcome)

        result = invoke(runner, config_file, "refresh", "--version", "0.3.12", "--force")

        assert result.exit_code == exit_code
        mock_engine.return_value.refresh_commands.assert_called_once_with("0.3.12", force=True)

    def test_clear_cache(self, runner, config_file, cache_dir):
        store = MetadataStore(CompletionConfig(cache_dir=cache_dir))
        store.put(MODELS_KEY, ["m"])
        store.record_fetch()

        result = invoke(runner, config_file, "clear-cache")

        assert result.exit_code == 0
        assert "Removed 2 cache file(s)" in result.output
        assert not list(cache_dir.iterdir())

    def test_status_table(self, runner, config_file, cache_dir):
        MetadataStore(CompletionConfig(cache_dir=cache_dir)).put(MODELS_KEY, ["m"])

        result = invoke(runner, config_file, "status")

        assert result.exit_code == 0
        assert "models" in result.output
        assert "fresh" in result.output

    def test_status_empty(self, runner, config_file):
        result = invoke(runner, config_file, "status")
        assert "Cache is empty" in result.output


class TestDependencyCommands:
    """Test check and bash registration gating."""

    @patch(
        "ollama_completion.cli.check_dependencies",
        return_value=DependencyReport(missing=["ollama - install from https://ollama.com"]),
    )
    def test_check_missing(self, _check, runner, config_file):
        result = invoke(runner, config_file, "check")
        assert result.exit_code == 1
        assert "ollama - install" in result.output

    @patch(
        "ollama_completion.cli.check_dependencies",
        return_value=DependencyReport(warnings=["ollama server not responding"]),
    )
    def test_check_ok_with_warning(self, _check, runner, config_file):
        result = invoke(runner, config_file, "check")
        assert result.exit_code == 0
        assert "Warning: ollama server not responding" in result.output

    @patch("ollama_completion.cli.require_dependencies", return_value=DependencyReport())
    def test_bash_script(self, _require, runner, config_file):
        result = invoke(runner, config_file, "bash")

        assert result.exit_code == 0
        assert "_ollama_completion()" in result.output
        assert "ollama-completion complete --cword" in result.output
        assert result.output.rstrip().endswith("complete -F _ollama_completion ollama")

    @patch(
        "ollama_completion.cli.require_dependencies",
        side_effect=MissingDependency(["ollama-cmd-parser"]),
    )
    def test_bash_refuses_partial_registration(self, _require, runner, config_file):
        result = invoke(runner, config_file, "bash")

        assert result.exit_code == 1
        assert "complete -F" not in result.output
        assert "ollama-cmd-parser" in result.output


class TestConfigCommands:
    """Test config show / init."""

    def test_show(self, runner, config_file, cache_dir):
        result = invoke(runner, config_file, "config", "show")

        assert result.exit_code == 0
        body = result.output.split("\n", 1)[1]
        assert tomlkit.parse(body)["cache_dir"] == str(cache_dir)

    def test_init_writes_defaults(self, runner, tmp_path):
        path = tmp_path / "new" / "config.toml"

        result = invoke(runner, path, "config", "init")

        assert result.exit_code == 0
        assert tomlkit.parse(path.read_text())["commands_ttl"] == 2100

    def test_init_refuses_overwrite(self, runner, config_file):
        result = invoke(runner, config_file, "config", "init")
        assert result.exit_code == 1
        assert "already exists" in result.output
