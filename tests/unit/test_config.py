"""Unit tests for configuration loading and saving."""

from pathlib import Path

import pytest
import tomlkit

from ollama_completion.config import (
    CompletionConfig,
    get_config_path,
    load_config,
    load_config_or_default,
    save_config,
)
from ollama_completion.errors import ConfigError


class TestDefaults:
    """Test built-in defaults."""

    def test_default_tunables(self):
        config = CompletionConfig()
        assert config.commands_ttl == 2100
        assert config.models_ttl == 1800
        assert config.min_fetch_interval == 300
        assert config.lock_timeout == 1.0
        assert config.parser_bin == "/usr/local/bin/ollama-cmd-parser"

    def test_cache_dir_follows_xdg(self, tmp_path):
        assert CompletionConfig().cache_path == tmp_path / "xdg-cache" / "ollama-completion"

    def test_cache_path_is_expanded_path(self, tmp_path):
        config = CompletionConfig(cache_dir=str(tmp_path / "cache"))
        assert isinstance(config.cache_path, Path)
        assert config.cache_path == tmp_path / "cache"

    def test_missing_file_gives_defaults(self):
        assert load_config() == CompletionConfig()


class TestLoadConfig:
    """Test TOML loading and environment overrides."""

    def test_file_values(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('commands_ttl = 60\nfetch_timeout = 3\nollama_bin = "/opt/ollama"\n')

        config = load_config(path)

        assert config.commands_ttl == 60
        assert config.fetch_timeout == 3.0
        assert config.ollama_bin == "/opt/ollama"

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "alt.toml"
        path.write_text("models_ttl = 10\n")
        monkeypatch.setenv("OLLAMA_COMPLETION_CONFIG", str(path))

        assert get_config_path() == path
        assert load_config().models_ttl == 10

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text(f'cache_dir = "{tmp_path / "from-file"}"\n')
        monkeypatch.setenv("OLLAMA_COMPLETION_CACHE_DIR", str(tmp_path / "from-env"))
        monkeypatch.setenv("OLLAMA_COMPLETION_DEBUG", "1")

        config = load_config(path)

        assert config.cache_path == tmp_path / "from-env"
        assert config.debug is True

    @pytest.mark.parametrize(
        "content",
        [
            'commands_ttl = "long"\n',
            "debug = 1\n",
            "lock_timeout = -1\n",
            "no_such_key = 1\n",
            "cache_dir = 5\n",
            "not toml at all [\n",
        ],
    )
    def test_invalid_config_raises(self, tmp_path, content):
        path = tmp_path / "config.toml"
        path.write_text(content)

        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_config_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('commands_ttl = "long"\n')

        assert load_config_or_default(path).commands_ttl == 2100


class TestSaveConfig:
    """Test TOML writing with tomlkit."""

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "config.toml"
        config = CompletionConfig(cache_dir=tmp_path / "c", models_ttl=99)

        written = save_config(config, path)

        assert written == path
        assert load_config(path) == config

    def test_existing_comments_preserved(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("# my settings\nmodels_ttl = 5\n")

        save_config(CompletionConfig(models_ttl=7), path)

        text = path.read_text()
        assert "# my settings" in text
        assert tomlkit.parse(text)["models_ttl"] == 7

    def test_none_values_omitted(self, tmp_path):
        path = save_config(CompletionConfig(), tmp_path / "config.toml")
        assert "debug_log" not in tomlkit.parse(Path(path).read_text())
