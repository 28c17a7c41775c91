"""
Shared test fixtures and configuration for ollama-completion tests.

This module provides common fixtures used across all test types:
- Isolated config/cache directories (never the real home)
- A sample metadata snapshot shaped like ollama-cmd-parser output
- A fake model provider for resolver tests
"""

import copy
from typing import Any

import pytest

from ollama_completion.config import CompletionConfig
from ollama_completion.models import MetadataSnapshot

# ============================================================================
# ENVIRONMENT FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point XDG dirs at tmp_path and clear ollama-completion overrides."""
    for var in ("OLLAMA_COMPLETION_CONFIG", "OLLAMA_COMPLETION_CACHE_DIR", "OLLAMA_COMPLETION_DEBUG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))


@pytest.fixture
def cache_dir(tmp_path):
    """Temporary cache directory."""
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path, cache_dir):
    """Config with a temporary cache and short lock timeouts."""
    return CompletionConfig(
        cache_dir=cache_dir,
        lock_timeout=0.3,
        lock_poll_interval=0.05,
        parser_bin=str(tmp_path / "ollama-cmd-parser"),
    )


# ============================================================================
# METADATA FIXTURES
# ============================================================================

SAMPLE_METADATA: dict[str, Any] = {
    "version": "0.3.12",
    "generator_info": {"version": "1.2.0"},
    "commands": {
        "run": {
            "usage": "run MODEL [PROMPT]",
            "args_rule": "MinimumNArgs",
            "min_args": 1,
            "max_args": -1,
            "short_desc": "Run a model",
            "flags": [
                {"name": "format", "type": "String", "description": "Response format"},
                {"name": "keepalive", "type": "String"},
                {"name": "verbose", "type": "Bool"},
                {"name": "insecure", "type": "Bool"},
                {"name": "nowordwrap", "type": "Bool"},
            ],
        },
        "create": {
            "usage": "create MODEL",
            "args_rule": "ExactArgs",
            "min_args": 1,
            "max_args": 1,
            "flags": [
                {"name": "file", "short": "f", "type": "StringP"},
                {"name": "quantize", "short": "q", "type": "StringP"},
                {"name": "license", "type": "String"},
                {"name": "modelfile", "type": "String"},
                {"name": "parameters", "type": "String"},
                {"name": "system", "type": "String"},
                {"name": "template", "type": "String"},
            ],
            "constraints": {
                "mutually_exclusive": [
                    ["license", "modelfile", "parameters", "system", "template"]
                ]
            },
        },
        "show": {
            "usage": "show MODEL",
            "min_args": 1,
            "max_args": 1,
            "flags": [
                {"name": "license", "type": "Bool"},
                {"name": "modelfile", "type": "Bool"},
                {"name": "parameters", "type": "Bool"},
                {"name": "system", "type": "Bool"},
                {"name": "template", "type": "Bool"},
                {"name": "verbose", "short": "v", "type": "BoolP"},
            ],
            "constraints": {
                "mutually_exclusive": [
                    ["license", "modelfile", "parameters", "system", "template"]
                ]
            },
        },
        "cp": {"usage": "cp SOURCE DESTINATION", "min_args": 2, "max_args": 2, "flags": []},
        "list": {"usage": "list", "aliases": ["ls"], "min_args": 0, "max_args": 0, "flags": []},
        "stop": {"usage": "stop MODEL", "min_args": 1, "max_args": 1, "flags": []},
        "pull": {
            "usage": "pull MODEL",
            "min_args": 1,
            "max_args": 1,
            "flags": [{"name": "insecure", "type": "Bool"}],
        },
        "serve": {"usage": "serve", "min_args": 0, "max_args": 0, "flags": []},
        "help": {"usage": "help [command]", "min_args": 0, "max_args": -1, "flags": []},
    },
}

SAMPLE_MODELS = ["llama3.1:8b", "llama3.1:latest", "mistral:7b", "qwen2.5:latest"]


@pytest.fixture
def sample_metadata():
    """Generator-shaped metadata dict (deep copy, safe to mutate)."""
    return copy.deepcopy(SAMPLE_METADATA)


@pytest.fixture
def snapshot(sample_metadata):
    """Parsed MetadataSnapshot for ollama 0.3.12."""
    return MetadataSnapshot.from_dict(sample_metadata, tool_version="0.3.12")


class FakeObjects:
    """ObjectProvider test double that records calls."""

    def __init__(self, models=None, running=None):
        self._models = list(SAMPLE_MODELS if models is None else models)
        self._running = list(running or [])
        self.model_calls = 0
        self.running_calls = 0

    def models(self):
        self.model_calls += 1
        return list(self._models)

    def running_models(self):
        self.running_calls += 1
        return list(self._running)


@pytest.fixture
def objects():
    """Fake model provider with the sample models and one running model."""
    return FakeObjects(running=["llama3.1:latest"])
