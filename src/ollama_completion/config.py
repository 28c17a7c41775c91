"""Configuration management module.

Completion tunables are read from a TOML file and can be overridden through
environment variables. Every tunable has a sensible default so the completion
works without any configuration file.

Config file: $XDG_CONFIG_HOME/ollama-completion/config.toml
Overrides:
    OLLAMA_COMPLETION_CONFIG: Alternative config file path
    OLLAMA_COMPLETION_CACHE_DIR: Alternative cache directory
    OLLAMA_COMPLETION_DEBUG: "1" routes debug trace to stderr
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, cast

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for newer Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

from ollama_completion.errors import ConfigError

logger = logging.getLogger(__name__)

SOURCE_URL_TEMPLATE = "https://raw.githubusercontent.com/ollama/ollama/v{version}/cmd/cmd.go"
FALLBACK_SOURCE_URL = "https://raw.githubusercontent.com/ollama/ollama/main/cmd/cmd.go"


def _xdg_dir(env_var: str, default: str) -> Path:
    base = os.environ.get(env_var)
    if base:
        return Path(base)
    return Path.home() / default


def default_cache_dir() -> Path:
    """Return the default cache directory (XDG cache home aware)."""
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / "ollama-completion"


def default_config_path() -> Path:
    """Return the default config file path (XDG config home aware)."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "ollama-completion" / "config.toml"


@dataclass
class CompletionConfig:
    """Completion engine tunables.

    TTLs and intervals are in seconds.
    """

    cache_dir: Path | None = None

    # Cache TTLs - commands carry a buffer over models to avoid edge cases
    commands_ttl: int = 2100
    models_ttl: int = 1800
    version_ttl: int = 86400

    # Safety limits
    operation_timeout: float = 5.0
    fetch_timeout: float = 10.0
    min_fetch_interval: int = 300
    lock_timeout: float = 1.0
    lock_poll_interval: float = 0.1
    latency_budget: float = 5.0
    stale_cache_age: int = 7 * 86400

    # External collaborators
    ollama_bin: str = "ollama"
    parser_bin: str = "/usr/local/bin/ollama-cmd-parser"
    source_url_template: str = SOURCE_URL_TEMPLATE
    fallback_source_url: str = FALLBACK_SOURCE_URL

    # Diagnostics
    debug: bool = False
    debug_log: Path | None = None

    def __post_init__(self) -> None:
        if self.cache_dir is None:
            self.cache_dir = default_cache_dir()
        self.cache_dir = Path(self.cache_dir).expanduser()
        if self.debug_log is not None:
            self.debug_log = Path(self.debug_log).expanduser()

    @property
    def cache_path(self) -> Path:
        """Cache directory as a concrete Path."""
        return cast(Path, self.cache_dir)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values (TOML has no null)."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = str(value) if isinstance(value, Path) else value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletionConfig":
        """Create from dictionary, validating value types.

        Raises:
            ConfigError: If a key is unknown or a value has the wrong type
        """
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            kwargs[key] = _coerce(key, value, getattr(cls, key, None))
        return cls(**kwargs)


def _coerce(key: str, value: Any, default: Any) -> Any:
    if key in ("cache_dir", "debug_log"):
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a path string, got {type(value).__name__}")
        return Path(value)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be a boolean")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer")
        if value < 0:
            raise ConfigError(f"{key} must not be negative")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ConfigError(f"{key} must be a number")
        if value < 0:
            raise ConfigError(f"{key} must not be negative")
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    return value


def _apply_environment(data: dict[str, Any]) -> dict[str, Any]:
    merged = dict(data)
    cache_dir = os.environ.get("OLLAMA_COMPLETION_CACHE_DIR")
    if cache_dir:
        merged["cache_dir"] = cache_dir
    if os.environ.get("OLLAMA_COMPLETION_DEBUG") == "1":
        merged["debug"] = True
    return merged


def get_config_path(custom_path: str | Path | None = None) -> Path:
    """Resolve the config file path (argument, then env, then default)."""
    if custom_path:
        return Path(custom_path).expanduser()
    env_path = os.environ.get("OLLAMA_COMPLETION_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return default_config_path()


def load_config(custom_path: str | Path | None = None) -> CompletionConfig:
    """Load configuration from file and environment.

    Args:
        custom_path: Custom config file path (optional)

    Returns:
        CompletionConfig with file values and environment overrides applied

    Raises:
        ConfigError: If the file exists but cannot be parsed or is invalid
    """
    config_path = get_config_path(custom_path)
    data: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomli.load(f)
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config {config_path}: {e}") from e
        logger.debug(f"Loaded config from: {config_path}")
    else:
        logger.debug("Config file not found, using defaults")

    return CompletionConfig.from_dict(_apply_environment(data))


def load_config_or_default(custom_path: str | Path | None = None) -> CompletionConfig:
    """Load configuration, falling back to defaults on any config error.

    Used on the interactive path where a broken config must not break completion.
    """
    try:
        return load_config(custom_path)
    except ConfigError as e:
        logger.debug(f"Ignoring invalid config: {e}")
        return CompletionConfig.from_dict(_apply_environment({}))


def save_config(config: CompletionConfig, custom_path: str | Path | None = None) -> Path:
    """Save configuration to a TOML file, preserving existing comments.

    Returns:
        Path the configuration was written to

    Raises:
        ConfigError: If saving fails
    """
    config_path = get_config_path(custom_path)
    temp_path = config_path.with_suffix(".tmp")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        if config_path.exists():
            with open(config_path) as f:
                doc = tomlkit.load(f)
        else:
            doc = tomlkit.document()
            doc.add(tomlkit.comment("ollama-completion settings (durations in seconds)"))

        for key, value in config.to_dict().items():
            doc[key] = value

        with open(temp_path, "w") as f:
            tomlkit.dump(doc, f)
        temp_path.replace(config_path)

        logger.debug(f"Saved config to: {config_path}")
        return config_path

    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise ConfigError(f"Failed to save config: {e}") from e


__all__ = [
    "FALLBACK_SOURCE_URL",
    "SOURCE_URL_TEMPLATE",
    "CompletionConfig",
    "default_cache_dir",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_config_or_default",
    "save_config",
]
