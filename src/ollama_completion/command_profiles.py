"""Per-command completion data.

Command behaviour comes from the parsed metadata (min/max args, flags,
constraints). This table only holds what the metadata cannot express: where a
command's positional values come from when that differs from the installed
model catalog, literal suggestions for well-known flag values, and the static
fallback used before any metadata exists.
"""

from dataclasses import dataclass
from enum import StrEnum


class PositionalSource(StrEnum):
    """Where positional values for a command come from."""

    MODELS = "models"  # installed models (ollama list)
    RUNNING_MODELS = "running_models"  # loaded models (ollama ps)
    COMMANDS = "commands"  # ollama subcommand names
    NONE = "none"  # free-form value, nothing to suggest


@dataclass(frozen=True)
class CommandProfile:
    """Positional completion behaviour for one command."""

    positional_source: PositionalSource = PositionalSource.MODELS


DEFAULT_PROFILE = CommandProfile()

COMMAND_PROFILES: dict[str, CommandProfile] = {
    "stop": CommandProfile(PositionalSource.RUNNING_MODELS),
    "help": CommandProfile(PositionalSource.COMMANDS),
    # The first argument names a model that does not exist yet
    "create": CommandProfile(PositionalSource.NONE),
}

FLAG_VALUE_SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "--format": ("json",),
    "--host": ("0.0.0.0", "127.0.0.1", "localhost"),
    "--port": ("11434", "8080", "3000"),
    "--keepalive": ("5m", "10m", "30m", "1h"),
    "--quantize": ("q4_K_M", "q4_K_S", "q5_K_M", "q5_K_S", "q8_0"),
    "-q": ("q4_K_M", "q4_K_S", "q5_K_M", "q5_K_S", "q8_0"),
}

PATH_FLAGS: frozenset[str] = frozenset({"--file", "-f"})

HELP_FLAG = "--help"
GLOBAL_FLAGS: tuple[str, ...] = (HELP_FLAG, "--version")

# Used until a metadata snapshot is available
FALLBACK_COMMANDS: tuple[str, ...] = (
    "run",
    "show",
    "pull",
    "push",
    "list",
    "ps",
    "cp",
    "rm",
    "create",
    "stop",
    "serve",
    "help",
    "version",
)

FALLBACK_MIN_ARGS: dict[str, int] = {
    "run": 1,
    "show": 1,
    "pull": 1,
    "push": 1,
    "rm": 1,
    "stop": 1,
    "cp": 2,
}


def profile_for(command: str) -> CommandProfile:
    return COMMAND_PROFILES.get(command, DEFAULT_PROFILE)


__all__ = [
    "COMMAND_PROFILES",
    "DEFAULT_PROFILE",
    "FALLBACK_COMMANDS",
    "FALLBACK_MIN_ARGS",
    "FLAG_VALUE_SUGGESTIONS",
    "GLOBAL_FLAGS",
    "HELP_FLAG",
    "PATH_FLAGS",
    "CommandProfile",
    "PositionalSource",
    "profile_for",
]
