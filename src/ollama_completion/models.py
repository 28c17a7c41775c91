"""Data model for parsed ollama command metadata.

Philosophy:
- Immutable: a snapshot never changes after creation; a refresh builds a new one
- Validated at the boundary: malformed generator output raises ParseFailure
- Lenient on constraints: absent or malformed constraint lists mean "none"

Public API:
    FlagKind: Value kind of a flag (bool / string / int)
    FlagMetadata: One flag of a command
    ConstraintGroup: Mutually exclusive flag names
    CommandMetadata: One ollama subcommand
    MetadataSnapshot: Versioned mapping of command name -> CommandMetadata
    CacheEntry: Cached artifact with creation time and TTL
    CompletionContext: Per-keystroke cursor context
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from ollama_completion.errors import ParseFailure

logger = logging.getLogger(__name__)

FLAG_PREFIX = "-"


class FlagKind(StrEnum):
    """Value kind of a flag."""

    BOOL = "bool"
    STRING = "string"
    INT = "int"

    @classmethod
    def parse(cls, raw: str | None) -> FlagKind:
        """Map a generator type name (Bool, StringP, int, ...) onto a kind.

        Example:
            >>> FlagKind.parse("BoolP")
            <FlagKind.BOOL: 'bool'>
        """
        if not raw:
            return cls.STRING
        name = raw.strip()
        if name.endswith("P") and len(name) > 1:
            name = name[:-1]
        name = name.lower()
        aliases = {"boolean": "bool", "integer": "int", "str": "string"}
        name = aliases.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return cls.STRING


@dataclass(frozen=True)
class FlagMetadata:
    """One command flag."""

    name: str
    short: str | None = None
    kind: FlagKind = FlagKind.STRING
    default_value: str | None = None
    description: str | None = None

    @property
    def takes_value(self) -> bool:
        return self.kind is not FlagKind.BOOL

    @property
    def long_form(self) -> str:
        return f"--{self.name}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "type": self.kind.value}
        if self.short:
            data["short"] = self.short
        if self.default_value is not None:
            data["default_value"] = self.default_value
        if self.description:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Any) -> FlagMetadata:
        if not isinstance(data, dict):
            raise ParseFailure(f"Flag entry must be an object, got {type(data).__name__}")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ParseFailure("Flag entry is missing a name")
        short = data.get("short") or None
        default = data.get("default_value")
        return cls(
            name=name.lstrip("-"),
            short=str(short).lstrip("-") if short else None,
            kind=FlagKind.parse(data.get("type")),
            default_value=None if default is None else str(default),
            description=data.get("description") or None,
        )


@dataclass(frozen=True)
class ConstraintGroup:
    """Flag names that are mutually exclusive within one command."""

    flags: frozenset[str]

    def is_occupied(self, used: set[str] | frozenset[str]) -> bool:
        return not self.flags.isdisjoint(used)


@dataclass(frozen=True)
class CommandMetadata:
    """One ollama subcommand as described by the generator.

    Attributes:
        name: Command name (e.g. "run")
        usage: Usage pattern (e.g. "run MODEL [PROMPT]")
        aliases: Alternative names
        args_rule: Cobra args rule name (e.g. "ExactArgs")
        min_args: Minimum positional arguments
        max_args: Maximum positional arguments (None = unbounded)
        flags: Flags in declaration order
        constraint_groups: Mutually exclusive flag groups
        short_desc: One-line description
    """

    name: str
    usage: str = ""
    aliases: frozenset[str] = frozenset()
    args_rule: str | None = None
    min_args: int = 0
    max_args: int | None = None
    flags: tuple[FlagMetadata, ...] = ()
    constraint_groups: tuple[ConstraintGroup, ...] = ()
    short_desc: str | None = None

    def flag_by_token(self, token: str) -> FlagMetadata | None:
        """Find the flag a command-line token refers to ("--name", "--name=v" or "-s")."""
        if token.startswith("--"):
            name = token[2:].split("=", 1)[0]
            return next((f for f in self.flags if f.name == name), None)
        if token.startswith(FLAG_PREFIX) and len(token) > 1:
            short = token[1:].split("=", 1)[0]
            return next((f for f in self.flags if f.short == short), None)
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "usage": self.usage,
            "min_args": self.min_args,
            "max_args": -1 if self.max_args is None else self.max_args,
            "flags": [f.to_dict() for f in self.flags],
        }
        if self.aliases:
            data["aliases"] = sorted(self.aliases)
        if self.args_rule:
            data["args_rule"] = self.args_rule
        if self.short_desc:
            data["short_desc"] = self.short_desc
        if self.constraint_groups:
            data["constraints"] = {
                "mutually_exclusive": [sorted(g.flags) for g in self.constraint_groups]
            }
        return data

    @classmethod
    def from_dict(cls, name: str, data: Any) -> CommandMetadata:
        if not isinstance(data, dict):
            raise ParseFailure(f"Command '{name}' must be an object")

        min_args = data.get("min_args", 0)
        max_args = data.get("max_args", -1)
        if not isinstance(min_args, int) or not isinstance(max_args, int):
            raise ParseFailure(f"Command '{name}' has non-integer argument counts")

        raw_flags = data.get("flags") or []
        if not isinstance(raw_flags, list):
            raise ParseFailure(f"Command '{name}' flags must be a list")

        aliases = data.get("aliases") or []
        if not isinstance(aliases, list):
            aliases = []

        return cls(
            name=name,
            usage=str(data.get("usage") or name),
            aliases=frozenset(str(a) for a in aliases),
            args_rule=data.get("args_rule") or None,
            min_args=max(min_args, 0),
            max_args=None if max_args < 0 else max_args,
            flags=tuple(FlagMetadata.from_dict(f) for f in raw_flags),
            constraint_groups=_parse_constraints(name, data.get("constraints")),
            short_desc=data.get("short_desc") or None,
        )


def _parse_constraints(command: str, raw: Any) -> tuple[ConstraintGroup, ...]:
    if not isinstance(raw, dict):
        return ()
    groups = raw.get("mutually_exclusive")
    if not isinstance(groups, list):
        return ()

    parsed = []
    for group in groups:
        if not isinstance(group, list) or not all(isinstance(f, str) for f in group):
            logger.debug(f"Ignoring malformed constraint group for '{command}': {group!r}")
            continue
        names = frozenset(f.lstrip("-") for f in group if f)
        if len(names) > 1:
            parsed.append(ConstraintGroup(names))
    return tuple(parsed)


@dataclass(frozen=True)
class MetadataSnapshot:
    """Immutable, versioned command metadata.

    Attributes:
        tool_version: Detected ollama version the snapshot belongs to
        schema_version: Generator version that produced the data
        commands: Read-only mapping of command name -> CommandMetadata
    """

    tool_version: str
    schema_version: str
    commands: Mapping[str, CommandMetadata]

    def __post_init__(self) -> None:
        if not isinstance(self.commands, MappingProxyType):
            object.__setattr__(self, "commands", MappingProxyType(dict(self.commands)))

    def command(self, name: str) -> CommandMetadata | None:
        """Look up a command by name or alias."""
        if name in self.commands:
            return self.commands[name]
        for meta in self.commands.values():
            if name in meta.aliases:
                return meta
        return None

    def command_names(self) -> list[str]:
        return sorted(self.commands)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.tool_version,
            "generator_info": {"version": self.schema_version},
            "commands": {name: meta.to_dict() for name, meta in self.commands.items()},
        }

    @classmethod
    def from_dict(cls, data: Any, tool_version: str | None = None) -> MetadataSnapshot:
        """Validate generator output and build a snapshot.

        Args:
            data: Decoded generator JSON
            tool_version: Detected ollama version; overrides data["version"]

        Raises:
            ParseFailure: If the data does not follow the metadata schema
        """
        if not isinstance(data, dict):
            raise ParseFailure("Metadata must be a JSON object")

        raw_commands = data.get("commands")
        if not isinstance(raw_commands, dict) or not raw_commands:
            raise ParseFailure("Metadata contains no commands")

        info = data.get("generator_info") or data.get("parser_info") or {}
        schema_version = str(info.get("version", "unknown")) if isinstance(info, dict) else "unknown"

        commands = {
            name: CommandMetadata.from_dict(name, meta) for name, meta in raw_commands.items()
        }
        return cls(
            tool_version=tool_version or str(data.get("version") or "unknown"),
            schema_version=schema_version,
            commands=commands,
        )


@dataclass(frozen=True)
class CacheEntry:
    """Cached artifact with wall-clock creation time and TTL (seconds)."""

    artifact: Any
    created_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_fresh(self, now: float) -> bool:
        """Check freshness: (now - created_at) < ttl.

        Example:
            >>> entry = CacheEntry({}, created_at=0.0, ttl=2100)
            >>> entry.is_fresh(2099.0), entry.is_fresh(2101.0)
            (True, False)
        """
        return self.age(now) < self.ttl


@dataclass(frozen=True)
class CompletionContext:
    """Cursor context for one completion request.

    Attributes:
        words: Full ordered token list (words[0] is the program name)
        cword: Index of the token under the cursor
        current: Partial text of the token under the cursor
        previous: Token immediately before the cursor ("" at position 0)
    """

    words: tuple[str, ...]
    cword: int
    current: str = ""
    previous: str = ""

    @classmethod
    def from_words(cls, words: list[str] | tuple[str, ...], cword: int) -> CompletionContext:
        words = tuple(words)
        cword = max(cword, 0)
        current = words[cword] if cword < len(words) else ""
        previous = words[cword - 1] if 0 < cword <= len(words) else ""
        return cls(words=words, cword=cword, current=current, previous=previous)

    def with_current(self, current: str) -> CompletionContext:
        return CompletionContext(
            words=self.words,
            cword=self.cword,
            current=current,
            previous=self.previous,
        )

    @property
    def command(self) -> str | None:
        """Active subcommand, once the cursor has moved past it."""
        if self.cword > 1 and len(self.words) > 1:
            return self.words[1]
        return None

    def used_flags(self, command: CommandMetadata | None = None) -> set[str]:
        """Flag names present anywhere on the line (not only left of the cursor).

        The token under the cursor is excluded since it is still being typed.
        Short aliases are resolved through the command metadata when given.
        """
        used: set[str] = set()
        for index, word in enumerate(self.words[2:], start=2):
            if index == self.cword or not word.startswith(FLAG_PREFIX) or word == FLAG_PREFIX:
                continue
            if command is not None:
                flag = command.flag_by_token(word)
                if flag is not None:
                    used.add(flag.name)
                    continue
            if word.startswith("--"):
                used.add(word[2:].split("=", 1)[0])
        return used

    def positional_count(
        self, command: CommandMetadata | None = None, delimiter: str = ":"
    ) -> int:
        """Count non-flag words between the command and the cursor.

        Values consumed by value-taking flags ("--format json") are skipped, and
        a value split around the delimiter ("llama3.1", ":", "latest") counts once.
        A split value still under the cursor is not counted at all.
        """
        end = self.cword
        if end >= 2 and self.words[end - 1] == delimiter:
            end -= 2
        count = 0
        skip_next = False
        for word in self.words[2:end]:
            if skip_next:
                skip_next = False
                continue
            if word == delimiter:
                skip_next = True
                continue
            if word.startswith(FLAG_PREFIX):
                flag = command.flag_by_token(word) if command is not None else None
                skip_next = flag is not None and flag.takes_value and "=" not in word
                continue
            count += 1
        return count


__all__ = [
    "FLAG_PREFIX",
    "CacheEntry",
    "CommandMetadata",
    "CompletionContext",
    "ConstraintGroup",
    "FlagKind",
    "FlagMetadata",
    "MetadataSnapshot",
]
