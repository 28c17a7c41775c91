"""Context Resolver - decide what kind of value belongs under the cursor.

Decision order for a completion request:
1. Command slot (cword == 1): command names plus global flags
2. Previous word takes a path (--file/-f): defer to filename completion
3. Previous word has literal suggestions (--format, --host, ...): those literals
4. Previous word is a value-taking flag without suggestions: nothing
5. Current word starts with "-": constraint-aware flags
6. No metadata for the command: conservative generic fallback
7. Command takes no positional arguments: flags
8. Otherwise compare the positional count with the command's minimum:
   - user still typing (current word non-empty): keep offering values
   - user finished a word (current word empty): values below the minimum,
     flags once it is met

Positional values come from the command's profile (installed models by
default, running models for stop, command names for help).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from ollama_completion.command_profiles import (
    FALLBACK_COMMANDS,
    FALLBACK_MIN_ARGS,
    FLAG_VALUE_SUGGESTIONS,
    GLOBAL_FLAGS,
    HELP_FLAG,
    PATH_FLAGS,
    PositionalSource,
    profile_for,
)
from ollama_completion.constraint_solver import available_flag_tokens
from ollama_completion.models import (
    FLAG_PREFIX,
    CommandMetadata,
    CompletionContext,
    MetadataSnapshot,
)

logger = logging.getLogger(__name__)


class CompletionKind(StrEnum):
    """Category of values offered for the word under the cursor."""

    COMMANDS = "commands"
    FLAGS = "flags"
    VALUES = "values"
    OBJECTS = "objects"
    PATHS = "paths"
    NONE = "none"


@dataclass(frozen=True)
class Completion:
    """Resolved candidates and what they are."""

    kind: CompletionKind
    candidates: tuple[str, ...] = ()

    def filtered(self, prefix: str) -> Completion:
        """Candidates starting with prefix, duplicates removed, order kept."""
        if self.kind is CompletionKind.PATHS:
            return self
        seen: set[str] = set()
        matches = []
        for candidate in self.candidates:
            if candidate.startswith(prefix) and candidate not in seen:
                seen.add(candidate)
                matches.append(candidate)
        return Completion(self.kind, tuple(matches))

    def with_candidates(self, candidates: list[str]) -> Completion:
        return Completion(self.kind, tuple(candidates))


class ObjectProvider(Protocol):
    """Source of domain objects (ollama models)."""

    def models(self) -> list[str]: ...

    def running_models(self) -> list[str]: ...


class ContextResolver:
    """Resolve a CompletionContext against a snapshot (or the static fallback).

    Example:
        >>> resolver = ContextResolver(snapshot, provider)
        >>> resolver.resolve(CompletionContext.from_words(["ollama", "run", ""], 2))
        Completion(kind=<CompletionKind.OBJECTS: 'objects'>, candidates=('llama3.1:latest',))
    """

    def __init__(self, snapshot: MetadataSnapshot | None, objects: ObjectProvider):
        self.snapshot = snapshot
        self.objects = objects

    def resolve(self, context: CompletionContext) -> Completion:
        if context.cword <= 1:
            return self._command_names()

        previous = context.previous
        if previous in PATH_FLAGS:
            logger.debug(f"'{previous}' takes a path, deferring to filename completion")
            return Completion(CompletionKind.PATHS)
        if previous in FLAG_VALUE_SUGGESTIONS:
            return Completion(CompletionKind.VALUES, FLAG_VALUE_SUGGESTIONS[previous])

        name = context.command or ""
        command = self.snapshot.command(name) if self.snapshot is not None else None
        if command is None:
            return self._fallback(context, name)

        if previous.startswith(FLAG_PREFIX) and "=" not in previous:
            flag = command.flag_by_token(previous)
            if flag is not None and flag.takes_value:
                logger.debug(f"'{previous}' expects a free-form value")
                return Completion(CompletionKind.NONE)

        if context.current.startswith(FLAG_PREFIX):
            return self._flags(context, command)

        if command.max_args == 0:
            logger.debug(f"'{command.name}' takes no arguments, offering flags")
            return self._flags(context, command)

        return self._positional(context, command)

    # ------------------------------------------------------------------

    def _command_names(self) -> Completion:
        if self.snapshot is None:
            names = list(FALLBACK_COMMANDS)
        else:
            names = self.snapshot.command_names()
        return Completion(CompletionKind.COMMANDS, (*names, *GLOBAL_FLAGS))

    def _flags(self, context: CompletionContext, command: CommandMetadata) -> Completion:
        used = context.used_flags(command)
        logger.debug(f"Used flags on line: {sorted(used)}")
        return Completion(CompletionKind.FLAGS, tuple(available_flag_tokens(command, used)))

    def _positional(self, context: CompletionContext, command: CommandMetadata) -> Completion:
        source = profile_for(command.name).positional_source
        count = context.positional_count(command)
        logger.debug(
            f"'{command.name}': min_args={command.min_args} max_args={command.max_args} "
            f"positional={count} current='{context.current}'"
        )

        if command.max_args is not None and count >= command.max_args:
            return self._flags(context, command)

        if source in (PositionalSource.COMMANDS, PositionalSource.NONE):
            if count == 0:
                return self._objects(source)
            return self._flags(context, command)

        if context.current:
            # Still typing: let the user finish the value even if the minimum is met
            return self._objects(source)
        if count < command.min_args:
            return self._objects(source)
        return self._flags(context, command)

    def _objects(self, source: PositionalSource) -> Completion:
        if source is PositionalSource.MODELS:
            return Completion(CompletionKind.OBJECTS, tuple(self.objects.models()))
        if source is PositionalSource.RUNNING_MODELS:
            return Completion(CompletionKind.OBJECTS, tuple(self.objects.running_models()))
        if source is PositionalSource.COMMANDS:
            names = self.snapshot.command_names() if self.snapshot else list(FALLBACK_COMMANDS)
            return Completion(CompletionKind.COMMANDS, tuple(names))
        return Completion(CompletionKind.NONE)

    def _fallback(self, context: CompletionContext, name: str) -> Completion:
        """Generic resolver for commands without metadata: --help, no guesses.

        Without any snapshot the well-known model commands still get model
        names for their required positional slots.
        """
        help_only = Completion(CompletionKind.FLAGS, (HELP_FLAG,))
        if context.current.startswith(FLAG_PREFIX):
            return help_only

        if self.snapshot is None and name in FALLBACK_MIN_ARGS:
            source = profile_for(name).positional_source
            if context.current or context.positional_count() < FALLBACK_MIN_ARGS[name]:
                return self._objects(source)
        return help_only


__all__ = ["Completion", "CompletionKind", "ContextResolver", "ObjectProvider"]
