"""Constraint Solver - flag suggestions that respect mutual exclusion.

A constraint group is occupied once any of its members appears on the
command line. Every other member of an occupied group is excluded, and in a
separate final pass every already-used flag is excluded, so no flag is offered
twice and no offered flag can create a constraint violation.

Example:
    >>> # create: only one of --license, --modelfile, --parameters, --system, --template
    >>> names(available_flags(create, used_flags={"modelfile"}))
    ['quantize', 'file']
"""

import logging

from ollama_completion.models import CommandMetadata, FlagMetadata

logger = logging.getLogger(__name__)


def excluded_by_constraints(command: CommandMetadata, used_flags: set[str]) -> set[str]:
    """Members of occupied groups that are not themselves already used."""
    excluded: set[str] = set()
    for group in command.constraint_groups:
        if group.is_occupied(used_flags):
            blocked = group.flags - used_flags
            if blocked:
                logger.debug(f"Excluding {sorted(blocked)} due to constraint on '{command.name}'")
            excluded |= blocked
    return excluded


def available_flags(command: CommandMetadata, used_flags: set[str]) -> list[FlagMetadata]:
    """Flags still valid for command, in declaration order.

    Args:
        command: Command metadata (flags and constraint groups)
        used_flags: Flag names present anywhere on the current line

    Returns:
        All flags minus constraint-excluded flags minus already-used flags
    """
    excluded = excluded_by_constraints(command, used_flags)
    allowed = [f for f in command.flags if f.name not in excluded]
    # Final pass, independent of group membership
    return [f for f in allowed if f.name not in used_flags]


def available_flag_tokens(command: CommandMetadata, used_flags: set[str]) -> list[str]:
    """available_flags() rendered as --name tokens."""
    return [f.long_form for f in available_flags(command, used_flags)]


__all__ = ["available_flag_tokens", "available_flags", "excluded_by_constraints"]
