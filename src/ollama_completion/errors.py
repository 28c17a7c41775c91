"""Error taxonomy for the completion engine.

Every error below is recoverable from the shell's point of view: the engine
catches them at its boundary and degrades to fewer (or no) candidates. Only
MissingDependency is fatal, and only to registering the completion at all.
"""


class CompletionError(Exception):
    """Base class for completion engine errors."""


class MissingDependency(CompletionError):
    """Raised when a required external tool is absent."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Missing required tools: " + ", ".join(missing))


class RemoteFetchFailure(CompletionError):
    """Raised when ollama source cannot be retrieved."""


class ParseFailure(CompletionError):
    """Raised when generator output is missing, malformed or empty."""


class LockTimeout(CompletionError):
    """Raised when an advisory lock cannot be acquired within its bound."""


class CacheDirUnwritable(CompletionError):
    """Raised when the cache directory cannot be created or written."""


class ConfigError(CompletionError):
    """Raised when configuration cannot be loaded or is invalid."""


class ToolInvocationError(CompletionError):
    """Raised when invoking ollama fails, times out or returns non-zero."""


__all__ = [
    "CacheDirUnwritable",
    "CompletionError",
    "ConfigError",
    "LockTimeout",
    "MissingDependency",
    "ParseFailure",
    "RemoteFetchFailure",
    "ToolInvocationError",
]
