"""ollama-completion - context-aware bash completion for the ollama CLI

Philosophy:
- Never block the shell (every external call is time-bounded)
- Degrade quietly (stale cache, then static fallback, then nothing)
- Authoritative command data (parsed from ollama's own source)

Completion candidates are resolved from a versioned command-metadata snapshot
produced by ollama-cmd-parser, cached on disk and refreshed in the background.
"""

__version__ = "3.1.0"
__all__ = ["__version__"]
