"""Background Cache Refresh Module - Detached subprocess for snapshot refresh.

Philosophy:
- Detached subprocess that survives the completion call (fire-and-forget)
- The interactive path never waits on it
- Mutual exclusion comes from the store's per-key lock inside the child
- Graceful error handling (never impact the shell)

Public API:
    BackgroundCacheRefresh: Spawns the detached refresh process
    trigger_background_refresh: Convenience wrapper, never raises

Usage:
    >>> trigger_background_refresh(config, "0.3.12")

    # Or run standalone
    $ python -m ollama_completion.cache.background_refresh 0.3.12
"""

import logging
import os
import subprocess
import sys
from pathlib import Path

from ollama_completion.config import CompletionConfig

logger = logging.getLogger(__name__)

MODULE = "ollama_completion.cache.background_refresh"


class BackgroundRefreshError(Exception):
    """Raised when the background refresh process cannot be started."""


class BackgroundCacheRefresh:
    """Launch detached command-snapshot refreshes.

    Example:
        >>> refresh = BackgroundCacheRefresh(config)
        >>> refresh.trigger_refresh("0.3.12")
        True
    """

    def __init__(self, config: CompletionConfig, config_path: Path | None = None):
        self.config = config
        self.config_path = config_path

    def _command(self, version: str) -> list[str]:
        return [sys.executable, "-m", MODULE, version]

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env["OLLAMA_COMPLETION_CACHE_DIR"] = str(self.config.cache_path)
        if self.config_path is not None:
            env["OLLAMA_COMPLETION_CONFIG"] = str(self.config_path)
        return env

    def trigger_refresh(self, version: str) -> bool:
        """Start a detached refresh for version.

        Returns:
            True once the process has been spawned

        Raises:
            BackgroundRefreshError: If subprocess launch fails
        """
        try:
            if sys.platform == "win32":
                creation_flags = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
                subprocess.Popen(
                    self._command(version),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    env=self._environment(),
                    creationflags=creation_flags,
                    close_fds=True,
                )
            else:
                subprocess.Popen(
                    self._command(version),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    env=self._environment(),
                    start_new_session=True,  # Detach from the shell's session
                    close_fds=True,
                )
        except OSError as e:
            raise BackgroundRefreshError(f"Failed to start background refresh: {e}") from e

        logger.debug(f"Background refresh started for ollama {version}")
        return True


def trigger_background_refresh(
    config: CompletionConfig, version: str, config_path: Path | None = None
) -> bool:
    """Trigger a background refresh (non-blocking). Returns False on failure."""
    try:
        return BackgroundCacheRefresh(config, config_path).trigger_refresh(version)
    except BackgroundRefreshError as e:
        logger.debug(str(e))
        return False


def _main() -> None:
    """Entry point for the detached refresh process.

    Usage:
        $ python -m ollama_completion.cache.background_refresh <version>
    """
    # Import here to avoid circular dependencies
    from ollama_completion.config import load_config_or_default
    from ollama_completion.engine import CompletionEngine
    from ollama_completion.logging_config import configure_logging

    config = load_config_or_default()
    configure_logging(config.debug, config.debug_log)

    if len(sys.argv) != 2:
        logger.error(f"Usage: python -m {MODULE} <version>")
        sys.exit(1)

    result = CompletionEngine(config).refresh_commands(sys.argv[1])
    logger.debug(f"Background refresh finished: {result.outcome}")


# Support standalone execution
if __name__ == "__main__":
    _main()


__all__ = [
    "BackgroundCacheRefresh",
    "BackgroundRefreshError",
    "trigger_background_refresh",
]
