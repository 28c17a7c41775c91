"""Cross-platform advisory file locking for cache refreshes.

Each cache key owns a marker file (<key>.lock). Holding an exclusive lock on
it means "this process is refreshing that key". Locks provide mutual
exclusion, not queuing: a process that cannot acquire the lock within its
bound gives up and serves whatever is already cached.

Philosophy:
- Standard library only (fcntl/msvcrt are standard library)
- Fixed poll interval, bounded wait (keystroke latency is the budget)
- Context manager for automatic cleanup

Public API:
    acquire_file_lock: Context manager for acquiring an exclusive lock
    is_lock_held: Non-blocking probe for a held lock
    LockTimeout: Raised when the lock cannot be acquired within timeout

Example:
    >>> from ollama_completion.file_lock_manager import acquire_file_lock
    >>> with acquire_file_lock(cache_dir / "models.lock", timeout=1.0):
    ...     refresh_models()
"""

import logging
import platform
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from ollama_completion.errors import LockTimeout

# Platform-specific imports
_system = platform.system()
if TYPE_CHECKING or _system == "Windows":
    import msvcrt  # type: ignore[import-not-found]
if TYPE_CHECKING or _system != "Windows":
    import fcntl  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

__all__ = ["LockTimeout", "acquire_file_lock", "is_lock_held"]


@contextmanager
def acquire_file_lock(
    lock_path: Path,
    timeout: float = 1.0,
    poll_interval: float = 0.1,
    operation: str = "cache refresh",
) -> Generator[None, None, None]:
    """Acquire an exclusive advisory lock on a marker file.

    The marker file is created if missing. Uses platform-appropriate locking:
    - Unix/macOS/Linux: fcntl.flock() (advisory whole-file lock)
    - Windows: msvcrt.locking() (byte-range lock)

    Args:
        lock_path: Path to the lock marker file
        timeout: Maximum seconds to wait for the lock
        poll_interval: Fixed delay between acquisition attempts
        operation: Description of operation (used in error messages)

    Yields:
        None (lock is held within context)

    Raises:
        LockTimeout: If lock cannot be acquired within timeout
        OSError: If the marker file cannot be opened
    """
    with open(lock_path, "a") as file_handle:
        _acquire_with_polling(file_handle, lock_path, timeout, poll_interval, operation)
        try:
            yield
        finally:
            _release_lock(file_handle)


def is_lock_held(lock_path: Path) -> bool:
    """Return True if another holder currently owns the lock.

    Never blocks. A missing marker file means nobody holds the lock.
    """
    if not lock_path.exists():
        return False
    try:
        with open(lock_path, "a") as file_handle:
            try:
                _try_lock(file_handle)
            except (BlockingIOError, PermissionError):
                return True
            _release_lock(file_handle)
            return False
    except OSError as e:
        logger.debug(f"Could not probe lock {lock_path}: {e}")
        return False


def _acquire_with_polling(
    file_handle: TextIO,
    lock_path: Path,
    timeout: float,
    poll_interval: float,
    operation: str,
) -> None:
    """Attempt the lock at a fixed interval until the timeout expires."""
    deadline = time.monotonic() + timeout

    while True:
        try:
            _try_lock(file_handle)
            return
        except (BlockingIOError, PermissionError):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeout(
                    f"Failed to acquire lock for {operation} after {timeout} seconds. "
                    f"File: {lock_path}. Another process may be holding the lock."
                ) from None
            time.sleep(min(poll_interval, remaining))


def _try_lock(file_handle: TextIO) -> None:
    if _system == "Windows":
        # Lock first byte of file
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
    else:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _release_lock(file_handle: TextIO) -> None:
    try:
        if _system == "Windows":
            msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        else:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        # File may already be closed
        logger.debug(f"Error during lock cleanup: {e}")
