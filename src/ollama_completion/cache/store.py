"""Metadata Store - TTL-cached, lock-protected completion artifacts.

Philosophy:
- File-based caching for persistence across shell invocations
- Atomic replace: readers observe the old artifact or the new one, never a partial
- Mutual exclusion, not queuing: a busy lock means "serve what is cached"
- Never fatal: an unwritable cache directory degrades to uncached resolution

Public API:
    MetadataStore: Versioned artifact cache with double-checked refresh
    RefreshOutcome: Why a refresh returned what it returned
    RefreshResult: Entry returned by a refresh plus its outcome
    commands_key: Cache key for the command snapshot of a tool version

Layout (per cache directory):
    commands_v<version>.json   Command metadata snapshot per ollama version
    models.json                Installed model list
    version.json               Detected ollama version
    last_fetch                 Timestamp of the last successful remote fetch
    <key>.lock                 Advisory lock per key
"""

import json
import logging
import os
import re
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from ollama_completion.config import CompletionConfig
from ollama_completion.errors import CacheDirUnwritable, CompletionError, LockTimeout
from ollama_completion.file_lock_manager import acquire_file_lock, is_lock_held
from ollama_completion.models import CacheEntry

logger = logging.getLogger(__name__)

COMMANDS_KEY_PREFIX = "commands_v"
MODELS_KEY = "models"
VERSION_KEY = "version"
LAST_FETCH_MARKER = "last_fetch"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def commands_key(version: str) -> str:
    """Create the cache key for a version's command snapshot.

    Example:
        >>> commands_key("0.3.12")
        'commands_v0.3.12'
    """
    return f"{COMMANDS_KEY_PREFIX}{version}"


class RefreshOutcome(StrEnum):
    """Result classification of MetadataStore.refresh()."""

    FRESH = "fresh"  # cached artifact was fresh, nothing loaded
    REFRESHED = "refreshed"  # loader ran and the new artifact was committed
    RATE_LIMITED = "rate_limited"  # remote fetch skipped by minimum interval
    LOCK_BUSY = "lock_busy"  # another process holds the refresh lock
    FAILED = "failed"  # loader failed, previous artifact untouched
    DISABLED = "disabled"  # cache unavailable, loader result not persisted
    SKIPPED = "skipped"  # refresh not attempted (system health gate)


@dataclass(frozen=True)
class RefreshResult:
    """Entry served by a refresh (possibly stale, possibly None) and why."""

    entry: CacheEntry | None
    outcome: RefreshOutcome

    @property
    def artifact(self) -> Any:
        return None if self.entry is None else self.entry.artifact


@dataclass(frozen=True)
class ArtifactStatus:
    """Status line for one cache file (used by the status command)."""

    name: str
    age: float
    fresh: bool | None


class MetadataStore:
    """Versioned, TTL-cached artifacts guarded by per-key advisory locks.

    Example:
        >>> store = MetadataStore(config)
        >>> result = store.refresh("models", load_models)
        >>> models = result.artifact or []
    """

    def __init__(
        self,
        config: CompletionConfig,
        cache_dir: Path | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.cache_dir = Path(cache_dir) if cache_dir is not None else config.cache_path
        self.clock = clock
        self.available = self._ensure_cache_dir()

    def _ensure_cache_dir(self) -> bool:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(self.cache_dir, os.W_OK | os.X_OK):
                raise CacheDirUnwritable(f"Cache directory is not writable: {self.cache_dir}")
            return True
        except (OSError, CacheDirUnwritable) as e:
            logger.debug(f"Caching disabled: {e}")
            return False

    # ------------------------------------------------------------------
    # Paths and TTLs
    # ------------------------------------------------------------------

    def artifact_path(self, key: str) -> Path:
        return self.cache_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def lock_path(self, key: str) -> Path:
        return self.cache_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.lock"

    @property
    def marker_path(self) -> Path:
        return self.cache_dir / LAST_FETCH_MARKER

    def ttl_for(self, key: str) -> float:
        if key.startswith(COMMANDS_KEY_PREFIX):
            return self.config.commands_ttl
        if key == MODELS_KEY:
            return self.config.models_ttl
        if key == VERSION_KEY:
            return self.config.version_ttl
        raise KeyError(f"No TTL configured for cache key: {key}")

    # ------------------------------------------------------------------
    # Basic contract: get / put / is_fresh / invalidate_all
    # ------------------------------------------------------------------

    def get(self, key: str, ttl: float | None = None) -> CacheEntry | None:
        """Read a cached artifact, fresh or stale. None on miss or corrupt file."""
        if not self.available:
            return None

        path = self.artifact_path(key)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable cache file {path}: {e}")
            return None

        if not isinstance(data, dict) or "artifact" not in data:
            logger.debug(f"Ignoring malformed cache file {path}")
            return None
        try:
            created_at = float(data["created_at"])
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Ignoring cache file without timestamp {path}")
            return None

        return CacheEntry(
            artifact=data["artifact"],
            created_at=created_at,
            ttl=self.ttl_for(key) if ttl is None else ttl,
        )

    def put(self, key: str, artifact: Any, ttl: float | None = None) -> CacheEntry:
        """Atomically replace the artifact for key.

        Writes to a temporary file in the cache directory, then renames it
        over the target so concurrent readers never see a partial write.

        Raises:
            CacheDirUnwritable: If the artifact cannot be written
        """
        entry = CacheEntry(
            artifact=artifact,
            created_at=self.clock(),
            ttl=self.ttl_for(key) if ttl is None else ttl,
        )
        if not self.available:
            return entry

        path = self.artifact_path(key)
        temp_name: str | None = None
        try:
            fd, temp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{path.stem}.", suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                json.dump({"created_at": entry.created_at, "artifact": artifact}, f)
            os.replace(temp_name, path)
            logger.debug(f"Cache write: {key} -> {path}")
            return entry
        except (OSError, TypeError, ValueError) as e:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise CacheDirUnwritable(f"Failed to write cache artifact {path}: {e}") from e

    def is_fresh(self, key: str, ttl: float | None = None) -> bool:
        entry = self.get(key, ttl)
        return entry is not None and entry.is_fresh(self.clock())

    def invalidate_all(self) -> int:
        """Remove every artifact, marker and lock file. Returns files removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.debug(f"Could not remove {path}: {e}")
        logger.debug(f"Cleared {removed} cache files from {self.cache_dir}")
        return removed

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    def last_fetch_time(self) -> float | None:
        try:
            return float(self.marker_path.read_text().strip())
        except (OSError, ValueError):
            return None

    def can_fetch(self) -> bool:
        """True unless the last successful remote fetch is within the minimum interval."""
        last_fetch = self.last_fetch_time()
        if last_fetch is None:
            return True
        return self.clock() - last_fetch >= self.config.min_fetch_interval

    def record_fetch(self) -> None:
        if not self.available:
            return
        try:
            self.marker_path.write_text(f"{int(self.clock())}\n")
        except OSError as e:
            logger.debug(f"Failed to record fetch timestamp: {e}")

    def is_locked(self, key: str) -> bool:
        return self.available and is_lock_held(self.lock_path(key))

    # ------------------------------------------------------------------
    # Double-checked refresh
    # ------------------------------------------------------------------

    def refresh(
        self,
        key: str,
        loader: Callable[[], Any],
        *,
        ttl: float | None = None,
        rate_limited: bool = False,
        force: bool = False,
    ) -> RefreshResult:
        """Return a fresh artifact, refreshing it under lock when stale.

        Args:
            key: Cache key
            loader: Produces the new artifact; raises CompletionError/OSError on failure
            ttl: Override the configured TTL for key
            rate_limited: Apply the minimum interval between remote fetches
            force: Skip the freshness checks and the rate limit

        Returns:
            RefreshResult with the served entry (fresh, stale or None)
        """
        ttl = self.ttl_for(key) if ttl is None else ttl

        if not self.available:
            return self._load_uncached(key, loader, ttl)

        # 1. Fast path, no lock
        current = self.get(key, ttl)
        if not force and current is not None and current.is_fresh(self.clock()):
            return RefreshResult(current, RefreshOutcome.FRESH)

        # 2. Rate limit gate
        if rate_limited and not force and not self.can_fetch():
            logger.debug(f"Refresh of {key} skipped: last fetch within minimum interval")
            return RefreshResult(current, RefreshOutcome.RATE_LIMITED)

        # 3. Bounded lock acquisition
        try:
            with acquire_file_lock(
                self.lock_path(key),
                timeout=self.config.lock_timeout,
                poll_interval=self.config.lock_poll_interval,
                operation=f"refresh of {key}",
            ):
                return self._refresh_locked(key, loader, ttl, current, rate_limited, force)
        except LockTimeout as e:
            logger.debug(str(e))
            return RefreshResult(current, RefreshOutcome.LOCK_BUSY)
        except OSError as e:
            logger.debug(f"Could not open lock for {key}: {e}")
            return RefreshResult(current, RefreshOutcome.FAILED)

    def _refresh_locked(
        self,
        key: str,
        loader: Callable[[], Any],
        ttl: float,
        previous: CacheEntry | None,
        rate_limited: bool,
        force: bool,
    ) -> RefreshResult:
        # 4. Another process may have refreshed while we waited
        current = self.get(key, ttl) or previous
        if not force and current is not None and current.is_fresh(self.clock()):
            return RefreshResult(current, RefreshOutcome.FRESH)

        # 5. Load and commit
        try:
            artifact = loader()
        except (CompletionError, OSError, ValueError) as e:
            # 6. Keep the previous artifact untouched
            logger.debug(f"Refresh of {key} failed, keeping previous artifact: {e}")
            return RefreshResult(current, RefreshOutcome.FAILED)

        try:
            entry = self.put(key, artifact, ttl)
        except CacheDirUnwritable as e:
            logger.debug(str(e))
            return RefreshResult(
                CacheEntry(artifact, self.clock(), ttl), RefreshOutcome.DISABLED
            )

        if rate_limited:
            self.record_fetch()
        logger.debug(f"Refreshed {key}")
        return RefreshResult(entry, RefreshOutcome.REFRESHED)

    def _load_uncached(self, key: str, loader: Callable[[], Any], ttl: float) -> RefreshResult:
        try:
            artifact = loader()
        except (CompletionError, OSError, ValueError) as e:
            logger.debug(f"Uncached load of {key} failed: {e}")
            return RefreshResult(None, RefreshOutcome.FAILED)
        return RefreshResult(CacheEntry(artifact, self.clock(), ttl), RefreshOutcome.DISABLED)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune_stale(self, max_age: float | None = None) -> int:
        """Delete command snapshots not modified within max_age seconds."""
        if not self.available:
            return 0
        max_age = self.config.stale_cache_age if max_age is None else max_age
        now = self.clock()
        removed = 0
        for path in self.cache_dir.glob(f"{COMMANDS_KEY_PREFIX}*.json"):
            try:
                if now - path.stat().st_mtime > max_age:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.debug(f"Could not prune {path}: {e}")
        if removed:
            logger.debug(f"Pruned {removed} stale snapshots")
        return removed

    def describe(self) -> list[ArtifactStatus]:
        """Status of every cached artifact and the fetch marker."""
        if not self.available:
            return []
        now = self.clock()
        statuses = []
        for path in sorted(self.cache_dir.glob("*.json")):
            try:
                entry = self.get(path.stem)
            except KeyError:
                continue
            if entry is None:
                continue
            statuses.append(ArtifactStatus(path.stem, entry.age(now), entry.is_fresh(now)))
        last_fetch = self.last_fetch_time()
        if last_fetch is not None:
            statuses.append(ArtifactStatus(LAST_FETCH_MARKER, now - last_fetch, None))
        return statuses


__all__ = [
    "COMMANDS_KEY_PREFIX",
    "LAST_FETCH_MARKER",
    "MODELS_KEY",
    "VERSION_KEY",
    "ArtifactStatus",
    "MetadataStore",
    "RefreshOutcome",
    "RefreshResult",
    "commands_key",
]
