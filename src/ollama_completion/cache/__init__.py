"""Cache Module - On-disk caching infrastructure for completion.

Philosophy:
- File-based caching for persistence across shell invocations
- TTL-based expiration per artifact kind
- Per-key advisory locks and a remote-fetch rate limit
- Background refresh so the shell never waits on the network

Public API (the "studs"):
    From store:
        MetadataStore: Versioned TTL cache with double-checked refresh
        RefreshOutcome / RefreshResult: Refresh result classification
        commands_key: Cache key for a version's command snapshot

    From background_refresh:
        BackgroundCacheRefresh: Detached refresh launcher
        trigger_background_refresh: Trigger a refresh (non-blocking)
"""

from ollama_completion.cache.background_refresh import (
    BackgroundCacheRefresh,
    trigger_background_refresh,
)
from ollama_completion.cache.store import (
    MODELS_KEY,
    VERSION_KEY,
    MetadataStore,
    RefreshOutcome,
    RefreshResult,
    commands_key,
)

__all__ = [
    "MODELS_KEY",
    "VERSION_KEY",
    "BackgroundCacheRefresh",
    "MetadataStore",
    "RefreshOutcome",
    "RefreshResult",
    "commands_key",
    "trigger_background_refresh",
]
