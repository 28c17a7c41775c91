"""Completion Engine - one completion request from words to candidates.

Control flow for a single keystroke:
    reconstruct delimiter split -> detect version (cached) -> load snapshot
    (fresh, else trigger background refresh and serve the stale one) ->
    resolve -> prefix filter -> resplit

Everything runs under a LatencyBudget: each subprocess gets
min(operation_timeout, remaining budget) and calls that would start after
the budget is spent fail fast, leaving a best-effort result.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ollama_completion.cache.background_refresh import trigger_background_refresh
from ollama_completion.cache.store import (
    MODELS_KEY,
    VERSION_KEY,
    MetadataStore,
    RefreshOutcome,
    RefreshResult,
    commands_key,
)
from ollama_completion.config import CompletionConfig
from ollama_completion.errors import CompletionError, ParseFailure, ToolInvocationError
from ollama_completion.health import system_healthy, tools_available
from ollama_completion.models import CompletionContext, MetadataSnapshot
from ollama_completion.ollama_executor import (
    UNKNOWN_VERSION,
    detect_version,
    list_models,
    list_running_models,
)
from ollama_completion.remote_fetcher import RemoteFetcher
from ollama_completion.resolver import Completion, CompletionKind, ContextResolver
from ollama_completion.word_reconstructor import reconstruct, resplit

logger = logging.getLogger(__name__)


class LatencyBudget:
    """Wall-clock budget shared by every subprocess call of one request."""

    def __init__(self, total: float, clock: Callable[[], float] = time.monotonic):
        self.total = total
        self.clock = clock
        self._started = clock()

    def remaining(self) -> float:
        return max(0.0, self.total - (self.clock() - self._started))

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout(self, per_call: float) -> float:
        """Timeout for the next call: min(per_call, remaining budget)."""
        return min(per_call, self.remaining())


class CachedObjectProvider:
    """Model names for the resolver, memoized for the duration of one request."""

    def __init__(self, config: CompletionConfig, store: MetadataStore, budget: LatencyBudget):
        self.config = config
        self.store = store
        self.budget = budget
        self._models: list[str] | None = None
        self._running: list[str] | None = None

    def _load_models(self) -> list[str]:
        return list_models(
            self.budget.timeout(self.config.operation_timeout), self.config.ollama_bin
        )

    def models(self) -> list[str]:
        if self._models is None:
            result = self.store.refresh(MODELS_KEY, self._load_models)
            artifact = result.artifact
            self._models = [str(m) for m in artifact] if isinstance(artifact, list) else []
            logger.debug(f"Models ({result.outcome}): {len(self._models)}")
        return self._models

    def running_models(self) -> list[str]:
        if self._running is None:
            try:
                self._running = list_running_models(
                    self.budget.timeout(self.config.operation_timeout), self.config.ollama_bin
                )
            except ToolInvocationError as e:
                logger.debug(f"Running models unavailable: {e}")
                self._running = []
        return self._running


class CompletionEngine:
    """Resolve completions against cached metadata without blocking the shell.

    Example:
        >>> engine = CompletionEngine(load_config_or_default())
        >>> engine.complete(["ollama", "run", "lla"], 2).candidates
        ('llama3.1:latest', 'llama3.2:1b')
    """

    def __init__(
        self,
        config: CompletionConfig,
        store: MetadataStore | None = None,
        fetcher: RemoteFetcher | None = None,
        spawner: Callable[[str], bool] | None = None,
        config_path: Path | None = None,
    ):
        self.config = config
        self.store = store if store is not None else MetadataStore(config)
        self._fetcher = fetcher
        self.spawner = spawner or (
            lambda version: trigger_background_refresh(config, version, config_path)
        )

    @property
    def fetcher(self) -> RemoteFetcher:
        # requests session only created when a refresh actually runs
        if self._fetcher is None:
            self._fetcher = RemoteFetcher(self.config)
        return self._fetcher

    # ------------------------------------------------------------------
    # Interactive path
    # ------------------------------------------------------------------

    def complete(self, words: list[str], cword: int) -> Completion:
        """Candidates for the word at index cword. Never raises."""
        try:
            return self._complete(list(words), cword)
        except (CompletionError, OSError) as e:
            logger.debug(f"Completion failed, returning nothing: {e}")
            return Completion(CompletionKind.NONE)

    def _complete(self, words: list[str], cword: int) -> Completion:
        if cword < 0:
            return Completion(CompletionKind.NONE)
        if cword >= len(words):
            words = words + [""] * (cword - len(words) + 1)

        context = CompletionContext.from_words(words, cword)
        logger.debug(
            f"command='{context.command or ''}' cur='{context.current}' "
            f"prev='{context.previous}' cword={cword} words={words}"
        )

        word = reconstruct(words, cword)
        if word.was_split:
            context = context.with_current(word.value)

        budget = LatencyBudget(self.config.latency_budget)
        snapshot = self.load_snapshot(self.detect_version(budget))

        resolver = ContextResolver(snapshot, CachedObjectProvider(self.config, self.store, budget))
        completion = resolver.resolve(context).filtered(word.value)
        if completion.kind is CompletionKind.PATHS:
            return completion
        result = completion.with_candidates(resplit(list(completion.candidates), word))
        logger.debug(f"{result.kind}: {len(result.candidates)} candidates")
        return result

    def detect_version(self, budget: LatencyBudget | None = None) -> str:
        """Installed ollama version, cached for version_ttl. "unknown" on failure."""
        budget = budget or LatencyBudget(self.config.latency_budget)

        def load() -> str:
            version = detect_version(
                budget.timeout(self.config.operation_timeout), self.config.ollama_bin
            )
            if version == UNKNOWN_VERSION:
                raise ToolInvocationError("Could not detect ollama version")
            return version

        artifact = self.store.refresh(VERSION_KEY, load).artifact
        return artifact if isinstance(artifact, str) and artifact else UNKNOWN_VERSION

    def load_snapshot(self, version: str) -> MetadataSnapshot | None:
        """Fresh snapshot for version, else the stale one (refresh triggered), else None."""
        key = commands_key(version)
        entry = self.store.get(key)
        if entry is not None and entry.is_fresh(self.store.clock()):
            return self._parse_snapshot(entry.artifact, version)

        if self._should_spawn_refresh(key):
            logger.debug(f"Snapshot for {version} missing or stale, refreshing in background")
            self.spawner(version)

        if entry is None:
            return None
        logger.debug(f"Serving stale snapshot for {version}")
        return self._parse_snapshot(entry.artifact, version)

    def _should_spawn_refresh(self, key: str) -> bool:
        if not self.store.available:
            return False
        if not tools_available(self.config):
            logger.debug("Refresh tools unavailable, not spawning refresh")
            return False
        if not self.store.can_fetch():
            logger.debug("Rate limited, not spawning refresh")
            return False
        if self.store.is_locked(key):
            logger.debug(f"Refresh of {key} already running")
            return False
        return system_healthy(self.store.cache_dir)

    def _parse_snapshot(self, artifact: object, version: str) -> MetadataSnapshot | None:
        try:
            return MetadataSnapshot.from_dict(artifact, tool_version=version)
        except ParseFailure as e:
            logger.debug(f"Cached snapshot for {version} unusable: {e}")
            return None

    # ------------------------------------------------------------------
    # Background path
    # ------------------------------------------------------------------

    def refresh_commands(self, version: str | None = None, force: bool = False) -> RefreshResult:
        """Fetch, parse and commit the command snapshot for version.

        Run by the detached refresh process (and by `ollama-completion refresh`).
        Goes through the store's rate limit and lock so concurrent shells do
        at most one remote fetch.
        """
        if version is None:
            version = self.detect_version()
        key = commands_key(version)

        if not system_healthy(self.store.cache_dir):
            logger.debug("System unhealthy, skipping refresh")
            return RefreshResult(self.store.get(key), RefreshOutcome.SKIPPED)

        result = self.store.refresh(
            key,
            lambda: self.fetcher.fetch_snapshot(version).to_dict(),
            rate_limited=True,
            force=force,
        )
        logger.debug(f"Refresh of {key}: {result.outcome}")
        self.store.prune_stale()
        return result


__all__ = ["CachedObjectProvider", "CompletionEngine", "LatencyBudget"]
