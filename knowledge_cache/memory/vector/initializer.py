"""Single-flight population of vector caches from the backing store."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from knowledge_cache.config import retrieval
from knowledge_cache.errors import CacheInitializationFailed

from .types import InitializationResult

if TYPE_CHECKING:  # pragma: no cover - type-checking only
    from knowledge_cache.memory.store import VectorSource

    from .cache import VectorKnowledgeCache

logger = logging.getLogger(__name__)


class CacheInitializer:
    """
    Load tenant vectors from a :class:`VectorSource` into caches.

    Concurrent callers for the same cache share one pending load and all
    receive its result or its error. The shared task is shielded, so a waiter
    that gets cancelled does not cancel the load for everyone else.
    """

    def __init__(
        self,
        source: "VectorSource",
        *,
        timeout_s: float | None = None,
        expect_non_empty: bool | None = None,
    ) -> None:
        self._source = source
        self._timeout_s = timeout_s if timeout_s is not None else retrieval.INITIALIZATION_TIMEOUT_S
        self._expect_non_empty = (
            expect_non_empty if expect_non_empty is not None else retrieval.EXPECT_NON_EMPTY
        )
        self._pending: dict[str, tuple["VectorKnowledgeCache", asyncio.Task[InitializationResult]]] = {}

    def is_pending(self, cache: "VectorKnowledgeCache") -> bool:
        entry = self._pending.get(f"init:{cache.tenant.cache_key}")
        return entry is not None and entry[0] is cache

    async def ensure_ready(self, cache: "VectorKnowledgeCache") -> InitializationResult:
        """
        Initialize ``cache`` unless it is already ready.

        :raises CacheInitializationFailed: on store errors, timeouts, or an
            empty store when non-empty data is expected. The cache is left
            ``EMPTY`` so a later call may retry.
        """

        if cache.is_ready():
            return InitializationResult(
                vectors_loaded=len(cache),
                memory_usage_kb=cache.get_stats().memory_usage_kb,
                already_ready=True,
            )
        return await self._single_flight(
            f"init:{cache.tenant.cache_key}", cache, lambda: self._initialize(cache)
        )

    async def refresh(self, cache: "VectorKnowledgeCache") -> InitializationResult:
        """Reload ``cache`` from the store and swap its contents."""

        return await self._single_flight(
            f"refresh:{cache.tenant.cache_key}", cache, lambda: self._refresh(cache)
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _single_flight(
        self,
        key: str,
        cache: "VectorKnowledgeCache",
        factory: Callable[[], Awaitable[InitializationResult]],
    ) -> InitializationResult:
        # A load only serves the cache object it was started for; a tenant
        # cache replaced mid-load (e.g. after invalidation) gets its own.
        entry = self._pending.get(key)
        if entry is None or entry[0] is not cache:
            task = asyncio.ensure_future(factory())
            self._pending[key] = (cache, task)

            def _done(t: asyncio.Task, key: str = key) -> None:
                current = self._pending.get(key)
                if current is not None and current[1] is t:
                    del self._pending[key]
                # Mark the error as retrieved even if every waiter went away.
                if not t.cancelled():
                    t.exception()

            task.add_done_callback(_done)
        else:
            task = entry[1]
            logger.debug("Joining in-flight load %s", key)

        return await asyncio.shield(task)

    async def _fetch(self, cache: "VectorKnowledgeCache") -> list:
        tenant = cache.tenant
        try:
            records = await asyncio.wait_for(self._source.get_all_vectors(tenant), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise CacheInitializationFailed(
                "Timed out loading vectors from backing store",
                cache_key=tenant.cache_key,
                timeout_s=self._timeout_s,
            ) from exc
        except CacheInitializationFailed:
            raise
        except Exception as exc:
            raise CacheInitializationFailed(
                f"Backing store failed: {exc}", cache_key=tenant.cache_key
            ) from exc

        records = list(records)
        if not records and self._expect_non_empty:
            raise CacheInitializationFailed(
                "Backing store returned no vectors", cache_key=tenant.cache_key
            )
        return records

    async def _initialize(self, cache: "VectorKnowledgeCache") -> InitializationResult:
        if not await asyncio.to_thread(cache.begin_initialization):
            return await asyncio.to_thread(cache.initialize, [])

        logger.info("Loading vectors for %s...", cache.tenant.cache_key)
        try:
            records = await self._fetch(cache)
            return await asyncio.to_thread(cache.initialize, records)
        except BaseException:
            await asyncio.to_thread(cache.abort_initialization)
            logger.error("Initialization failed for %s", cache.tenant.cache_key)
            raise

    async def _refresh(self, cache: "VectorKnowledgeCache") -> InitializationResult:
        logger.info("Refreshing vectors for %s...", cache.tenant.cache_key)
        records = await self._fetch(cache)
        return await asyncio.to_thread(cache.refresh, records)
