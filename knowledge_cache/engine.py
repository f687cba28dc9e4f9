"""
Composition root for the knowledge cache.

:class:`KnowledgeEngine` wires the backing store, the cache registry, the
single-flight initializer and the (caching) embedding provider together, and
hands out one :class:`RetrievalOrchestrator` per tenant. Management operations
(stats, health, refresh, invalidation, warming) live here as well.

Typical use::

    engine = KnowledgeEngine.from_config()
    result = await engine.orchestrator(TenantKey("org", "kb")).search_knowledge("pricing?")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from knowledge_cache import maintenance
from knowledge_cache.config import warming
from knowledge_cache.config.retrieval import Retrieval
from knowledge_cache.memory.embeddings.cache import EmbeddingCache
from knowledge_cache.memory.embeddings.provider import (
    CachedEmbeddingProvider,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from knowledge_cache.memory.embeddings.warmer import CacheWarmer, WarmingSummary
from knowledge_cache.memory.store import SQLiteVectorStore, VectorSource
from knowledge_cache.memory.vector.health import HealthReport, health_report
from knowledge_cache.memory.vector.initializer import CacheInitializer
from knowledge_cache.memory.vector.registry import CacheRegistry
from knowledge_cache.memory.vector.types import CacheStats, InitializationResult, TenantKey
from knowledge_cache.retrieval.orchestrator import RetrievalOrchestrator

logger = logging.getLogger(__name__)


class KnowledgeEngine:
    """Owns every long-lived collaborator of the retrieval core."""

    def __init__(
        self,
        source: VectorSource,
        embedder: EmbeddingProvider,
        *,
        registry: CacheRegistry | None = None,
        initializer: CacheInitializer | None = None,
        settings: Retrieval | None = None,
    ) -> None:
        self.source = source
        self.embedder = embedder
        self.registry = registry if registry is not None else CacheRegistry()
        self.initializer = initializer if initializer is not None else CacheInitializer(source)
        self.warmer = CacheWarmer(source, embedder)
        self._settings = settings
        self._orchestrators: Dict[str, RetrievalOrchestrator] = {}
        self._refresh_task: asyncio.Task | None = None

    @classmethod
    def from_config(cls, db_path: Optional[str] = None) -> "KnowledgeEngine":
        """Production wiring: SQLite store + OpenAI embeddings behind an LRU cache."""

        store = SQLiteVectorStore(db_path)
        embedder = CachedEmbeddingProvider(OpenAIEmbeddingProvider(), EmbeddingCache())
        return cls(store, embedder)

    # ------------------------------------------------------------------ #
    # Query surface
    # ------------------------------------------------------------------ #

    def orchestrator(self, tenant: TenantKey) -> RetrievalOrchestrator:
        orch = self._orchestrators.get(tenant.cache_key)
        if orch is None:
            orch = RetrievalOrchestrator(
                tenant, self.registry, self.initializer, self.embedder, self._settings
            )
            self._orchestrators[tenant.cache_key] = orch
        return orch

    # ------------------------------------------------------------------ #
    # Management
    # ------------------------------------------------------------------ #

    async def initialize(self, tenant: TenantKey) -> InitializationResult:
        return await self.initializer.ensure_ready(self.registry.get_or_create(tenant))

    async def refresh(self, tenant: TenantKey) -> InitializationResult:
        """Reload ``tenant`` from the store; cold caches are initialized instead."""

        cache = self.registry.get_or_create(tenant)
        if not cache.is_ready():
            return await self.initializer.ensure_ready(cache)
        return await self.initializer.refresh(cache)

    def invalidate(self, tenant: TenantKey) -> bool:
        """Drop ``tenant``'s cache; the next search reloads it from the store."""

        self._orchestrators.pop(tenant.cache_key, None)
        dropped = self.registry.drop(tenant)
        if dropped:
            logger.info("Invalidated vector cache for %s", tenant.cache_key)
        return dropped

    def stats(self, tenant: TenantKey) -> CacheStats:
        return self.registry.get_or_create(tenant).get_stats()

    def health(self, tenant: TenantKey) -> HealthReport:
        return health_report(self.registry.get_or_create(tenant))

    async def warm(self, tenant: TenantKey) -> WarmingSummary:
        return await self.warmer.warm(tenant)

    # ------------------------------------------------------------------ #
    # Background refresh
    # ------------------------------------------------------------------ #

    async def start_refresh_loop(self, interval: float | None = None) -> asyncio.Task | None:
        """Periodically refresh ready caches. A zero interval disables the loop."""

        every = interval if interval is not None else warming.REFRESH_INTERVAL
        if every <= 0:
            logger.info("Cache refresh loop disabled")
            return None
        if self._refresh_task and not self._refresh_task.done():
            return self._refresh_task

        async def _refresh_cycle() -> None:
            await maintenance.refresh_ready_caches(self.registry, self.initializer)

        logger.info("Starting cache refresh loop (interval=%ss)", every)
        self._refresh_task = await maintenance.startup(_refresh_cycle, every)
        return self._refresh_task

    async def stop(self) -> None:
        await maintenance.shutdown(self._refresh_task)
        self._refresh_task = None
        close = getattr(self.source, "close", None)
        if callable(close):
            close()
