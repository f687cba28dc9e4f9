"""
Retrieval orchestrator
======================

Public entry point for semantic knowledge search for one tenant:

1. validate the query and options (nothing else runs on failure),
2. make sure the tenant's cache is loaded (single-flight),
3. embed the query with a timeout,
4. rank cached vectors and map hits to :class:`KnowledgeItem`,
5. flag slow searches without failing them.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Iterable, List, Sequence

import numpy as np

from knowledge_cache.config import retrieval as retrieval_cfg
from knowledge_cache.config.retrieval import Retrieval
from knowledge_cache.errors import (
    EmbeddingGenerationFailed,
    EmptyQuery,
    InvalidRelevanceScore,
    LimitExceeded,
    PerformanceThresholdExceeded,
    QueryTooLong,
)
from knowledge_cache.memory.embeddings.provider import EmbeddingProvider
from knowledge_cache.memory.vector.cache import VectorKnowledgeCache
from knowledge_cache.memory.vector.initializer import CacheInitializer
from knowledge_cache.memory.vector.registry import CacheRegistry
from knowledge_cache.memory.vector.types import (
    CacheStats,
    InitializationResult,
    SearchHit,
    SearchOptions,
    TenantKey,
    VectorRecord,
)

logger = logging.getLogger(__name__)

SIMILAR_CONTENT_THRESHOLD = 0.6
FAQ_CATEGORY = "faq"


@dataclass(frozen=True)
class KnowledgeItem:
    id: str
    title: str
    content: str
    category: str | None
    source_type: str | None
    source_url: str | None
    last_updated: datetime.datetime | None
    tags: tuple[str, ...]
    relevance_score: float | None = None

    @classmethod
    def from_record(cls, record: VectorRecord, relevance_score: float | None = None) -> "KnowledgeItem":
        meta = record.metadata
        return cls(
            id=record.id,
            title=meta.title,
            content=meta.content,
            category=meta.category,
            source_type=meta.source_type,
            source_url=meta.source_url,
            last_updated=meta.last_updated,
            tags=meta.tags,
            relevance_score=relevance_score,
        )


@dataclass(frozen=True)
class KnowledgeSearchResult:
    items: List[KnowledgeItem]
    total_found: int
    search_time_ms: float
    query: str
    slow_search: PerformanceThresholdExceeded | None = None


def relevance_from_similarity(similarity: float) -> float:
    """
    Map a cosine similarity to a relevance score in ``[0, 1]``.

    Negative similarity means "not relevant" and floors at 0.

    :raises InvalidRelevanceScore: for NaN or a similarity above 1.
    """
    if math.isnan(similarity) or similarity > 1.0:
        raise InvalidRelevanceScore("Relevance score outside [0, 1]", similarity=similarity)
    return max(0.0, similarity)


class RetrievalOrchestrator:
    """Validate, initialize, embed, rank for a single tenant."""

    def __init__(
        self,
        tenant: TenantKey,
        registry: CacheRegistry,
        initializer: CacheInitializer,
        embedder: EmbeddingProvider,
        settings: Retrieval | None = None,
    ) -> None:
        self.tenant = tenant
        self._registry = registry
        self._initializer = initializer
        self._embedder = embedder
        self._settings = settings or retrieval_cfg

    @property
    def cache(self) -> VectorKnowledgeCache:
        return self._registry.get_or_create(self.tenant)

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #

    async def search_knowledge(
        self, query: str, options: SearchOptions | None = None
    ) -> KnowledgeSearchResult:
        """
        Semantic search over the tenant's knowledge.

        :raises EmptyQuery: blank query.
        :raises QueryTooLong: query longer than the configured maximum.
        :raises LimitExceeded: limit outside ``1..max_limit``.
        :raises CacheInitializationFailed: the cache could not be loaded.
        :raises EmbeddingGenerationFailed: provider error or timeout.
        """
        started = time.perf_counter()
        text, opts = self._validate(query, options)

        cache = await self._ensure_ready()
        query_vec = await self._embed_query(text)
        hits: List[SearchHit] = await asyncio.to_thread(cache.search, query_vec, opts)

        items = [KnowledgeItem.from_record(h.record, relevance_from_similarity(h.similarity)) for h in hits]
        elapsed_ms = (time.perf_counter() - started) * 1000

        slow: PerformanceThresholdExceeded | None = None
        if elapsed_ms > self._settings.PERFORMANCE_THRESHOLD_MS:
            slow = PerformanceThresholdExceeded(
                "knowledge search",
                self._settings.PERFORMANCE_THRESHOLD_MS,
                elapsed_ms,
                cache_key=self.tenant.cache_key,
            )
            logger.warning("Slow knowledge search: %s", slow)

        logger.debug(
            "Knowledge search for %s returned %d items in %.1fms",
            self.tenant.cache_key,
            len(items),
            elapsed_ms,
        )
        return KnowledgeSearchResult(
            items=items,
            total_found=len(items),
            search_time_ms=elapsed_ms,
            query=text,
            slow_search=slow,
        )

    async def find_similar_content(
        self, query: str, exclude_ids: Iterable[str] = (), limit: int = 10
    ) -> List[KnowledgeItem]:
        """Strongly related items (similarity >= 0.6), minus ``exclude_ids``."""
        excluded = set(exclude_ids)
        # Over-fetch so exclusions do not starve the result.
        fetch = min(limit + len(excluded), self._settings.MAX_LIMIT) if limit >= 1 else limit
        result = await self.search_knowledge(
            query, SearchOptions(threshold=SIMILAR_CONTENT_THRESHOLD, limit=fetch)
        )
        return [item for item in result.items if item.id not in excluded][:limit]

    # ------------------------------------------------------------------ #
    # Browsing
    # ------------------------------------------------------------------ #

    async def get_knowledge_by_category(self, category: str, limit: int | None = None) -> List[KnowledgeItem]:
        cache = await self._ensure_ready()
        records = await asyncio.to_thread(cache.records)
        items = [KnowledgeItem.from_record(r) for r in records if r.metadata.category == category]
        return items[:limit] if limit is not None else items

    async def get_knowledge_by_tags(self, tags: Sequence[str], limit: int | None = None) -> List[KnowledgeItem]:
        wanted = set(tags)
        cache = await self._ensure_ready()
        records = await asyncio.to_thread(cache.records)
        items = [KnowledgeItem.from_record(r) for r in records if wanted.intersection(r.metadata.tags)]
        return items[:limit] if limit is not None else items

    async def get_frequently_asked_questions(self, limit: int | None = None) -> List[KnowledgeItem]:
        return await self.get_knowledge_by_category(FAQ_CATEGORY, limit)

    # ------------------------------------------------------------------ #
    # Management
    # ------------------------------------------------------------------ #

    async def initialize(self) -> InitializationResult:
        return await self._initializer.ensure_ready(self.cache)

    def is_ready(self) -> bool:
        return self.cache.is_ready()

    def get_stats(self) -> CacheStats:
        return self.cache.get_stats()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _validate(self, query: str, options: SearchOptions | None) -> tuple[str, SearchOptions]:
        text = query.strip() if isinstance(query, str) else ""
        if not text:
            raise EmptyQuery(cache_key=self.tenant.cache_key)
        if len(text) > self._settings.MAX_QUERY_LENGTH:
            raise QueryTooLong(len(text), self._settings.MAX_QUERY_LENGTH)

        opts = options or SearchOptions()
        limit = opts.limit if opts.limit is not None else self._settings.DEFAULT_LIMIT
        if not 1 <= limit <= self._settings.MAX_LIMIT:
            raise LimitExceeded(limit, self._settings.MAX_LIMIT)

        threshold = opts.threshold if opts.threshold is not None else self._settings.DEFAULT_THRESHOLD
        return text, replace(opts, limit=limit, threshold=threshold)

    async def _ensure_ready(self) -> VectorKnowledgeCache:
        cache = self.cache
        if not cache.is_ready():
            await self._initializer.ensure_ready(cache)
        return cache

    async def _embed_query(self, text: str) -> np.ndarray:
        try:
            return await asyncio.wait_for(
                self._embedder.embed(text), timeout=self._settings.EMBEDDING_TIMEOUT_S
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingGenerationFailed(
                "Timed out generating query embedding",
                timeout_s=self._settings.EMBEDDING_TIMEOUT_S,
            ) from exc
        except Exception as exc:
            raise EmbeddingGenerationFailed(f"Embedding provider failed: {exc}") from exc
