"""
Best-effort embedding cache warming.

Loads every knowledge item for a tenant and pushes item previews plus a small
set of synthesized query patterns through the caching embedding provider, so
the first real conversational turns skip the embedding round trip.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Set

from knowledge_cache.config import warming
from knowledge_cache.errors import KnowledgeCacheError
from knowledge_cache.memory.vector.types import TenantKey, VectorRecord

from .provider import EmbeddingProvider

if TYPE_CHECKING:  # pragma: no cover - type-checking only
    from knowledge_cache.memory.store import VectorSource

logger = logging.getLogger(__name__)

GENERIC_PATTERNS = (
    "How can you help me?",
    "What services do you offer?",
    "What are your capabilities?",
    "Tell me about your company",
    "What can you do for me?",
)

MAX_KEYWORDS = 10
_NON_WORD = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class WarmingSummary:
    items_warmed: int
    patterns_warmed: int
    time_ms: float
    total_items: int
    categories: Dict[str, int] = field(default_factory=dict)


def extract_keywords(contents: Iterable[str], limit: int = MAX_KEYWORDS) -> List[str]:
    """Most frequent words of 4 to 19 characters, ties in first-seen order."""

    counts: Counter[str] = Counter()
    for text in contents:
        words = _NON_WORD.sub(" ", (text or "").lower()).split()
        counts.update(w for w in words if 3 < len(w) < 20)
    return [word for word, _ in counts.most_common(limit)]


def generate_patterns(records: Iterable[VectorRecord], max_patterns: int) -> List[str]:
    """Synthesize likely user queries: per-category templates, keywords, generic fallbacks."""

    records = list(records)
    patterns: List[str] = []
    seen_categories: Set[str] = set()
    for record in records:
        category = record.metadata.category
        if category and category not in seen_categories:
            seen_categories.add(category)
            patterns.append(f"What is {category}?")
            patterns.append(f"How does {category} work?")
            patterns.append(f"Tell me about {category}")

    for keyword in extract_keywords(r.metadata.content for r in records):
        patterns.append(f"What is {keyword}?")
        patterns.append(f"How to {keyword}?")

    patterns.extend(GENERIC_PATTERNS)
    return patterns[:max_patterns]


def category_counts(records: Iterable[VectorRecord]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for record in records:
        key = record.metadata.category or "uncategorized"
        counts[key] = counts.get(key, 0) + 1
    return counts


class CacheWarmer:
    """Pre-compute embeddings for a tenant's content and common queries."""

    def __init__(
        self,
        source: "VectorSource",
        embedder: EmbeddingProvider,
        *,
        max_patterns: int | None = None,
        preview_chars: int | None = None,
        concurrency: int | None = None,
    ) -> None:
        self._source = source
        self._embedder = embedder
        self._max_patterns = max_patterns if max_patterns is not None else warming.MAX_PATTERNS
        self._preview_chars = preview_chars if preview_chars is not None else warming.CONTENT_PREVIEW_CHARS
        self._concurrency = concurrency if concurrency is not None else warming.WARM_CONCURRENCY
        self._background: Set[asyncio.Task] = set()

    async def warm(self, tenant: TenantKey) -> WarmingSummary:
        """
        Warm the embedding cache for ``tenant``.

        Per-item embedding failures are logged and skipped. A failure to load
        content from the backing store raises :class:`KnowledgeCacheError`.
        """

        started = time.perf_counter()
        try:
            records = list(await self._source.get_all_vectors(tenant))
        except Exception as exc:
            raise KnowledgeCacheError(
                "Cache warming failed", cache_key=tenant.cache_key, error=str(exc)
            ) from exc

        if not records:
            logger.info("No knowledge items for %s; warming skipped", tenant.cache_key)
            return WarmingSummary(0, 0, (time.perf_counter() - started) * 1000, 0)

        sem = asyncio.Semaphore(self._concurrency)
        previews = [
            (r.id, r.metadata.content[: self._preview_chars])
            for r in records
            if r.metadata.content and r.metadata.content.strip()
        ]
        patterns = generate_patterns(records, self._max_patterns)

        item_results = await asyncio.gather(
            *(self._bounded_embed(label, text, sem) for label, text in previews)
        )
        pattern_results = await asyncio.gather(
            *(self._bounded_embed(f"pattern {p!r}", p, sem) for p in patterns)
        )

        summary = WarmingSummary(
            items_warmed=sum(item_results),
            patterns_warmed=sum(pattern_results),
            time_ms=(time.perf_counter() - started) * 1000,
            total_items=len(records),
            categories=category_counts(records),
        )
        logger.info(
            "Warmed %s: %d items + %d patterns in %.1fms",
            tenant.cache_key,
            summary.items_warmed,
            summary.patterns_warmed,
            summary.time_ms,
        )
        return summary

    def schedule(self, tenant: TenantKey) -> asyncio.Task:
        """Run :meth:`warm` in the background; errors are logged, not raised."""

        task = asyncio.create_task(self.warm(tenant))
        self._background.add(task)

        def _done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Background warming failed for %s: %s", tenant.cache_key, exc)

        task.add_done_callback(_done)
        return task

    async def _bounded_embed(self, label: str, text: str, sem: asyncio.Semaphore) -> bool:
        async with sem:
            try:
                await self._embedder.embed(text)
            except Exception as exc:
                logger.warning("Failed to warm %s: %s", label, exc)
                return False
            return True
