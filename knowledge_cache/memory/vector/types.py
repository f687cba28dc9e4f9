"""
Value types shared by the vector knowledge cache.

``VectorRecord`` is immutable: the embedding is copied into a read-only
``float32`` array on construction so callers cannot mutate cached vectors from
the outside. Usage bookkeeping (recency, access counts) lives with the cache,
not on the record.
"""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass
from typing import NamedTuple, Sequence

import numpy as np


class TenantKey(NamedTuple):
    """Identity of one tenant's knowledge base."""

    organization_id: str
    knowledge_base_id: str

    @property
    def cache_key(self) -> str:
        return f"{self.organization_id}_{self.knowledge_base_id}"


@dataclass(frozen=True)
class KnowledgeMetadata:
    """Content metadata returned verbatim on cache hits."""

    title: str
    content: str
    category: str | None = None
    source_type: str | None = None
    source_url: str | None = None
    last_updated: datetime.datetime | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, eq=False)
class VectorRecord:
    """One knowledge item together with its embedding."""

    id: str
    embedding: np.ndarray
    metadata: KnowledgeMetadata

    def __post_init__(self) -> None:
        vec = np.array(self.embedding, dtype=np.float32, copy=True).reshape(-1)
        vec.flags.writeable = False
        object.__setattr__(self, "embedding", vec)

    @property
    def dimension(self) -> int:
        return int(self.embedding.shape[0])

    @classmethod
    def create(
        cls,
        record_id: str,
        embedding: Sequence[float] | np.ndarray,
        *,
        title: str = "",
        content: str = "",
        category: str | None = None,
        source_type: str | None = None,
        source_url: str | None = None,
        last_updated: datetime.datetime | None = None,
        tags: Sequence[str] = (),
    ) -> "VectorRecord":
        """Convenience constructor flattening the metadata fields."""
        metadata = KnowledgeMetadata(
            title=title,
            content=content,
            category=category,
            source_type=source_type,
            source_url=source_url,
            last_updated=last_updated,
            tags=tuple(tags),
        )
        return cls(record_id, np.asarray(embedding, dtype=np.float32), metadata)


class CacheState(str, enum.Enum):
    EMPTY = "empty"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True)
class SearchOptions:
    """Per-search knobs. ``None`` means "use the configured default"."""

    threshold: float | None = None
    limit: int | None = None
    category_filter: str | None = None
    source_type_filter: str | None = None


@dataclass(frozen=True)
class SearchHit:
    record: VectorRecord
    similarity: float


@dataclass(frozen=True)
class InitializationResult:
    vectors_loaded: int
    memory_usage_kb: int
    vectors_rejected: int = 0
    rejected_ids: tuple[str, ...] = ()
    vectors_evicted: int = 0
    time_ms: float = 0.0
    already_ready: bool = False


@dataclass(frozen=True)
class BulkInsertResult:
    inserted: int
    rejected_ids: tuple[str, ...] = ()
    evicted: int = 0


@dataclass(frozen=True)
class CacheStats:
    total_vectors: int
    memory_usage_kb: int
    memory_limit_kb: int
    memory_utilization: float
    cache_hit_rate: float
    searches_performed: int
    cache_hits: int
    evictions_performed: int
    state: CacheState
    last_updated: datetime.datetime | None = None
    dimension: int = 0
