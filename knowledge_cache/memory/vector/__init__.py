"""
In-memory vector knowledge cache package.

Modules
=======

``types``
    Immutable value types: :class:`VectorRecord`, :class:`TenantKey`,
    search options, hits, stats and initialization results.
``similarity``
    Pure cosine-similarity math, ranking, vector validation and the offline
    duplicate / outlier / diversity checks.
``eviction``
    :class:`LRUEvictionPolicy`, the recency list kept in lock-step with the
    cache's record map.
``cache``
    :class:`VectorKnowledgeCache`, the bounded per-tenant store guarded by a
    readers-writer lock.
``initializer``
    :class:`CacheInitializer`, single-flight population from the backing
    store.
``registry``
    :class:`CacheRegistry`, the owner of one cache per tenant.
``health``
    Efficiency metrics and health reports for monitoring.
"""

from .cache import VectorKnowledgeCache
from .initializer import CacheInitializer
from .registry import CacheRegistry
from .types import (
    CacheState,
    CacheStats,
    InitializationResult,
    KnowledgeMetadata,
    SearchHit,
    SearchOptions,
    TenantKey,
    VectorRecord,
)

__all__ = [
    "VectorKnowledgeCache",
    "CacheInitializer",
    "CacheRegistry",
    "CacheState",
    "CacheStats",
    "InitializationResult",
    "KnowledgeMetadata",
    "SearchHit",
    "SearchOptions",
    "TenantKey",
    "VectorRecord",
]
