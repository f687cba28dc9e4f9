"""
Per-tenant in-memory vector cache.

:class:`VectorKnowledgeCache` holds the embedding vectors and content metadata
for one ``(organization, knowledge base)`` pair and answers exact
cosine-similarity searches against them.

Lifecycle
---------
``EMPTY -> INITIALIZING -> READY``. The :class:`CacheInitializer` drives the
first two transitions; ``search`` raises :class:`CacheNotReady` until the cache
is ``READY``. :meth:`clear` returns to ``EMPTY``.

Bounds
------
``len(cache) <= max_vectors`` and ``memory_usage_kb <= max_memory_kb`` hold
after every public mutation. Memory is estimated as
``count * (dimension * 4 + metadata_overhead_bytes) / 1024``. When either
bound is exceeded the least recently used records are evicted in batches of
at most ``eviction_batch_size``.

Threading
---------
All methods are synchronous and thread-safe. Readers (``search``, ``get``,
``get_stats``) share a readers-writer lock; every mutation takes the write
side. Recency and hit counters updated by readers go through a separate mutex.
The async layer calls into the cache via ``asyncio.to_thread``.
"""

from __future__ import annotations

import datetime
import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Sequence

import numpy as np

from knowledge_cache.config import retrieval as retrieval_cfg
from knowledge_cache.config import vector_cache as vector_cache_cfg
from knowledge_cache.errors import CacheNotReady, DimensionMismatch, InvalidVector

from .eviction import AccessInfo, LRUEvictionPolicy
from .similarity import find_most_similar, validate_vector
from .types import (
    BulkInsertResult,
    CacheState,
    CacheStats,
    InitializationResult,
    SearchHit,
    SearchOptions,
    TenantKey,
    VectorRecord,
)

logger = logging.getLogger(__name__)

FLOAT32_BYTES = 4


class ReadWriteLock:
    """Writer-preferring readers-writer lock built on ``threading.Condition``."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class VectorKnowledgeCache:
    """Bounded, LRU-evicting vector cache for a single tenant knowledge base."""

    def __init__(
        self,
        tenant: TenantKey,
        *,
        dimension: int | None = None,
        max_vectors: int | None = None,
        max_memory_kb: int | None = None,
        eviction_batch_size: int | None = None,
        metadata_overhead_bytes: int | None = None,
        default_threshold: float | None = None,
        default_limit: int | None = None,
    ) -> None:
        self.tenant = tenant
        self.dimension = dimension if dimension is not None else vector_cache_cfg.EMB_DIM
        self.max_vectors = max_vectors if max_vectors is not None else vector_cache_cfg.MAX_VECTORS
        self.max_memory_kb = (
            max_memory_kb if max_memory_kb is not None else vector_cache_cfg.MAX_MEMORY_KB
        )
        self.eviction_batch_size = (
            eviction_batch_size
            if eviction_batch_size is not None
            else vector_cache_cfg.EVICTION_BATCH_SIZE
        )
        self.metadata_overhead_bytes = (
            metadata_overhead_bytes
            if metadata_overhead_bytes is not None
            else vector_cache_cfg.METADATA_OVERHEAD_BYTES
        )
        self.default_threshold = (
            default_threshold if default_threshold is not None else retrieval_cfg.DEFAULT_THRESHOLD
        )
        self.default_limit = default_limit if default_limit is not None else retrieval_cfg.DEFAULT_LIMIT

        if self.dimension <= 0:
            raise ValueError("dimension must be positive")
        if self.max_vectors <= 0 or self.max_memory_kb <= 0:
            raise ValueError("max_vectors and max_memory_kb must be positive")
        if self.eviction_batch_size <= 0:
            raise ValueError("eviction_batch_size must be positive")

        self._lock = ReadWriteLock()
        # Guards recency and counters, which readers update.
        self._bookkeeping = threading.Lock()

        self._records: dict[str, VectorRecord] = {}
        self._policy = LRUEvictionPolicy()
        self._state = CacheState.EMPTY
        self._last_updated: datetime.datetime | None = None

        # Stacked embeddings for the scan; rebuilt lazily after writes.
        self._matrix: np.ndarray | None = None
        self._matrix_ids: List[str] = []

        self._searches = 0
        self._hits = 0
        self._evictions = 0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> CacheState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is CacheState.READY

    def begin_initialization(self) -> bool:
        """Move ``EMPTY -> INITIALIZING``. Returns ``False`` if already ready."""

        with self._lock.write_locked():
            if self._state is CacheState.READY:
                return False
            self._state = CacheState.INITIALIZING
            return True

    def abort_initialization(self) -> None:
        """Return a failed initialization to ``EMPTY`` so a later call may retry."""

        with self._lock.write_locked():
            if self._state is CacheState.INITIALIZING:
                self._reset_locked()
                logger.info("Initialization aborted for %s; cache back to empty", self.tenant.cache_key)

    def initialize(self, records: Iterable[VectorRecord]) -> InitializationResult:
        """
        Populate an empty cache from ``records`` and mark it ready.

        Bad records are skipped and reported in the result. On a ready cache
        this is a no-op that reports current stats with ``already_ready=True``.
        """

        started = time.perf_counter()
        with self._lock.write_locked():
            if self._state is CacheState.READY:
                return InitializationResult(
                    vectors_loaded=len(self._records),
                    memory_usage_kb=self._memory_kb_locked(),
                    already_ready=True,
                )

            self._state = CacheState.INITIALIZING
            _, rejected = self._load_locked(records)
            evicted = self._evict_locked()
            self._state = CacheState.READY
            self._last_updated = datetime.datetime.now(datetime.timezone.utc)
            result = InitializationResult(
                vectors_loaded=len(self._records),
                memory_usage_kb=self._memory_kb_locked(),
                vectors_rejected=len(rejected),
                rejected_ids=tuple(rejected),
                vectors_evicted=evicted,
                time_ms=(time.perf_counter() - started) * 1000,
            )

        logger.info(
            "Initialized cache %s: %d vectors (%d rejected, %d evicted), %d KB in %.1fms",
            self.tenant.cache_key,
            result.vectors_loaded,
            result.vectors_rejected,
            result.vectors_evicted,
            result.memory_usage_kb,
            result.time_ms,
        )
        if rejected:
            logger.warning("Rejected %d records for %s: %s", len(rejected), self.tenant.cache_key, rejected[:10])
        return result

    def refresh(self, records: Iterable[VectorRecord]) -> InitializationResult:
        """Atomically replace all contents with ``records`` and leave the cache ready."""

        started = time.perf_counter()
        with self._lock.write_locked():
            searches, hits, evictions = self._searches, self._hits, self._evictions
            self._reset_locked()
            self._searches, self._hits, self._evictions = searches, hits, evictions

            _, rejected = self._load_locked(records)
            evicted = self._evict_locked()
            self._state = CacheState.READY
            self._last_updated = datetime.datetime.now(datetime.timezone.utc)
            result = InitializationResult(
                vectors_loaded=len(self._records),
                memory_usage_kb=self._memory_kb_locked(),
                vectors_rejected=len(rejected),
                rejected_ids=tuple(rejected),
                vectors_evicted=evicted,
                time_ms=(time.perf_counter() - started) * 1000,
            )

        logger.info(
            "Refreshed cache %s: %d vectors (%d rejected)",
            self.tenant.cache_key,
            result.vectors_loaded,
            result.vectors_rejected,
        )
        return result

    def clear(self) -> None:
        """Drop every record and counter; the cache goes back to ``EMPTY``."""

        with self._lock.write_locked():
            self._reset_locked()
            self._searches = 0
            self._hits = 0
            self._evictions = 0
        logger.info("Cleared cache %s", self.tenant.cache_key)

    # ------------------------------------------------------------------ #
    # READ helpers
    # ------------------------------------------------------------------ #

    def search(
        self, query_vector: Sequence[float] | np.ndarray, options: SearchOptions | None = None
    ) -> List[SearchHit]:
        """
        Rank cached records against ``query_vector``.

        Returns hits with ``similarity >= threshold``, best first, at most
        ``limit`` of them. Every returned record becomes most recently used.

        :raises CacheNotReady: unless the cache is ``READY``.
        :raises DimensionMismatch: if the query length differs from the cache's.
        """

        opts = options or SearchOptions()
        threshold = self.default_threshold if opts.threshold is None else opts.threshold
        limit = self.default_limit if opts.limit is None else opts.limit

        query = np.asarray(query_vector, dtype=np.float32).reshape(-1)

        with self._lock.read_locked():
            if self._state is not CacheState.READY:
                raise CacheNotReady(
                    "Vector cache is not ready for search",
                    cache_key=self.tenant.cache_key,
                    state=self._state.value,
                )
            if query.shape[0] != self.dimension:
                raise DimensionMismatch(self.dimension, query.shape[0], cache_key=self.tenant.cache_key)
            if not np.all(np.isfinite(query)):
                raise InvalidVector("Query vector contains non-finite values")

            matrix, ids = self._snapshot_matrix()
            if opts.category_filter is not None or opts.source_type_filter is not None:
                keep = [
                    i
                    for i, rid in enumerate(ids)
                    if self._matches(self._records[rid], opts.category_filter, opts.source_type_filter)
                ]
                matrix = matrix[keep] if keep else matrix[:0]
                ids = [ids[i] for i in keep]

            matches = find_most_similar(query, matrix, top_k=limit, min_similarity=threshold) if ids else []
            hits = [SearchHit(self._records[ids[m.index]], m.similarity) for m in matches]

            with self._bookkeeping:
                self._searches += 1
                if hits:
                    self._hits += 1
                for hit in hits:
                    self._policy.touch(hit.record.id)

        logger.debug(
            "Search on %s: %d candidates, %d hits (threshold %.2f, limit %d)",
            self.tenant.cache_key,
            len(ids),
            len(hits),
            threshold,
            limit,
        )
        return hits

    def get(self, record_id: str) -> VectorRecord | None:
        """Return the record for ``record_id`` (refreshing its recency) or ``None``."""

        with self._lock.read_locked():
            record = self._records.get(record_id)
            if record is not None:
                with self._bookkeeping:
                    self._policy.touch(record_id)
            return record

    def get_stats(self) -> CacheStats:
        with self._lock.read_locked():
            with self._bookkeeping:
                searches, hits, evictions = self._searches, self._hits, self._evictions
            memory_kb = self._memory_kb_locked()
            return CacheStats(
                total_vectors=len(self._records),
                memory_usage_kb=memory_kb,
                memory_limit_kb=self.max_memory_kb,
                memory_utilization=(self._memory_bytes(len(self._records)) / 1024) / self.max_memory_kb * 100,
                cache_hit_rate=(hits / searches) if searches else 0.0,
                searches_performed=searches,
                cache_hits=hits,
                evictions_performed=evictions,
                state=self._state,
                last_updated=self._last_updated,
                dimension=self.dimension,
            )

    def records(self) -> List[VectorRecord]:
        """Snapshot of cached records ordered least -> most recently used."""

        with self._lock.read_locked():
            with self._bookkeeping:
                return [self._records[rid] for rid in self._policy.ids()]

    def access_info(self, record_id: str) -> AccessInfo | None:
        with self._bookkeeping:
            info = self._policy.info(record_id)
            if info is None:
                return None
            return AccessInfo(info.last_accessed_at, info.access_count)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # ------------------------------------------------------------------ #
    # WRITE helpers
    # ------------------------------------------------------------------ #

    def insert(self, record: VectorRecord) -> int:
        """
        Add or replace ``record`` and evict if over capacity.

        Returns the number of records evicted.

        :raises DimensionMismatch: on a wrong-length embedding.
        :raises InvalidVector: on NaN/Inf, all-zero or absurdly scaled embeddings.
        """

        self._check_record(record)
        with self._lock.write_locked():
            self._put_locked(record)
            evicted = self._evict_locked()
            self._last_updated = datetime.datetime.now(datetime.timezone.utc)
        return evicted

    def bulk_insert(self, records: Iterable[VectorRecord]) -> BulkInsertResult:
        """Insert every valid record; bad ones are skipped and reported."""

        with self._lock.write_locked():
            loaded, rejected = self._load_locked(records)
            evicted = self._evict_locked()
            self._last_updated = datetime.datetime.now(datetime.timezone.utc)
        return BulkInsertResult(inserted=loaded, rejected_ids=tuple(rejected), evicted=evicted)

    def remove(self, record_id: str) -> bool:
        with self._lock.write_locked():
            removed = self._drop_locked(record_id)
            if removed:
                self._last_updated = datetime.datetime.now(datetime.timezone.utc)
        return removed

    def remove_by_source(self, source_type: str, source_url: str | None = None) -> int:
        """Drop records from ``source_type`` (optionally a single ``source_url``)."""

        with self._lock.write_locked():
            doomed = [
                rid
                for rid, rec in self._records.items()
                if rec.metadata.source_type == source_type
                and (source_url is None or rec.metadata.source_url == source_url)
            ]
            for rid in doomed:
                self._drop_locked(rid)
            if doomed:
                self._last_updated = datetime.datetime.now(datetime.timezone.utc)

        if doomed:
            logger.info(
                "Removed %d records from %s (source_type=%s, source_url=%s)",
                len(doomed),
                self.tenant.cache_key,
                source_type,
                source_url,
            )
        return len(doomed)

    def evict_if_needed(self) -> int:
        """Evict least recently used records until both bounds hold; return the count."""

        with self._lock.write_locked():
            return self._evict_locked()

    # ------------------------------------------------------------------ #
    # Internals (callers hold the write lock unless noted)
    # ------------------------------------------------------------------ #

    def _check_record(self, record: VectorRecord) -> None:
        if record.dimension != self.dimension:
            raise DimensionMismatch(self.dimension, record.dimension, record_id=record.id)
        if not validate_vector(record.embedding):
            raise InvalidVector("Embedding failed validation", record_id=record.id)

    def _load_locked(self, records: Iterable[VectorRecord]) -> tuple[int, List[str]]:
        loaded = 0
        rejected: List[str] = []
        for record in records:
            try:
                self._check_record(record)
            except (DimensionMismatch, InvalidVector) as exc:
                logger.debug("Skipping record %s: %s", record.id, exc)
                rejected.append(record.id)
                continue
            self._put_locked(record)
            loaded += 1
        return loaded, rejected

    def _put_locked(self, record: VectorRecord) -> None:
        self._records[record.id] = record
        with self._bookkeeping:
            self._policy.track(record.id)
        self._matrix = None

    def _drop_locked(self, record_id: str) -> bool:
        if self._records.pop(record_id, None) is None:
            return False
        with self._bookkeeping:
            self._policy.forget(record_id)
        self._matrix = None
        return True

    def _reset_locked(self) -> None:
        self._records = {}
        with self._bookkeeping:
            self._policy.reset()
        self._matrix = None
        self._matrix_ids = []
        self._state = CacheState.EMPTY
        self._last_updated = None

    def _memory_bytes(self, count: int) -> int:
        return count * (self.dimension * FLOAT32_BYTES + self.metadata_overhead_bytes)

    def _memory_kb_locked(self) -> int:
        return int(round(self._memory_bytes(len(self._records)) / 1024))

    def _excess_locked(self) -> int:
        count = len(self._records)
        per_record = self.dimension * FLOAT32_BYTES + self.metadata_overhead_bytes
        fits_in_memory = (self.max_memory_kb * 1024) // per_record
        allowed = min(self.max_vectors, fits_in_memory)
        return max(0, count - allowed)

    def _evict_locked(self) -> int:
        evicted = 0
        needed = self._excess_locked()
        while needed > 0:
            with self._bookkeeping:
                victims = self._policy.victims(min(self.eviction_batch_size, needed))
            if not victims:
                break
            for rid in victims:
                self._drop_locked(rid)
            evicted += len(victims)
            needed -= len(victims)
            logger.info(
                "Evicted %d records from %s (%d remaining)",
                len(victims),
                self.tenant.cache_key,
                len(self._records),
            )
        if evicted:
            with self._bookkeeping:
                self._evictions += evicted
        return evicted

    def _snapshot_matrix(self) -> tuple[np.ndarray, List[str]]:
        """Return the stacked embeddings; caller holds at least the read lock."""

        with self._bookkeeping:
            if self._matrix is None:
                ids = list(self._records)
                if ids:
                    self._matrix = np.vstack([self._records[rid].embedding for rid in ids])
                else:
                    self._matrix = np.empty((0, self.dimension), dtype=np.float32)
                self._matrix_ids = ids
            return self._matrix, self._matrix_ids

    @staticmethod
    def _matches(record: VectorRecord, category: str | None, source_type: str | None) -> bool:
        if category is not None and record.metadata.category != category:
            return False
        if source_type is not None and record.metadata.source_type != source_type:
            return False
        return True


__all__ = ["VectorKnowledgeCache", "ReadWriteLock"]
