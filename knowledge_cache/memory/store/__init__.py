"""
Durable backing store for knowledge vectors
===========================================

The retrieval core only depends on :class:`VectorSource`. Write-path methods
on :class:`SQLiteVectorStore` (``store_vectors``, ``delete_by_source``) are for
ingestion jobs; the cache never calls them and only learns about changes via
an explicit refresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from knowledge_cache.memory.vector.types import TenantKey, VectorRecord

from . import db as _db
from .repositories import KnowledgeVectorsRepo

logger = logging.getLogger(__name__)


@runtime_checkable
class VectorSource(Protocol):
    async def get_all_vectors(self, tenant: TenantKey) -> Sequence[VectorRecord]: ...


class SQLiteVectorStore:
    """SQLite-backed :class:`VectorSource` with the ingestion write path."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._conn = _db.connect(path)
        _db.migrate(self._conn)
        self._lock = asyncio.Lock()
        self._repo = KnowledgeVectorsRepo(self._conn, self._lock)

    async def get_all_vectors(self, tenant: TenantKey) -> List[VectorRecord]:
        return await self._repo.get_all_vectors(tenant)

    async def store_vectors(self, tenant: TenantKey, records: Sequence[VectorRecord]) -> int:
        return await self._repo.store_vectors(tenant, records)

    async def delete_by_source(
        self, tenant: TenantKey, source_type: str, source_url: str | None = None
    ) -> int:
        return await self._repo.delete_by_source(tenant, source_type, source_url)

    async def count_vectors(self, tenant: TenantKey) -> int:
        return await self._repo.count_vectors(tenant)

    async def category_counts(self, tenant: TenantKey) -> Dict[str, int]:
        return await self._repo.category_counts(tenant)

    def close(self) -> None:
        try:
            _db.wal_checkpoint_truncate(self._conn)
        finally:
            self._conn.close()


__all__ = ["VectorSource", "SQLiteVectorStore", "KnowledgeVectorsRepo"]
