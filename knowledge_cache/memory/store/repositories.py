"""
Repositories (SQL-only)
=======================
- Pure CRUD and selects; embeddings travel as raw float32 blobs.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import sqlite3
import time
from typing import Dict, List, Sequence

import numpy as np

from knowledge_cache.memory.vector.types import KnowledgeMetadata, TenantKey, VectorRecord


def to_bytes(vec: np.ndarray) -> bytes:
    """Serialize an embedding array to raw bytes."""
    return np.asarray(vec, dtype=np.float32).tobytes()


def from_bytes(blob: bytes) -> np.ndarray:
    """Deserialize raw bytes into a ``np.ndarray`` embedding."""
    return np.frombuffer(blob, dtype=np.float32)


def _to_iso(ts: datetime.datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def _from_iso(raw: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(raw) if raw else None


def row_to_record(row: sqlite3.Row) -> VectorRecord:
    metadata = KnowledgeMetadata(
        title=row["title"],
        content=row["content"],
        category=row["category"],
        source_type=row["source_type"],
        source_url=row["source_url"],
        last_updated=_from_iso(row["last_updated"]),
        tags=tuple(json.loads(row["tags"] or "[]")),
    )
    return VectorRecord(row["item_id"], from_bytes(row["embedding"]), metadata)


class KnowledgeVectorsRepo:
    def __init__(self, conn: sqlite3.Connection, lock: asyncio.Lock):
        self.conn = conn
        self._lock = lock

    async def get_all_vectors(self, tenant: TenantKey) -> List[VectorRecord]:
        """Every record for ``tenant``, oldest update first."""
        sql = """
            SELECT item_id, title, content, category, source_type, source_url,
                   last_updated, tags, embedding
            FROM knowledge_vectors
            WHERE organization_id=? AND knowledge_base_id=?
            ORDER BY updated_ts ASC, item_id ASC
        """

        def _query() -> List[VectorRecord]:
            rows = self.conn.execute(sql, (tenant.organization_id, tenant.knowledge_base_id)).fetchall()
            return [row_to_record(r) for r in rows]

        async with self._lock:
            return await asyncio.to_thread(_query)

    async def store_vectors(self, tenant: TenantKey, records: Sequence[VectorRecord]) -> int:
        """Upsert ``records`` by id; returns the number of rows written."""
        if not records:
            return 0
        sql = """
            INSERT INTO knowledge_vectors (
              organization_id, knowledge_base_id, item_id,
              title, content, category, source_type, source_url,
              last_updated, tags, embedding, emb_dim, updated_ts
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(organization_id, knowledge_base_id, item_id) DO UPDATE SET
              title=excluded.title,
              content=excluded.content,
              category=excluded.category,
              source_type=excluded.source_type,
              source_url=excluded.source_url,
              last_updated=excluded.last_updated,
              tags=excluded.tags,
              embedding=excluded.embedding,
              emb_dim=excluded.emb_dim,
              updated_ts=excluded.updated_ts
        """
        now = time.time()
        rows = [
            (
                tenant.organization_id,
                tenant.knowledge_base_id,
                r.id,
                r.metadata.title,
                r.metadata.content,
                r.metadata.category,
                r.metadata.source_type,
                r.metadata.source_url,
                _to_iso(r.metadata.last_updated),
                json.dumps(list(r.metadata.tags)),
                to_bytes(r.embedding),
                r.dimension,
                now,
            )
            for r in records
        ]

        def _run() -> int:
            with self.conn:
                self.conn.executemany(sql, rows)
            return len(rows)

        async with self._lock:
            return await asyncio.to_thread(_run)

    async def delete_by_source(
        self, tenant: TenantKey, source_type: str, source_url: str | None = None
    ) -> int:
        sql = """
            DELETE FROM knowledge_vectors
            WHERE organization_id=? AND knowledge_base_id=? AND source_type=?
        """
        params: list = [tenant.organization_id, tenant.knowledge_base_id, source_type]
        if source_url is not None:
            sql += " AND source_url=?"
            params.append(source_url)

        def _run() -> int:
            with self.conn:
                cur = self.conn.execute(sql, params)
            return cur.rowcount

        async with self._lock:
            return await asyncio.to_thread(_run)

    async def count_vectors(self, tenant: TenantKey) -> int:
        sql = "SELECT COUNT(*) FROM knowledge_vectors WHERE organization_id=? AND knowledge_base_id=?"

        def _query() -> int:
            row = self.conn.execute(sql, (tenant.organization_id, tenant.knowledge_base_id)).fetchone()
            return int(row[0]) if row else 0

        async with self._lock:
            return await asyncio.to_thread(_query)

    async def category_counts(self, tenant: TenantKey) -> Dict[str, int]:
        sql = """
            SELECT COALESCE(category, 'uncategorized') AS category, COUNT(*) AS n
            FROM knowledge_vectors
            WHERE organization_id=? AND knowledge_base_id=?
            GROUP BY COALESCE(category, 'uncategorized')
        """

        def _query() -> Dict[str, int]:
            rows = self.conn.execute(sql, (tenant.organization_id, tenant.knowledge_base_id)).fetchall()
            return {r["category"]: int(r["n"]) for r in rows}

        async with self._lock:
            return await asyncio.to_thread(_query)
