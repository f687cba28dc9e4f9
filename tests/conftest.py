import asyncio
import os, sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

# Keep a developer's local config.toml / database out of the test run
os.environ.setdefault("KNOWLEDGE_CACHE_CONFIG", str(Path(__file__).with_name("no-config.toml")))
os.environ.setdefault("OPENAI_API_KEY", "test-openai")
os.environ.setdefault("SQL_DB_PATH", ":memory:")

from knowledge_cache.memory.vector.types import TenantKey, VectorRecord  # noqa: E402

DIM = 4


def make_record(record_id, vec, **meta):
    meta.setdefault("title", f"Title {record_id}")
    meta.setdefault("content", f"Content for {record_id}")
    return VectorRecord.create(record_id, vec, **meta)


def unit(*values):
    vec = np.asarray(values, dtype=np.float32)
    return vec / np.linalg.norm(vec)


class FakeVectorSource:
    """In-memory VectorSource with call counting and failure injection."""

    def __init__(self, records=None, *, delay=0.0, error=None):
        self.records = {}
        if records is not None:
            self.records[None] = list(records)
        self.delay = delay
        self.error = error
        self.calls = 0

    def set(self, tenant, records):
        self.records[tenant.cache_key] = list(records)

    async def get_all_vectors(self, tenant):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if tenant.cache_key in self.records:
            return list(self.records[tenant.cache_key])
        return list(self.records.get(None, []))


class FakeEmbeddingProvider:
    """Deterministic embeddings; explicit vectors win over the hash fallback."""

    def __init__(self, dimension=DIM, vectors=None, *, delay=0.0, error=None):
        self.dimension = dimension
        self.vectors = dict(vectors or {})
        self.delay = delay
        self.error = error
        self.calls = []
        self.batch_calls = []

    def _vector(self, text):
        if text in self.vectors:
            return np.asarray(self.vectors[text], dtype=np.float32)
        rng = np.random.default_rng(abs(hash(text)) % (2**32))
        return rng.normal(size=self.dimension).astype(np.float32)

    async def embed(self, text):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self._vector(text)

    async def embed_batch(self, texts):
        self.batch_calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [self._vector(t) for t in texts]


@pytest.fixture
def tenant():
    return TenantKey("org-1", "kb-1")


@pytest.fixture
def source():
    return FakeVectorSource()


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()
