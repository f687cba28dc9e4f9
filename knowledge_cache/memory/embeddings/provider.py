"""
Embedding providers
===================

Centralizes embedding logic so the rest of the codebase does not care about
model details (dimensionality, provider, caching).

:class:`EmbeddingProvider` is the protocol the retrieval core depends on.
:class:`OpenAIEmbeddingProvider` is the production implementation and
:class:`CachedEmbeddingProvider` wraps any provider with an
:class:`~knowledge_cache.memory.embeddings.cache.EmbeddingCache`.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence, runtime_checkable

import numpy as np

from knowledge_cache.clients import oai
from knowledge_cache.config import embeddings, vector_cache

from .cache import EmbeddingCache

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    dimension: int

    async def embed(self, text: str) -> np.ndarray: ...

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]: ...


class OpenAIEmbeddingProvider:
    """Embeddings from the OpenAI API via :mod:`knowledge_cache.clients.oai`."""

    def __init__(self, model: str | None = None, dimension: int | None = None) -> None:
        self.model = model or embeddings.EMB_MODEL_ID
        self.dimension = dimension or vector_cache.EMB_DIM

    async def embed(self, text: str) -> np.ndarray:
        return await oai.embed_text(text, model=self.model, dim=self.dimension)

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        return await oai.embed_texts(texts, model=self.model, dim=self.dimension)


class CachedEmbeddingProvider:
    """Serve repeated texts from an LRU cache; only misses reach ``inner``."""

    def __init__(self, inner: EmbeddingProvider, cache: EmbeddingCache | None = None) -> None:
        self.inner = inner
        self.cache = cache if cache is not None else EmbeddingCache()

    @property
    def dimension(self) -> int:
        return self.inner.dimension

    async def embed(self, text: str) -> np.ndarray:
        cached = self.cache.get(text)
        if cached is not None:
            return cached
        vec = await self.inner.embed(text)
        self.cache.put(text, vec)
        return vec

    async def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        results: List[np.ndarray | None] = [self.cache.get(t) for t in texts]

        # Deduplicate misses so repeated texts cost one upstream slot.
        pending: dict[str, List[int]] = {}
        for i, vec in enumerate(results):
            if vec is None:
                pending.setdefault(texts[i], []).append(i)

        if pending:
            misses = list(pending)
            logger.debug("Embedding %d uncached texts (%d cached)", len(misses), len(texts) - sum(map(len, pending.values())))
            vectors = await self.inner.embed_batch(misses)
            if len(vectors) != len(misses):
                raise ValueError(f"Provider returned {len(vectors)} embeddings for {len(misses)} texts")
            for text, vec in zip(misses, vectors):
                self.cache.put(text, vec)
                for i in pending[text]:
                    results[i] = vec

        return [vec for vec in results if vec is not None]
