"""
Embedding generation package.

``provider``
    :class:`EmbeddingProvider` protocol plus the OpenAI and caching providers.
``cache``
    :class:`EmbeddingCache`, an LRU of normalized text -> vector.
``warmer``
    :class:`CacheWarmer`, best-effort pre-computation of likely embeddings.
"""

from .cache import EmbeddingCache
from .provider import CachedEmbeddingProvider, EmbeddingProvider, OpenAIEmbeddingProvider
from .warmer import CacheWarmer, WarmingSummary

__all__ = [
    "EmbeddingCache",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "CachedEmbeddingProvider",
    "CacheWarmer",
    "WarmingSummary",
]
