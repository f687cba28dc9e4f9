"""
Embedding-generation cache.

Bounded LRU of text -> embedding keyed by a hash of the case- and
whitespace-normalized text, so "What is X?" and "what  is x?" share a slot.
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict

import numpy as np

from knowledge_cache.config import embeddings


def text_key(text: str) -> str:
    """Return a 16-byte BLAKE2b hex digest of the normalized ``text``."""
    normalized = " ".join((text or "").lower().split())
    return hashlib.blake2b(normalized.encode("utf-8"), digest_size=16).hexdigest()


class EmbeddingCache:
    """Thread-safe LRU cache for embedding vectors."""

    def __init__(self, maxsize: int | None = None) -> None:
        self.maxsize = maxsize if maxsize is not None else embeddings.EMB_CACHE_SIZE
        if self.maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._entries: OrderedDict[str, np.ndarray] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, text: str) -> np.ndarray | None:
        key = text_key(text)
        with self._lock:
            vec = self._entries.get(key)
            if vec is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return vec

    def put(self, text: str, vec: np.ndarray) -> None:
        stored = np.array(vec, dtype=np.float32, copy=True)
        stored.flags.writeable = False
        key = text_key(text)
        with self._lock:
            self._entries[key] = stored
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def __contains__(self, text: object) -> bool:
        if not isinstance(text, str):
            return False
        with self._lock:
            return text_key(text) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def stats(self) -> str:
        return (
            f"Embedding cache: {len(self)}/{self.maxsize} entries, {self.hit_rate:.1%} hit rate "
            f"({self.hits} hits, {self.misses} misses)"
        )
