import numpy as np

from knowledge_cache.memory.embeddings.cache import EmbeddingCache, text_key


def test_key_normalizes_case_and_whitespace():
    assert text_key("What is  X?") == text_key("  what is x? ")
    assert text_key("What is X?") != text_key("What is Y?")


def test_get_put_and_counters():
    cache = EmbeddingCache(maxsize=4)

    assert cache.get("hello") is None
    cache.put("hello", np.array([1.0, 2.0]))
    vec = cache.get("HELLO")

    assert vec.tolist() == [1.0, 2.0]
    assert vec.dtype == np.float32
    assert cache.hits == 1
    assert cache.misses == 1
    assert cache.hit_rate == 0.5
    assert "hello" in cache


def test_lru_bound():
    cache = EmbeddingCache(maxsize=2)
    cache.put("a", np.zeros(2))
    cache.put("b", np.zeros(2))
    cache.get("a")
    cache.put("c", np.zeros(2))

    assert len(cache) == 2
    assert "a" in cache
    assert "b" not in cache


def test_clear():
    cache = EmbeddingCache(maxsize=2)
    cache.put("a", np.zeros(2))
    cache.get("a")
    cache.clear()

    assert len(cache) == 0
    assert cache.hits == 0
    assert "entries" in cache.stats()
