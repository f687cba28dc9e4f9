import asyncio

import pytest

from conftest import FakeEmbeddingProvider, FakeVectorSource, make_record, unit
from knowledge_cache.errors import KnowledgeCacheError
from knowledge_cache.memory.embeddings.cache import EmbeddingCache
from knowledge_cache.memory.embeddings.provider import CachedEmbeddingProvider
from knowledge_cache.memory.embeddings.warmer import (
    GENERIC_PATTERNS,
    CacheWarmer,
    extract_keywords,
    generate_patterns,
)


def _records():
    return [
        make_record("a", unit(1, 0, 0, 0), category="billing", content="Invoices are sent monthly. Invoices list usage."),
        make_record("b", unit(0, 1, 0, 0), category="billing", content="Refunds take five business days."),
        make_record("c", unit(0, 0, 1, 0), category=None, content="   "),
    ]


def test_extract_keywords_prefers_frequent_words():
    words = extract_keywords(["Invoices invoices usage, usage usage! a an the"], limit=2)
    assert words == ["usage", "invoices"]


def test_generate_patterns_order_and_cap():
    patterns = generate_patterns(_records(), max_patterns=100)

    assert patterns[:3] == ["What is billing?", "How does billing work?", "Tell me about billing"]
    assert "What is invoices?" in patterns
    assert "How to invoices?" in patterns
    assert patterns[-len(GENERIC_PATTERNS):] == list(GENERIC_PATTERNS)
    assert len(generate_patterns(_records(), max_patterns=4)) == 4


def test_warm_embeds_previews_and_patterns(tenant):
    source = FakeVectorSource(_records())
    inner = FakeEmbeddingProvider()
    embedder = CachedEmbeddingProvider(inner, EmbeddingCache(maxsize=100))
    warmer = CacheWarmer(source, embedder, max_patterns=6, preview_chars=10, concurrency=2)

    summary = asyncio.run(warmer.warm(tenant))

    assert summary.total_items == 3
    assert summary.items_warmed == 2
    assert summary.patterns_warmed == 6
    assert summary.categories == {"billing": 2, "uncategorized": 1}
    assert "Invoices a" in embedder.cache
    assert "What is billing?" in embedder.cache


def test_warm_skips_failing_items(tenant):
    class FlakyProvider(FakeEmbeddingProvider):
        async def embed(self, text):
            if text.startswith("Refunds"):
                raise RuntimeError("rate limited")
            return await super().embed(text)

    warmer = CacheWarmer(FakeVectorSource(_records()), FlakyProvider(), max_patterns=3)

    summary = asyncio.run(warmer.warm(tenant))

    assert summary.items_warmed == 1
    assert summary.patterns_warmed == 3


def test_warm_with_no_content(tenant):
    embedder = FakeEmbeddingProvider()
    summary = asyncio.run(CacheWarmer(FakeVectorSource([]), embedder).warm(tenant))

    assert summary.total_items == 0
    assert summary.items_warmed == 0
    assert embedder.calls == []


def test_warm_store_failure_raises(tenant):
    warmer = CacheWarmer(FakeVectorSource(error=RuntimeError("db down")), FakeEmbeddingProvider())

    with pytest.raises(KnowledgeCacheError):
        asyncio.run(warmer.warm(tenant))


def test_schedule_runs_in_background(tenant):
    embedder = FakeEmbeddingProvider()
    warmer = CacheWarmer(FakeVectorSource(_records()), embedder, max_patterns=2)

    async def run():
        task = warmer.schedule(tenant)
        return await task

    summary = asyncio.run(run())

    assert summary.items_warmed == 2
    assert len(embedder.calls) == 4
