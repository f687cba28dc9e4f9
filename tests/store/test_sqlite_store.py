import asyncio
import datetime

import numpy as np
import pytest

from conftest import make_record, unit
from knowledge_cache.memory.store import SQLiteVectorStore, VectorSource
from knowledge_cache.memory.vector.types import TenantKey


@pytest.fixture
def store():
    s = SQLiteVectorStore(":memory:")
    yield s
    s.close()


def _records():
    return [
        make_record(
            "pricing",
            unit(1, 0, 0, 0),
            category="billing",
            source_type="page",
            source_url="https://x/pricing",
            last_updated=datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc),
            tags=["plans", "cost"],
        ),
        make_record("faq-1", unit(0, 1, 0, 0), category="faq", source_type="faq"),
        make_record("about", unit(0, 0, 1, 0), source_type="page", source_url="https://x/about"),
    ]


def test_store_and_load_round_trip(store, tenant):
    async def run():
        written = await store.store_vectors(tenant, _records())
        return written, await store.get_all_vectors(tenant)

    written, loaded = asyncio.run(run())

    assert written == 3
    by_id = {r.id: r for r in loaded}
    pricing = by_id["pricing"]
    assert np.allclose(pricing.embedding, unit(1, 0, 0, 0))
    assert pricing.embedding.dtype == np.float32
    assert pricing.metadata.tags == ("plans", "cost")
    assert pricing.metadata.last_updated.year == 2024
    assert by_id["about"].metadata.category is None
    assert isinstance(store, VectorSource)


def test_upsert_by_id(store, tenant):
    async def run():
        await store.store_vectors(tenant, _records())
        await store.store_vectors(tenant, [make_record("pricing", unit(0, 0, 0, 1), title="New pricing")])
        return await store.get_all_vectors(tenant), await store.count_vectors(tenant)

    loaded, count = asyncio.run(run())

    assert count == 3
    pricing = next(r for r in loaded if r.id == "pricing")
    assert pricing.metadata.title == "New pricing"
    # Most recently written rows come last.
    assert loaded[-1].id == "pricing"


def test_tenants_are_isolated(store, tenant):
    other = TenantKey("org-2", "kb-1")

    async def run():
        await store.store_vectors(tenant, _records())
        await store.store_vectors(other, _records()[:1])
        return await store.count_vectors(tenant), await store.count_vectors(other)

    assert asyncio.run(run()) == (3, 1)


def test_delete_by_source(store, tenant):
    async def run():
        await store.store_vectors(tenant, _records())
        one = await store.delete_by_source(tenant, "page", "https://x/about")
        rest = await store.delete_by_source(tenant, "page")
        none = await store.delete_by_source(tenant, "crawler")
        return one, rest, none, await store.count_vectors(tenant)

    assert asyncio.run(run()) == (1, 1, 0, 1)


def test_category_counts(store, tenant):
    async def run():
        await store.store_vectors(tenant, _records())
        return await store.category_counts(tenant)

    assert asyncio.run(run()) == {"billing": 1, "faq": 1, "uncategorized": 1}


def test_store_nothing(store, tenant):
    assert asyncio.run(store.store_vectors(tenant, [])) == 0
    assert asyncio.run(store.get_all_vectors(tenant)) == []
