import asyncio

from conftest import DIM, FakeEmbeddingProvider, FakeVectorSource, make_record, unit
from knowledge_cache import KnowledgeEngine, SearchOptions, TenantKey
from knowledge_cache.memory.store import SQLiteVectorStore
from knowledge_cache.memory.vector.initializer import CacheInitializer
from knowledge_cache.memory.vector.registry import CacheRegistry


def _engine(source):
    embedder = FakeEmbeddingProvider(vectors={"pricing?": unit(1, 0, 0, 0)})
    return KnowledgeEngine(source, embedder, registry=CacheRegistry(dimension=DIM)), embedder


def test_orchestrator_is_per_tenant(tenant):
    engine, _ = _engine(FakeVectorSource())

    assert engine.orchestrator(tenant) is engine.orchestrator(tenant)
    assert engine.orchestrator(TenantKey("org-2", "kb")) is not engine.orchestrator(tenant)


def test_end_to_end_with_sqlite_store(tenant):
    store = SQLiteVectorStore(":memory:")
    engine, _ = _engine(store)

    async def run():
        await store.store_vectors(
            tenant,
            [
                make_record("pricing", unit(1, 0, 0, 0), source_type="page", source_url="https://x/p"),
                make_record("other", unit(0, 1, 0, 0), source_type="page", source_url="https://x/o"),
            ],
        )
        first = await engine.orchestrator(tenant).search_knowledge("pricing?")

        # Write path change is invisible until an explicit refresh.
        await store.delete_by_source(tenant, "page", "https://x/p")
        stale = await engine.orchestrator(tenant).search_knowledge("pricing?")
        await engine.refresh(tenant)
        fresh = await engine.orchestrator(tenant).search_knowledge("pricing?", SearchOptions(threshold=0.5))
        await engine.stop()
        return first, stale, fresh

    first, stale, fresh = asyncio.run(run())

    assert [i.id for i in first.items] == ["pricing"]
    assert [i.id for i in stale.items] == ["pricing"]
    assert fresh.items == []


def test_management_operations(tenant):
    source = FakeVectorSource([make_record("a", unit(1, 0, 0, 0), category="billing", content="Invoices monthly")])
    engine, embedder = _engine(source)

    async def run():
        init = await engine.initialize(tenant)
        again = await engine.refresh(tenant)
        warmed = await engine.warm(tenant)
        return init, again, warmed

    init, again, warmed = asyncio.run(run())

    assert init.vectors_loaded == 1
    assert again.vectors_loaded == 1
    assert warmed.items_warmed == 1
    assert engine.stats(tenant).total_vectors == 1
    assert engine.health(tenant).overall_health in {"good", "warning", "excellent"}

    assert engine.invalidate(tenant)
    assert not engine.invalidate(tenant)
    assert engine.stats(tenant).total_vectors == 0


def test_refresh_on_cold_tenant_initializes(tenant):
    source = FakeVectorSource([make_record("a", unit(1, 0, 0, 0))])
    engine, _ = _engine(source)

    result = asyncio.run(engine.refresh(tenant))

    assert result.vectors_loaded == 1
    assert source.calls == 1


def test_refresh_loop(tenant):
    source = FakeVectorSource([make_record("a", unit(1, 0, 0, 0))])
    engine, _ = _engine(source)

    async def run():
        assert await engine.start_refresh_loop(0) is None
        await engine.initialize(tenant)
        task = await engine.start_refresh_loop(0.01)
        assert await engine.start_refresh_loop(0.01) is task
        await asyncio.sleep(0.05)
        await engine.stop()
        return task

    task = asyncio.run(run())

    assert task.cancelled()
    assert source.calls >= 2


def test_injected_empty_collaborators_are_kept():
    registry = CacheRegistry(dimension=DIM)
    initializer = CacheInitializer(FakeVectorSource(), timeout_s=5)

    engine = KnowledgeEngine(FakeVectorSource(), FakeEmbeddingProvider(), registry=registry, initializer=initializer)

    assert len(registry) == 0
    assert engine.registry is registry
    assert engine.initializer is initializer


def test_invalidate_during_initialization(tenant):
    source = FakeVectorSource([make_record("pricing", unit(1, 0, 0, 0))], delay=0.05)
    engine, _ = _engine(source)

    async def run():
        first = asyncio.create_task(engine.orchestrator(tenant).search_knowledge("pricing?"))
        await asyncio.sleep(0.01)
        engine.invalidate(tenant)
        second = await engine.orchestrator(tenant).search_knowledge("pricing?")
        return await first, second

    first, second = asyncio.run(run())

    assert [i.id for i in first.items] == ["pricing"]
    assert [i.id for i in second.items] == ["pricing"]
    assert source.calls == 2
    assert engine.registry.get_or_create(tenant).is_ready()
