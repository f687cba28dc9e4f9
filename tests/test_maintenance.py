import asyncio

import pytest

from conftest import DIM, FakeVectorSource, make_record, unit
from knowledge_cache import maintenance
from knowledge_cache.memory.vector.initializer import CacheInitializer
from knowledge_cache.memory.vector.registry import CacheRegistry
from knowledge_cache.memory.vector.types import TenantKey


def test_startup_runs_periodically_and_shutdown_cancels():
    calls = []

    async def job():
        calls.append(1)
        if len(calls) == 2:
            raise RuntimeError("boom")

    async def run():
        task = await maintenance.startup(job, 0.01)
        await asyncio.sleep(0.1)
        await maintenance.shutdown(task)
        return task

    task = asyncio.run(run())

    # A failing cycle does not stop the loop.
    assert len(calls) >= 3
    assert task.cancelled()


def test_startup_rejects_non_positive_interval():
    async def job():
        return None

    with pytest.raises(ValueError):
        asyncio.run(maintenance.startup(job, 0))


def test_shutdown_tolerates_none():
    asyncio.run(maintenance.shutdown(None))


def test_refresh_ready_caches_skips_cold_and_failing(tenant):
    good = tenant
    broken = TenantKey("org-1", "broken")
    cold = TenantKey("org-1", "cold")

    class PartlyBrokenSource(FakeVectorSource):
        async def get_all_vectors(self, t):
            if t == broken and self.calls >= 2:
                self.calls += 1
                raise RuntimeError("db down")
            return await super().get_all_vectors(t)

    source = PartlyBrokenSource([make_record("a", unit(1, 0, 0, 0))])
    registry = CacheRegistry(dimension=DIM)
    initializer = CacheInitializer(source, timeout_s=1)

    async def run():
        await initializer.ensure_ready(registry.get_or_create(good))
        await initializer.ensure_ready(registry.get_or_create(broken))
        registry.get_or_create(cold)
        source.set(good, [make_record("a", unit(1, 0, 0, 0)), make_record("b", unit(0, 1, 0, 0))])
        return await maintenance.refresh_ready_caches(registry, initializer)

    refreshed = asyncio.run(run())

    assert refreshed == 1
    assert len(registry.get(good)) == 2
    assert len(registry.get(broken)) == 1
    assert not registry.get(cold).is_ready()
