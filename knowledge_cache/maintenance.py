"""
Background cache maintenance.

Helpers for scheduling periodic jobs and cancelling them on shutdown, plus the
one job the cache needs: re-pulling every ready tenant cache from the backing
store so it catches up with writes it never hears about on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from knowledge_cache.errors import KnowledgeCacheError
from knowledge_cache.memory.vector.initializer import CacheInitializer
from knowledge_cache.memory.vector.registry import CacheRegistry

logger = logging.getLogger(__name__)


async def startup(task_fn: Callable[[], Awaitable[None]], interval: float) -> asyncio.Task:
    """
    Schedule ``task_fn`` to run periodically every ``interval`` seconds.

    The first run happens after one interval. Exceptions raised by the task
    function are logged but do not stop the loop.

    Returns the created :class:`asyncio.Task` handle.
    """

    if interval <= 0:
        raise ValueError("interval must be positive")

    async def _periodic() -> None:
        await asyncio.sleep(interval)   # delay initial loop
        while True:
            try:
                await task_fn()
            except Exception:
                logger.exception("Maintenance cycle failed")
            await asyncio.sleep(interval)

    return asyncio.create_task(_periodic())


async def shutdown(task: asyncio.Task | None) -> None:
    """Cancel a task started with :func:`startup`; ``None`` is ignored."""

    if not task:
        return

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def refresh_ready_caches(registry: CacheRegistry, initializer: CacheInitializer) -> int:
    """
    Refresh every ready cache from the backing store.

    A failing tenant is logged and skipped so one broken knowledge base does
    not starve the rest. Returns the number of caches refreshed.
    """

    refreshed = 0
    for cache in registry.ready_caches():
        try:
            await initializer.refresh(cache)
        except KnowledgeCacheError as exc:
            logger.warning("Refresh failed for %s: %s", cache.tenant.cache_key, exc)
            continue
        refreshed += 1

    logger.info("Refreshed %d vector caches", refreshed)
    return refreshed
