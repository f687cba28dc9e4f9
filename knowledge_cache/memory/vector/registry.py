"""Registry of per-tenant vector caches."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

from .cache import VectorKnowledgeCache
from .types import TenantKey

logger = logging.getLogger(__name__)


class CacheRegistry:
    """
    Owns one :class:`VectorKnowledgeCache` per :class:`TenantKey`.

    Caches are created lazily with the registry's default settings; callers
    that need non-default bounds pass ``cache_factory``.
    """

    def __init__(
        self,
        cache_factory: Callable[[TenantKey], VectorKnowledgeCache] | None = None,
        **cache_kwargs: Any,
    ) -> None:
        self._factory = cache_factory if cache_factory is not None else (lambda tenant: VectorKnowledgeCache(tenant, **cache_kwargs))
        self._caches: Dict[str, VectorKnowledgeCache] = {}
        self._lock = threading.Lock()

    def get_or_create(self, tenant: TenantKey) -> VectorKnowledgeCache:
        with self._lock:
            cache = self._caches.get(tenant.cache_key)
            if cache is None:
                cache = self._factory(tenant)
                self._caches[tenant.cache_key] = cache
                logger.debug("Created vector cache for %s", tenant.cache_key)
            return cache

    def get(self, tenant: TenantKey) -> VectorKnowledgeCache | None:
        with self._lock:
            return self._caches.get(tenant.cache_key)

    def drop(self, tenant: TenantKey) -> bool:
        """Forget ``tenant``'s cache entirely; the next access starts cold."""

        with self._lock:
            cache = self._caches.pop(tenant.cache_key, None)
        if cache is None:
            return False
        cache.clear()
        return True

    def tenants(self) -> List[TenantKey]:
        with self._lock:
            return [cache.tenant for cache in self._caches.values()]

    def ready_caches(self) -> List[VectorKnowledgeCache]:
        with self._lock:
            return [cache for cache in self._caches.values() if cache.is_ready()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)
