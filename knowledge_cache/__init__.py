"""
Per-tenant in-memory vector knowledge cache.

Import the composition root and value types from here::

    from knowledge_cache import KnowledgeEngine, TenantKey, SearchOptions
"""

from .engine import KnowledgeEngine
from .memory.vector.types import SearchOptions, TenantKey

__all__ = ["KnowledgeEngine", "SearchOptions", "TenantKey"]
