"""Query-facing retrieval API over the per-tenant vector caches."""

from .orchestrator import KnowledgeItem, KnowledgeSearchResult, RetrievalOrchestrator

__all__ = ["KnowledgeItem", "KnowledgeSearchResult", "RetrievalOrchestrator"]
