"""
Error taxonomy
==============

Every failure the retrieval core can surface maps to one class here so callers
can tell "my data is bad" from "a dependency is down" without parsing strings.

``VectorIntegrityError``
    Malformed vectors (``DimensionMismatch``, ``InvalidVector``).
``CacheNotReady``
    Call-sequencing: search before the cache finished loading.
``QueryValidationError``
    Caller input (``EmptyQuery``, ``QueryTooLong``, ``LimitExceeded``).
``EmbeddingGenerationFailed`` / ``CacheInitializationFailed``
    Collaborator failures (embedding provider, backing store).
``InvalidRelevanceScore``
    Internal invariant breach; indicates a defect, not a user condition.
``PerformanceThresholdExceeded``
    Observability signal. Built and logged, attached to results, never raised
    by the orchestrator.
"""

from __future__ import annotations

from typing import Any


class KnowledgeCacheError(Exception):
    """Base class carrying a human message plus structured context."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


# --- Data integrity ---------------------------------------------------------

class VectorIntegrityError(KnowledgeCacheError):
    pass


class DimensionMismatch(VectorIntegrityError):
    def __init__(self, expected: int, actual: int, **context: Any) -> None:
        super().__init__(
            f"Expected vector of dimension {expected}, got {actual}",
            expected=expected,
            actual=actual,
            **context,
        )
        self.expected = expected
        self.actual = actual


class InvalidVector(VectorIntegrityError):
    pass


# --- Call sequencing --------------------------------------------------------

class CacheNotReady(KnowledgeCacheError):
    pass


# --- Caller input -----------------------------------------------------------

class QueryValidationError(KnowledgeCacheError):
    pass


class EmptyQuery(QueryValidationError):
    def __init__(self, **context: Any) -> None:
        super().__init__("Query is required for knowledge search", **context)


class QueryTooLong(QueryValidationError):
    def __init__(self, length: int, max_length: int, **context: Any) -> None:
        super().__init__(
            f"Query length {length} exceeds maximum of {max_length} characters",
            length=length,
            max_length=max_length,
            **context,
        )


class LimitExceeded(QueryValidationError):
    def __init__(self, limit: int, max_limit: int, **context: Any) -> None:
        super().__init__(
            f"Result limit must be between 1 and {max_limit}, got {limit}",
            limit=limit,
            max_limit=max_limit,
            **context,
        )


# --- Collaborators ----------------------------------------------------------

class EmbeddingGenerationFailed(KnowledgeCacheError):
    pass


class CacheInitializationFailed(KnowledgeCacheError):
    pass


# --- Internal invariants and signals ----------------------------------------

class InvalidRelevanceScore(KnowledgeCacheError):
    pass


class PerformanceThresholdExceeded(KnowledgeCacheError):
    def __init__(self, metric: str, threshold_ms: float, actual_ms: float, **context: Any) -> None:
        super().__init__(
            f"{metric} took {actual_ms:.1f}ms (budget {threshold_ms:.1f}ms)",
            metric=metric,
            threshold_ms=threshold_ms,
            actual_ms=actual_ms,
            **context,
        )
        self.metric = metric
        self.threshold_ms = threshold_ms
        self.actual_ms = actual_ms


__all__ = [
    "KnowledgeCacheError",
    "VectorIntegrityError",
    "DimensionMismatch",
    "InvalidVector",
    "CacheNotReady",
    "QueryValidationError",
    "EmptyQuery",
    "QueryTooLong",
    "LimitExceeded",
    "EmbeddingGenerationFailed",
    "CacheInitializationFailed",
    "InvalidRelevanceScore",
    "PerformanceThresholdExceeded",
]
