"""
Cache efficiency metrics and health report.

Read-only views over a :class:`VectorKnowledgeCache` meant for dashboards and
the maintenance loop. Indicator levels are ``excellent``/``good``/``warning``/
``critical`` (``poor`` for hit rate).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List

from .cache import VectorKnowledgeCache
from .types import CacheStats


@dataclass(frozen=True)
class EfficiencyMetrics:
    vector_density: float
    memory_density: float
    eviction_rate: float
    average_access_count: float
    average_time_since_access_ms: float
    total_accesses: int
    hot_vectors: int
    cold_vectors: int


@dataclass(frozen=True)
class HealthReport:
    stats: CacheStats
    efficiency: EfficiencyMetrics
    indicators: Dict[str, str]
    recommendations: List[str] = field(default_factory=list)
    overall_health: str = "good"


def efficiency_metrics(cache: VectorKnowledgeCache) -> EfficiencyMetrics:
    stats = cache.get_stats()
    now = time.time()

    counts: List[int] = []
    idle_ms: List[float] = []
    for record in cache.records():
        info = cache.access_info(record.id)
        if info is None:
            continue
        counts.append(info.access_count)
        idle_ms.append((now - info.last_accessed_at) * 1000)

    total = len(counts)
    total_accesses = sum(counts)
    average = total_accesses / total if total else 0.0

    return EfficiencyMetrics(
        vector_density=stats.total_vectors / cache.max_vectors if cache.max_vectors else 0.0,
        memory_density=stats.memory_usage_kb / cache.max_memory_kb if cache.max_memory_kb else 0.0,
        eviction_rate=(
            stats.evictions_performed / stats.searches_performed if stats.searches_performed else 0.0
        ),
        average_access_count=average,
        average_time_since_access_ms=sum(idle_ms) / total if total else 0.0,
        total_accesses=total_accesses,
        hot_vectors=sum(1 for c in counts if c > average),
        cold_vectors=sum(1 for c in counts if c == 0),
    )


def _overall(indicators: Dict[str, str]) -> str:
    levels = set(indicators.values())
    if "critical" in levels:
        return "critical"
    if "warning" in levels:
        return "warning"
    if "excellent" in levels:
        return "excellent"
    return "good"


def health_report(cache: VectorKnowledgeCache) -> HealthReport:
    """Assess memory pressure, hit rate, eviction churn and access skew."""

    stats = cache.get_stats()
    efficiency = efficiency_metrics(cache)

    if stats.memory_utilization < 90:
        memory_health = "good"
    elif stats.memory_utilization < 95:
        memory_health = "warning"
    else:
        memory_health = "critical"

    # An unused cache has no hit rate to judge.
    if stats.searches_performed == 0:
        hit_rate_health = "good"
    elif stats.cache_hit_rate > 0.95:
        hit_rate_health = "excellent"
    elif stats.cache_hit_rate > 0.8:
        hit_rate_health = "good"
    else:
        hit_rate_health = "poor"

    if efficiency.eviction_rate < 0.1:
        eviction_health = "good"
    elif efficiency.eviction_rate < 0.2:
        eviction_health = "warning"
    else:
        eviction_health = "critical"

    cold_ratio = efficiency.cold_vectors / stats.total_vectors if stats.total_vectors else 0.0
    access_health = "good" if cold_ratio < 0.3 else "warning"

    indicators = {
        "memory": memory_health,
        "hit_rate": hit_rate_health,
        "eviction": eviction_health,
        "access_pattern": access_health,
    }

    recommendations: List[str] = []
    if memory_health == "critical":
        recommendations.append("Consider increasing memory limit or reducing vector count")
    if hit_rate_health == "poor":
        recommendations.append("Review cache initialization and search patterns")
    if eviction_health == "critical":
        recommendations.append("Increase eviction batch size or memory limits")
    if efficiency.cold_vectors > stats.total_vectors * 0.5:
        recommendations.append("Consider more aggressive eviction of unused vectors")

    return HealthReport(
        stats=stats,
        efficiency=efficiency,
        indicators=indicators,
        recommendations=recommendations,
        overall_health=_overall(indicators),
    )
