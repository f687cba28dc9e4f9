"""
Similarity math
===============

Pure functions over embedding vectors. Nothing here touches cache state, so
every helper is safe to call from any thread.

- :func:`cosine_similarity` is clamped to ``[-1, 1]``, rejects NaN/Inf and
  returns ``0.0`` for zero vectors instead of dividing by zero.
- :func:`find_most_similar` is the ranking used on the query hot path.
- :func:`find_duplicates`, :func:`find_outliers`, :func:`diversity_score` are
  offline knowledge-base quality checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from knowledge_cache.errors import DimensionMismatch, InvalidVector

MIN_NORM = 1e-10
MAX_NORM = 1e10

DEFAULT_TOP_K = 5
DEFAULT_MIN_SIMILARITY = 0.0
DEFAULT_DUPLICATE_THRESHOLD = 0.95
DEFAULT_OUTLIER_THRESHOLD = 0.3


@dataclass(frozen=True)
class SimilarityMatch:
    """Ranking result; ``index`` points back into the candidate sequence."""

    index: int
    similarity: float


@dataclass(frozen=True)
class DuplicatePair:
    index_a: int
    index_b: int
    similarity: float


@dataclass(frozen=True)
class Outlier:
    index: int
    average_similarity: float


def _as_vector(v) -> np.ndarray:
    return np.asarray(v, dtype=np.float64).reshape(-1)


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of ``a`` and ``b`` in ``[-1, 1]``.

    :raises DimensionMismatch: if the vectors differ in length.
    :raises InvalidVector: if either vector holds NaN or Inf.
    """
    va = _as_vector(a)
    vb = _as_vector(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatch(va.shape[0], vb.shape[0])
    if not (np.all(np.isfinite(va)) and np.all(np.isfinite(vb))):
        raise InvalidVector("Cannot compare vectors with non-finite values")
    if va.shape[0] == 0:
        return 0.0

    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0

    sim = float(np.dot(va, vb)) / denom
    return max(-1.0, min(1.0, sim))


def validate_vector(v) -> bool:
    """Return ``False`` for empty, non-finite, all-zero or absurdly scaled vectors."""
    try:
        vec = _as_vector(v)
    except (TypeError, ValueError):
        return False
    if vec.shape[0] == 0:
        return False
    if not np.all(np.isfinite(vec)):
        return False
    if not np.any(vec):
        return False
    norm = float(np.linalg.norm(vec))
    return MIN_NORM <= norm <= MAX_NORM


def normalize(v) -> np.ndarray:
    """Return a unit-length ``float32`` copy of ``v``; zero vectors stay zero."""
    vec = np.array(v, dtype=np.float32, copy=True).reshape(-1)
    norm = float(np.linalg.norm(vec))
    if norm > 0:
        vec /= norm
    return vec


def _similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Row-wise cosine similarity of ``query`` against ``matrix`` (n x d).

    Rows with NaN/Inf come back as NaN, so no threshold ever keeps them.
    """
    with np.errstate(invalid="ignore", over="ignore"):
        norms = np.linalg.norm(matrix, axis=1)
        qnorm = float(np.linalg.norm(query))
        dots = matrix @ query
        denom = norms * qnorm
    sims = np.zeros(matrix.shape[0], dtype=np.float64)
    sims[~np.isfinite(denom)] = np.nan
    nonzero = np.isfinite(denom) & (denom > 0)
    sims[nonzero] = dots[nonzero] / denom[nonzero]
    return np.clip(sims, -1.0, 1.0)


def find_most_similar(
    query,
    candidates: Sequence | np.ndarray,
    top_k: int = DEFAULT_TOP_K,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> list[SimilarityMatch]:
    """
    Rank ``candidates`` against ``query``.

    Keeps candidates with ``similarity >= min_similarity``, sorts descending
    (stable, so ties keep candidate order) and truncates to ``top_k``.

    :raises DimensionMismatch: if any candidate's length differs from the query.
    """
    q = _as_vector(query)
    if top_k <= 0 or len(candidates) == 0:
        return []

    if isinstance(candidates, np.ndarray) and candidates.ndim == 2:
        matrix = candidates.astype(np.float64, copy=False)
        if matrix.shape[1] != q.shape[0]:
            raise DimensionMismatch(q.shape[0], matrix.shape[1])
    else:
        rows = [_as_vector(c) for c in candidates]
        for row in rows:
            if row.shape[0] != q.shape[0]:
                raise DimensionMismatch(q.shape[0], row.shape[0])
        matrix = np.vstack(rows)

    sims = _similarities(q, matrix)
    keep = np.flatnonzero(sims >= min_similarity)
    if keep.size == 0:
        return []

    order = keep[np.argsort(-sims[keep], kind="stable")]
    return [SimilarityMatch(int(i), float(sims[i])) for i in order[:top_k]]


def similarity_matrix(vectors: Sequence) -> np.ndarray:
    """Symmetric pairwise similarity matrix with a unit diagonal."""
    size = len(vectors)
    matrix = np.eye(size, dtype=np.float64)
    for i in range(size):
        for j in range(i + 1, size):
            sim = cosine_similarity(vectors[i], vectors[j])
            matrix[i, j] = sim
            matrix[j, i] = sim
    return matrix


def find_duplicates(
    vectors: Sequence, threshold: float = DEFAULT_DUPLICATE_THRESHOLD
) -> list[DuplicatePair]:
    """Every pair with similarity ``>= threshold``, most similar first."""
    pairs: list[DuplicatePair] = []
    for i in range(len(vectors)):
        for j in range(i + 1, len(vectors)):
            sim = cosine_similarity(vectors[i], vectors[j])
            if sim >= threshold:
                pairs.append(DuplicatePair(i, j, sim))
    pairs.sort(key=lambda p: p.similarity, reverse=True)
    return pairs


def average_similarity(target, references: Sequence) -> float:
    if len(references) == 0:
        return 0.0
    total = sum(cosine_similarity(target, ref) for ref in references)
    return total / len(references)


def find_outliers(
    vectors: Sequence, threshold: float = DEFAULT_OUTLIER_THRESHOLD
) -> list[Outlier]:
    """Vectors whose mean similarity to the rest is below ``threshold``, lowest first."""
    outliers: list[Outlier] = []
    for i, vec in enumerate(vectors):
        others = [v for j, v in enumerate(vectors) if j != i]
        avg = average_similarity(vec, others)
        if avg < threshold:
            outliers.append(Outlier(i, avg))
    outliers.sort(key=lambda o: o.average_similarity)
    return outliers


def diversity_score(vectors: Sequence) -> float:
    """Mean pairwise cosine distance (``1 - similarity``); 0 for fewer than 2 vectors."""
    if len(vectors) < 2:
        return 0.0
    total = 0.0
    pairs = 0
    for i in range(len(vectors)):
        for j in range(i + 1, len(vectors)):
            total += 1.0 - cosine_similarity(vectors[i], vectors[j])
            pairs += 1
    return total / pairs
