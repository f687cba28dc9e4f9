import numpy as np
import pytest

from knowledge_cache.errors import DimensionMismatch, InvalidVector
from knowledge_cache.memory.vector import similarity


def test_cosine_of_vector_with_itself_is_one():
    v = [0.3, -1.2, 4.0, 0.5]
    assert similarity.cosine_similarity(v, v) == pytest.approx(1.0)


def test_cosine_of_opposite_vectors_is_minus_one():
    assert similarity.cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)


def test_cosine_of_orthogonal_vectors_is_zero():
    assert similarity.cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)


def test_cosine_with_zero_vector_is_zero():
    assert similarity.cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
    assert similarity.cosine_similarity([0, 0, 0], [0, 0, 0]) == 0.0
    assert similarity.cosine_similarity([], []) == 0.0


def test_cosine_length_mismatch_raises():
    with pytest.raises(DimensionMismatch) as info:
        similarity.cosine_similarity([1, 2, 3], [1, 2])
    assert info.value.expected == 3
    assert info.value.actual == 2


def test_cosine_is_clamped():
    big = [1e30, 1e30]
    sim = similarity.cosine_similarity(big, big)
    assert -1.0 <= sim <= 1.0


def test_cosine_rejects_non_finite_values():
    with pytest.raises(InvalidVector):
        similarity.cosine_similarity([float("nan"), 1.0], [1.0, 1.0])
    with pytest.raises(InvalidVector):
        similarity.cosine_similarity([1.0, 1.0], [float("inf"), 1.0])


def test_duplicates_never_flag_corrupted_vectors():
    with pytest.raises(InvalidVector):
        similarity.find_duplicates([[float("nan"), 1.0], [0.0, 1.0]])
    with pytest.raises(InvalidVector):
        similarity.similarity_matrix([[1.0, 0.0], [float("nan"), 0.0]])


def test_ranking_skips_non_finite_candidates():
    matches = similarity.find_most_similar([1.0, 0.0], [[float("nan"), 0.0], [1.0, 0.0]])
    assert [m.index for m in matches] == [1]


def test_validate_vector():
    rng = np.random.default_rng(7)
    v = rng.normal(size=16)
    v = v / np.linalg.norm(v)

    assert similarity.validate_vector(v)
    assert not similarity.validate_vector([float("nan"), 0.1])
    assert not similarity.validate_vector([float("inf"), 0.1])
    assert not similarity.validate_vector([])
    assert not similarity.validate_vector([0, 0, 0])
    assert not similarity.validate_vector([1e-12, 0.0])
    assert not similarity.validate_vector([1e11, 1.0])


def test_validate_vector_norm_bounds_are_inclusive():
    assert similarity.validate_vector([1e-10])
    assert similarity.validate_vector([1e10])
    assert similarity.validate_vector([-1e10])


def test_normalize_returns_unit_copy():
    src = np.array([3.0, 4.0], dtype=np.float32)
    out = similarity.normalize(src)
    assert np.linalg.norm(out) == pytest.approx(1.0)
    assert src.tolist() == [3.0, 4.0]
    assert similarity.normalize([0, 0]).tolist() == [0.0, 0.0]


def test_find_most_similar_filters_sorts_and_truncates():
    query = [1.0, 0.0]
    candidates = [
        [0.0, 1.0],   # 0.0
        [1.0, 0.1],   # ~0.995
        [1.0, 1.0],   # ~0.707
        [-1.0, 0.0],  # -1
        [1.0, 0.0],   # 1.0
    ]
    matches = similarity.find_most_similar(query, candidates, top_k=2, min_similarity=0.5)

    assert [m.index for m in matches] == [4, 1]
    assert len(matches) <= 2
    assert all(m.similarity >= 0.5 for m in matches)


def test_find_most_similar_keeps_candidate_order_on_ties():
    candidates = [[1.0, 1.0], [1.0, 1.0], [0.0, 1.0], [1.0, 1.0]]
    matches = similarity.find_most_similar([1.0, 1.0], candidates, top_k=3)
    assert [m.index for m in matches] == [0, 1, 3]


def test_find_most_similar_accepts_matrix_and_checks_dimension():
    matrix = np.eye(3, dtype=np.float32)
    matches = similarity.find_most_similar([0, 1, 0], matrix, top_k=5)
    assert matches[0].index == 1

    with pytest.raises(DimensionMismatch):
        similarity.find_most_similar([0, 1], matrix)
    with pytest.raises(DimensionMismatch):
        similarity.find_most_similar([0, 1], [[1, 0], [1, 0, 0]])


def test_find_most_similar_empty_inputs():
    assert similarity.find_most_similar([1, 0], []) == []
    assert similarity.find_most_similar([1, 0], [[1, 0]], top_k=0) == []


def test_find_duplicates_sorted_descending():
    vectors = [[1.0, 0.0], [1.0, 0.01], [0.0, 1.0], [1.0, 0.02]]
    pairs = similarity.find_duplicates(vectors, threshold=0.95)

    assert {(p.index_a, p.index_b) for p in pairs} == {(0, 1), (0, 3), (1, 3)}
    sims = [p.similarity for p in pairs]
    assert sims == sorted(sims, reverse=True)


def test_find_outliers_sorted_ascending():
    vectors = [[1.0, 0.0], [1.0, 0.1], [1.0, 0.05], [-1.0, 0.0]]
    outliers = similarity.find_outliers(vectors, threshold=0.3)

    assert outliers[0].index == 3
    assert all(o.average_similarity < 0.3 for o in outliers)
    values = [o.average_similarity for o in outliers]
    assert values == sorted(values)


def test_similarity_matrix_is_symmetric_with_unit_diagonal():
    vectors = [[1, 0], [0, 1], [1, 1]]
    m = similarity.similarity_matrix(vectors)
    assert np.allclose(np.diag(m), 1.0)
    assert np.allclose(m, m.T)
    assert m[0, 2] == pytest.approx(1 / np.sqrt(2))


def test_diversity_score():
    assert similarity.diversity_score([[1, 0]]) == 0.0
    assert similarity.diversity_score([[1, 0], [1, 0]]) == pytest.approx(0.0)
    assert similarity.diversity_score([[1, 0], [0, 1]]) == pytest.approx(1.0)


def test_average_similarity_of_no_references_is_zero():
    assert similarity.average_similarity([1, 0], []) == 0.0
