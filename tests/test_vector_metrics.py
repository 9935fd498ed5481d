"""Tests for feature-vector similarity metrics."""

import math

import numpy as np
import pytest

from visual_rank.vector_metrics import (
    DimensionMismatchError, cosine_similarity, euclidean_distance,
    euclidean_similarity, manhattan_distance, manhattan_similarity,
)


def unit(vector):
    v = np.asarray(vector, dtype=np.float64)
    return v / np.linalg.norm(v)


class TestCosineSimilarity:
    """Tests for cosine similarity."""

    def test_identical_vectors(self):
        a = unit([0.3, 0.4, 0.5, 0.1])
        assert cosine_similarity(a, a) == pytest.approx(1.0)

    def test_zero_vector_gives_zero(self):
        a = unit([1, 2, 3])
        assert cosine_similarity(a, np.zeros(3)) == 0.0
        assert cosine_similarity(np.zeros(3), a) == 0.0

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_accepts_lists(self):
        assert isinstance(cosine_similarity([1.0, 0.0], [1.0, 0.0]), float)

    def test_dimension_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError, match="dimension"):
            cosine_similarity([1, 0, 0], [1, 0])

    def test_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1, 0, 0], [1, 0])


class TestDistances:
    """Tests for raw distances and their similarity forms."""

    def test_euclidean_distance(self):
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)

    def test_manhattan_distance(self):
        assert manhattan_distance([0, 0], [3, -4]) == pytest.approx(7.0)

    def test_identical_unit_vectors_are_fully_similar(self):
        a = unit([0.2, 0.9, 0.4])
        assert euclidean_similarity(a, a) == pytest.approx(1.0)
        assert manhattan_similarity(a, a) == pytest.approx(1.0)

    def test_orthogonal_unit_vectors_euclidean(self):
        # distance sqrt(2) maps to 0
        assert euclidean_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_manhattan_normalized_by_twice_length(self):
        # distance 2 over length 2 -> 1 - 2 / 4
        assert manhattan_similarity([1, 0], [0, 1]) == pytest.approx(0.5)

    def test_closer_vectors_more_similar(self):
        q = unit([1, 0, 0])
        near = unit([1, 0.1, 0])
        far = unit([1, 1, 0])
        assert euclidean_similarity(q, near) > euclidean_similarity(q, far)
        assert manhattan_similarity(q, near) > manhattan_similarity(q, far)

    @pytest.mark.parametrize("metric", [
        euclidean_distance, manhattan_distance,
        euclidean_similarity, manhattan_similarity,
    ])
    def test_dimension_mismatch_raises(self, metric):
        with pytest.raises(DimensionMismatchError):
            metric([1, 0, 0], [1, 0])

    def test_unit_bound_constant(self):
        assert euclidean_similarity([1, 0], [-1, 0]) == pytest.approx(1 - 2 / math.sqrt(2))
