"""
Similarity metrics between two feature vectors.

Feature vectors are produced unit-normalized, so Euclidean distance is
bounded by sqrt(2) and per-component absolute differences by 2. The
similarity variants below rely on those bounds to map distances into
[0, 1].
"""

import math
from typing import Tuple

import numpy as np

MAX_UNIT_EUCLIDEAN = math.sqrt(2)


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different length are compared."""


def _as_pair(a, b) -> Tuple[np.ndarray, np.ndarray]:
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(
            f"Vector dimension {a.shape[0]} doesn't match {b.shape[0]}"
        )
    return a, b


def cosine_similarity(a, b) -> float:
    """
    Cosine of the angle between two vectors.

    Returns:
        dot(a, b) / (|a| * |b|), or 0.0 if either vector has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    a, b = _as_pair(a, b)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def euclidean_distance(a, b) -> float:
    a, b = _as_pair(a, b)
    return float(np.linalg.norm(a - b))


def manhattan_distance(a, b) -> float:
    a, b = _as_pair(a, b)
    return float(np.sum(np.abs(a - b)))


def euclidean_similarity(a, b) -> float:
    """1 - euclidean distance scaled by the unit-vector maximum sqrt(2)."""
    return 1.0 - euclidean_distance(a, b) / MAX_UNIT_EUCLIDEAN


def manhattan_similarity(a, b) -> float:
    """1 - manhattan distance scaled by 2L for vectors of length L."""
    distance = manhattan_distance(a, b)
    length = np.asarray(a).size
    if length == 0:
        return 1.0
    return 1.0 - distance / (2 * length)
