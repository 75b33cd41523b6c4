"""Тесты векторной математики: косинусная близость и евклидово расстояние."""

from __future__ import annotations

import numpy as np
import pytest

from failscope.exceptions import DimensionMismatchError
from failscope.utils.vector_math import cosine_similarity, euclidean_distance


def test_cosine_identical_vectors_is_one() -> None:
    assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)


def test_cosine_orthogonal_vectors_is_zero() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_opposite_vectors_is_minus_one() -> None:
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_cosine_is_scale_invariant() -> None:
    assert cosine_similarity([1.0, 1.0], [10.0, 10.0]) == pytest.approx(1.0)


def test_cosine_zero_vector_returns_zero() -> None:
    """Нулевой вектор не даёт деления на ноль — результат 0."""
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_stays_within_bounds() -> None:
    """Погрешность округления не выводит значение за [-1, 1]."""
    vector = [0.1] * 768
    value = cosine_similarity(vector, vector)
    assert -1.0 <= value <= 1.0


def test_cosine_accepts_numpy_arrays() -> None:
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 1.0])) == pytest.approx(
        0.7071, abs=1e-4,
    )


def test_cosine_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError, match="3 != 2"):
        cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0])


def test_dimension_mismatch_is_value_error() -> None:
    """DimensionMismatchError ловится и как ValueError."""
    with pytest.raises(ValueError):
        euclidean_distance([1.0], [1.0, 2.0])


def test_euclidean_distance_345() -> None:
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)


def test_euclidean_distance_same_point_is_zero() -> None:
    assert euclidean_distance([1.5, -2.0], [1.5, -2.0]) == 0.0


def test_euclidean_distance_dimension_mismatch_carries_dims() -> None:
    with pytest.raises(DimensionMismatchError) as exc_info:
        euclidean_distance([1.0, 2.0], [1.0, 2.0, 3.0, 4.0])

    assert exc_info.value.left_dim == 2
    assert exc_info.value.right_dim == 4
