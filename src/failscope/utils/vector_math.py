"""Векторная математика для сравнения эмбеддингов."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from failscope.exceptions import DimensionMismatchError

Vector = Sequence[float] | np.ndarray


def _pair(a: Vector, b: Vector) -> tuple[np.ndarray, np.ndarray]:
    """Привести оба вектора к float64 и проверить совпадение размерности."""
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatchError(va.shape[0], vb.shape[0])
    return va, vb


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Косинусная близость двух векторов в диапазоне [-1, 1].

    Если хотя бы один вектор нулевой длины, возвращает 0.

    Raises:
        DimensionMismatchError: Векторы разной длины.
    """
    va, vb = _pair(a, b)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    value = float(np.dot(va, vb)) / (norm_a * norm_b)
    # Погрешность округления может вывести значение за [-1, 1]
    return min(1.0, max(-1.0, value))


def euclidean_distance(a: Vector, b: Vector) -> float:
    """Евклидово (L2) расстояние между двумя векторами.

    Raises:
        DimensionMismatchError: Векторы разной длины.
    """
    va, vb = _pair(a, b)
    return float(np.linalg.norm(va - vb))
