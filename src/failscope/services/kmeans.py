"""K-means кластеризация эмбеддингов упавших тестов.

Алгоритм Ллойда:
1. Инициализация: ``k`` центроидов — случайные различные точки выборки
   (генератор с опциональным seed для воспроизводимости).
2. Каждая точка назначается ближайшему центроиду (евклидово расстояние).
3. Центроид пересчитывается как среднее назначенных точек; центроид
   без точек остаётся на месте.
4. Повтор, пока максимальное смещение центроида не станет меньше
   ``tolerance`` или не исчерпан лимит итераций.

Вырожденный случай ``k >= n``: каждая точка — отдельный кластер,
центроиды совпадают с самими точками.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from sklearn.metrics.pairwise import euclidean_distances

from failscope.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TOLERANCE = 1e-4


@dataclass(frozen=True)
class KMeansResult:
    """Результат k-means: индексы точек по кластерам и финальные центроиды.

    ``clusters[c]`` может быть пустым, если центроид не получил ни одной
    точки (например, при дубликатах в выборке).
    """

    clusters: list[list[int]] = field(default_factory=list)
    centroids: list[list[float]] = field(default_factory=list)
    labels: list[int] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True


def kmeans(
    points: Sequence[Sequence[float]],
    k: int,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    seed: int | None = None,
) -> KMeansResult:
    """Разбить точки на ``k`` кластеров.

    Args:
        points: Векторы одинаковой размерности; индекс в списке — ID точки.
        k: Желаемое число кластеров (>= 1).
        max_iterations: Лимит итераций.
        tolerance: Порог максимального смещения центроида за итерацию.
        seed: Seed генератора для инициализации; None — случайная.

    Raises:
        ValueError: ``k < 1``.
        DimensionMismatchError: Векторы разной размерности.
    """
    n = len(points)
    if n == 0:
        return KMeansResult()
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")

    dims = {len(p) for p in points}
    if len(dims) > 1:
        raise DimensionMismatchError(min(dims), max(dims))

    if k >= n:
        logger.debug("K-means: k=%d >= n=%d, каждая точка — отдельный кластер", k, n)
        return KMeansResult(
            clusters=[[i] for i in range(n)],
            centroids=[[float(x) for x in p] for p in points],
            labels=list(range(n)),
            iterations=0,
            converged=True,
        )

    data = np.asarray(points, dtype=np.float64)
    rng = np.random.default_rng(seed)
    centroids = data[rng.choice(n, size=k, replace=False)].copy()

    labels = np.zeros(n, dtype=np.intp)
    converged = False
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        labels = euclidean_distances(data, centroids).argmin(axis=1)

        updated = centroids.copy()
        for c in range(k):
            mask = labels == c
            if mask.any():
                updated[c] = data[mask].mean(axis=0)

        shift = float(np.linalg.norm(updated - centroids, axis=1).max())
        centroids = updated
        if shift < tolerance:
            converged = True
            break

    clusters: list[list[int]] = [[] for _ in range(k)]
    for point_index, label in enumerate(labels.tolist()):
        clusters[label].append(point_index)

    logger.info(
        "K-means: %d точек в %d кластеров, итераций: %d, сошёлся: %s",
        n,
        k,
        iterations,
        "да" if converged else "нет",
    )

    return KMeansResult(
        clusters=clusters,
        centroids=centroids.tolist(),
        labels=labels.tolist(),
        iterations=iterations,
        converged=converged,
    )
