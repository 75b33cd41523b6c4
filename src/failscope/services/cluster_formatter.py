"""Обогащение сырых кластеров k-means исходными записями и метриками.

Для каждого кластера:
- индексы сопоставляются с записями группы (индексы вне диапазона
  отбрасываются с предупреждением);
- представитель — участник, ближайший (евклидово) к центроиду кластера;
- связность — средняя попарная косинусная близость участников,
  для кластера из одного участника ровно 1.0;
- категория — первая AI-категория, пересекающаяся с кластером,
  иначе синтетическая «Cluster N».
"""

from __future__ import annotations

import logging

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from failscope.models.clustering import ClusteredTest, ErrorCluster
from failscope.models.failures import UNKNOWN_ERROR, EmbeddedFailure
from failscope.models.llm import ClusterCategory, ErrorPatternAnalysis
from failscope.services.category_service import resolve_cluster_category
from failscope.services.kmeans import KMeansResult
from failscope.utils.vector_math import euclidean_distance

logger = logging.getLogger(__name__)


def format_clusters(
    kmeans_result: KMeansResult,
    embedded: list[EmbeddedFailure],
    analysis: ErrorPatternAnalysis | None = None,
) -> list[ErrorCluster]:
    """Собрать ``ErrorCluster`` для каждого непустого кластера k-means.

    ID кластеров нумеруются подряд с 0 после отбрасывания пустых.
    """
    categories = analysis.categories if analysis is not None else []
    formatted: list[ErrorCluster] = []

    for cluster_index, raw_members in enumerate(kmeans_result.clusters):
        members = _valid_members(raw_members, len(embedded), cluster_index)
        if not members:
            logger.debug("Кластер k-means #%d пуст, пропущен", cluster_index)
            continue

        centroid = (
            kmeans_result.centroids[cluster_index]
            if cluster_index < len(kmeans_result.centroids)
            else None
        )
        cluster_id = len(formatted)
        formatted.append(
            _build_cluster(cluster_id, members, centroid, embedded, categories)
        )

    return formatted


def _valid_members(
    raw_members: list[int],
    total: int,
    cluster_index: int,
) -> list[int]:
    """Отбросить индексы, не попадающие в список записей группы."""
    members: list[int] = []
    for index in raw_members:
        if 0 <= index < total:
            members.append(index)
        else:
            logger.warning(
                "Некорректный индекс %d в кластере %d (записей в группе: %d), участник отброшен",
                index,
                cluster_index,
                total,
            )
    return members


def _build_cluster(
    cluster_id: int,
    members: list[int],
    centroid: list[float] | None,
    embedded: list[EmbeddedFailure],
    categories: list[ClusterCategory],
) -> ErrorCluster:
    vectors = np.asarray([embedded[i].embedding for i in members], dtype=np.float64)
    sim_matrix = _similarity_matrix(vectors)

    representative = _select_representative(members, vectors, centroid)
    representative_error = embedded[representative].error_summary or UNKNOWN_ERROR

    tests: list[ClusteredTest] = []
    for position, index in enumerate(members):
        item = embedded[index]
        payload = item.record.model_dump(by_alias=True)
        payload.update(
            index=index,
            errorText=item.error_summary,
            similarity=_member_similarity(sim_matrix, position),
        )
        tests.append(ClusteredTest.model_validate(payload))

    return ErrorCluster(
        id=cluster_id,
        size=len(members),
        tests=tests,
        member_indices=list(members),
        representative_index=representative,
        representative_error=representative_error,
        avg_similarity=average_pairwise_similarity(sim_matrix),
        category=resolve_cluster_category(categories, members, cluster_id),
    )


def _similarity_matrix(vectors: np.ndarray) -> np.ndarray:
    """Матрица косинусной близости участников (нулевые векторы дают 0)."""
    if vectors.shape[0] < 2:
        return np.ones((vectors.shape[0], vectors.shape[0]), dtype=np.float64)
    matrix = cosine_similarity(vectors)
    np.clip(matrix, -1.0, 1.0, out=matrix)
    return matrix


def average_pairwise_similarity(sim_matrix: np.ndarray) -> float:
    """Среднее по парам i<j, округлённое до 2 знаков; 1.0 для size <= 1."""
    n = sim_matrix.shape[0]
    if n <= 1:
        return 1.0
    values = sim_matrix[np.triu_indices(n, k=1)]
    return round(float(values.mean()), 2)


def _member_similarity(sim_matrix: np.ndarray, position: int) -> float:
    """Средняя близость участника к остальным участникам кластера."""
    n = sim_matrix.shape[0]
    if n <= 1:
        return 1.0
    row = np.delete(sim_matrix[position], position)
    return round(float(row.mean()), 2)


def _select_representative(
    members: list[int],
    vectors: np.ndarray,
    centroid: list[float] | None,
) -> int:
    """Участник с минимальным расстоянием до центроида; при равенстве — первый."""
    if centroid is None:
        centroid = vectors.mean(axis=0).tolist()

    best_index = members[0]
    best_distance = float("inf")
    for index, vector in zip(members, vectors):
        distance = euclidean_distance(vector, centroid)
        if distance < best_distance:
            best_distance = distance
            best_index = index
    return best_index
