"""Тесты обогащения кластеров: представитель, связность, категории."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from conftest import make_embedded
from failscope.models.llm import ClusterCategory, ErrorPatternAnalysis
from failscope.services.cluster_formatter import (
    average_pairwise_similarity,
    format_clusters,
)
from failscope.services.kmeans import KMeansResult


def test_representative_is_closest_to_centroid() -> None:
    embedded = [
        make_embedded(0, [0.5, 0.5]),
        make_embedded(1, [1.0, 0.0]),
        make_embedded(2, [0.9, 0.1]),
    ]
    result = KMeansResult(clusters=[[0, 1, 2]], centroids=[[1.0, 0.0]])

    clusters = format_clusters(result, embedded)

    assert len(clusters) == 1
    assert clusters[0].representative_index == 1


def test_representative_tie_takes_first_member() -> None:
    """При равном расстоянии побеждает первый участник в порядке кластера."""
    embedded = [
        make_embedded(0, [1.0, 0.0], reason="first"),
        make_embedded(1, [1.0, 0.0], reason="second"),
    ]
    result = KMeansResult(clusters=[[1, 0]], centroids=[[1.0, 0.0]])

    clusters = format_clusters(result, embedded)

    assert clusters[0].representative_index == 1
    assert clusters[0].representative_error == "second"


def test_representative_error_is_summary_without_prefix() -> None:
    embedded = [make_embedded(0, [1.0, 0.0], reason="Wrong capital city")]
    result = KMeansResult(clusters=[[0]], centroids=[[1.0, 0.0]])

    cluster = format_clusters(result, embedded)[0]

    assert cluster.representative_error == "Wrong capital city"
    assert cluster.tests[0].error_text == "Wrong capital city"


def test_missing_reason_uses_unknown_error() -> None:
    embedded = [make_embedded(0, [1.0], reason=None)]
    result = KMeansResult(clusters=[[0]], centroids=[[1.0]])

    cluster = format_clusters(result, embedded)[0]

    assert cluster.representative_error == "Unknown error"


def test_singleton_cluster_similarity_is_one() -> None:
    embedded = [make_embedded(0, [0.2, 0.7])]
    result = KMeansResult(clusters=[[0]], centroids=[[0.2, 0.7]])

    cluster = format_clusters(result, embedded)[0]

    assert cluster.size == 1
    assert cluster.avg_similarity == 1.0
    assert cluster.tests[0].similarity == 1.0


def test_avg_similarity_is_rounded_pairwise_mean() -> None:
    embedded = [make_embedded(0, [1.0, 0.0]), make_embedded(1, [1.0, 1.0])]
    result = KMeansResult(clusters=[[0, 1]], centroids=[[1.0, 0.5]])

    cluster = format_clusters(result, embedded)[0]

    assert cluster.avg_similarity == 0.71


def test_identical_members_have_full_similarity() -> None:
    embedded = [make_embedded(i, [0.0, 1.0, 0.0]) for i in range(3)]
    result = KMeansResult(clusters=[[0, 1, 2]], centroids=[[0.0, 1.0, 0.0]])

    cluster = format_clusters(result, embedded)[0]

    assert cluster.avg_similarity == 1.0
    assert [t.similarity for t in cluster.tests] == [1.0, 1.0, 1.0]


def test_empty_clusters_are_dropped_and_ids_renumbered() -> None:
    embedded = [make_embedded(0, [1.0, 0.0]), make_embedded(1, [0.0, 1.0])]
    result = KMeansResult(
        clusters=[[0], [], [1]],
        centroids=[[1.0, 0.0], [1.0, 0.0], [0.0, 1.0]],
    )

    clusters = format_clusters(result, embedded)

    assert [c.id for c in clusters] == [0, 1]
    assert [c.member_indices for c in clusters] == [[0], [1]]


def test_out_of_range_member_is_dropped_with_warning(caplog) -> None:
    embedded = [make_embedded(0, [1.0, 0.0]), make_embedded(1, [1.0, 0.1])]
    result = KMeansResult(clusters=[[0, 7, 1]], centroids=[[1.0, 0.05]])

    with caplog.at_level(logging.WARNING):
        clusters = format_clusters(result, embedded)

    assert clusters[0].member_indices == [0, 1]
    assert clusters[0].size == 2
    assert "Некорректный индекс 7" in caplog.text


def test_cluster_of_only_invalid_indices_is_dropped() -> None:
    embedded = [make_embedded(0, [1.0])]
    result = KMeansResult(clusters=[[0], [-1, 5]], centroids=[[1.0], [2.0]])

    clusters = format_clusters(result, embedded)

    assert len(clusters) == 1


def test_tests_carry_original_record_fields() -> None:
    embedded = [
        make_embedded(0, [1.0, 0.0], reason="Too verbose", test_id="case-A"),
        make_embedded(1, [1.0, 0.0], reason="Too verbose", test_id="case-B"),
    ]
    result = KMeansResult(clusters=[[0, 1]], centroids=[[1.0, 0.0]])

    cluster = format_clusters(result, embedded)[0]

    assert [t.id for t in cluster.tests] == ["case-A", "case-B"]
    assert [t.index for t in cluster.tests] == [0, 1]
    assert cluster.tests[0].reason == "Too verbose"
    assert cluster.tests[0].assertion_type == "llm-rubric"


def test_missing_centroid_falls_back_to_member_mean() -> None:
    embedded = [
        make_embedded(0, [0.0, 0.0]),
        make_embedded(1, [1.0, 1.0]),
        make_embedded(2, [2.0, 2.0]),
    ]
    result = KMeansResult(clusters=[[0, 1, 2]], centroids=[])

    cluster = format_clusters(result, embedded)[0]

    assert cluster.representative_index == 1


# ---------------------------------------------------------------------------
# Категории
# ---------------------------------------------------------------------------


def test_category_assigned_by_intersection() -> None:
    embedded = [
        make_embedded(0, [1.0, 0.0]),
        make_embedded(1, [0.0, 1.0]),
    ]
    analysis = ErrorPatternAnalysis(
        categories=[
            ClusterCategory(name="Math", error_indices=[0]),
            ClusterCategory(name="Geography", error_indices=[1]),
        ],
    )
    result = KMeansResult(
        clusters=[[1], [0]],
        centroids=[[0.0, 1.0], [1.0, 0.0]],
    )

    clusters = format_clusters(result, embedded, analysis)

    assert [c.category.name for c in clusters] == ["Geography", "Math"]


def test_without_analysis_clusters_get_generic_names() -> None:
    embedded = [make_embedded(0, [1.0, 0.0]), make_embedded(1, [0.0, 1.0])]
    result = KMeansResult(clusters=[[0], [1]], centroids=[[1.0, 0.0], [0.0, 1.0]])

    clusters = format_clusters(result, embedded)

    assert [c.category.name for c in clusters] == ["Cluster 1", "Cluster 2"]
    assert clusters[0].category.description == "Grouped errors with similar patterns"


# ---------------------------------------------------------------------------
# average_pairwise_similarity
# ---------------------------------------------------------------------------


def test_average_pairwise_similarity_single_is_one() -> None:
    assert average_pairwise_similarity(np.ones((1, 1))) == 1.0


def test_average_pairwise_similarity_uses_upper_triangle() -> None:
    matrix = np.array([
        [1.0, 0.5, 0.2],
        [0.5, 1.0, 0.8],
        [0.2, 0.8, 1.0],
    ])

    assert average_pairwise_similarity(matrix) == pytest.approx(0.5)
