"""Общая логика кластеризации упавших тестов — используется и CLI, и слоем результатов."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from failscope.clients.base import CategoryProvider, EmbeddingProvider
from failscope.models.clustering import (
    ClusteredTest,
    ClusteringResult,
    ClusteringSummary,
    ErrorCluster,
    PromptClusterReport,
    PromptClusterSummary,
)
from failscope.models.failures import EmbeddedFailure, FailedTestRecord
from failscope.models.llm import ClusterCategory, ErrorPatternAnalysis
from failscope.services.category_service import CategoryService
from failscope.services.cluster_formatter import format_clusters
from failscope.services.embedding_service import EmbeddingService
from failscope.services.kmeans import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, kmeans
from failscope.utils.rate_limit import RateLimiter

if TYPE_CHECKING:
    from failscope.config import Settings

logger = logging.getLogger(__name__)

INVALID_INPUT_INSIGHTS = "Invalid input data for clustering"
NO_FAILURES_INSIGHTS = "No failed tests to cluster"
NO_FAILED_RESULTS_INSIGHTS = "No failed tests to analyze"
CLUSTERING_FAILED_INSIGHTS = "Error clustering analysis failed"
SINGLE_TEST_INSIGHTS = "Single test case - no clustering performed"
CATEGORY_ANALYSIS_DISABLED_INSIGHTS = "Category analysis disabled"


@dataclass(frozen=True)
class ClusteringConfig:
    """Параметры движка кластеризации."""

    max_clusters: int = 5
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tolerance: float = DEFAULT_TOLERANCE
    seed: int | None = None
    category_analysis_enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> ClusteringConfig:
        return cls(
            max_clusters=settings.max_clusters,
            max_iterations=settings.kmeans_max_iterations,
            tolerance=settings.kmeans_tolerance,
            seed=settings.kmeans_seed,
            category_analysis_enabled=settings.category_analysis_enabled,
        )


def choose_cluster_count(group_size: int, max_clusters: int = 5) -> int:
    """Эвристика числа кластеров для группы промпта.

    ``maxK = min(max_clusters, max(2, ceil(n / 3)))``; для групп от 6 записей
    берётся ``maxK``, для меньших — ``min(3, n)``.
    """
    upper = min(max_clusters, max(2, math.ceil(group_size / 3)))
    return upper if group_size >= 6 else min(3, group_size)


def group_by_prompt(
    records: list[FailedTestRecord],
) -> dict[str, list[FailedTestRecord]]:
    """Сгруппировать записи по точному совпадению текста промпта (порядок сохраняется)."""
    groups: dict[str, list[FailedTestRecord]] = {}
    for record in records:
        groups.setdefault(record.prompt_key, []).append(record)
    return groups


def coerce_records(failed_tests: Any) -> list[FailedTestRecord] | None:
    """Провалидировать вход на границе движка.

    Нестроковые ``prompt``/``reason``/``response`` не считаются ошибкой:
    ``FailedTestRecord`` приводит их к тексту. Вход отвергается целиком,
    только если это не список, элемент не объект или ``score`` не число.

    Returns:
        Список записей или None, если вход не является корректным списком.
    """
    if not isinstance(failed_tests, (list, tuple)):
        logger.warning(
            "Некорректный вход для кластеризации: ожидался список, получен %s",
            type(failed_tests).__name__,
        )
        return None

    records: list[FailedTestRecord] = []
    for position, item in enumerate(failed_tests):
        if isinstance(item, FailedTestRecord):
            records.append(item)
            continue
        if not isinstance(item, Mapping):
            logger.warning(
                "Некорректный вход для кластеризации: элемент #%d не является объектом (%s)",
                position,
                type(item).__name__,
            )
            return None
        try:
            records.append(FailedTestRecord.model_validate(dict(item)))
        except ValidationError as exc:
            logger.warning(
                "Некорректный вход для кластеризации: элемент #%d не прошёл валидацию: %s",
                position,
                exc,
            )
            return None
    return records


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _empty_result(
    insights: str,
    *,
    total_failed: int = 0,
    error: str | None = None,
) -> ClusteringResult:
    return ClusteringResult(
        prompt_clusters=[],
        summary=ClusteringSummary(
            total_failed=total_failed,
            total_prompts=0,
            analysis_time=_now_iso(),
            error=error,
        ),
        insights=insights,
    )


async def cluster_failed_tests(
    failed_tests: Any,
    embedder: EmbeddingProvider,
    categorizer: CategoryProvider | None = None,
    *,
    config: ClusteringConfig | None = None,
    rate_limiter: RateLimiter | None = None,
) -> ClusteringResult:
    """Кластеризовать упавшие тесты по группам промптов.

    Цепочка для каждой группы: эмбеддинги → k-means → AI-категоризация →
    форматирование кластеров.

    Args:
        failed_tests: Список упавших тестов (dict или ``FailedTestRecord``).
        embedder: Провайдер эмбеддингов.
        categorizer: Провайдер категоризации; None — без AI-категорий.
        config: Параметры движка.
        rate_limiter: Общий лимитер вызовов провайдера эмбеддингов.

    Returns:
        ClusteringResult; для некорректного или пустого входа — пустой результат.

    Raises:
        EmbeddingProviderError: Провайдер эмбеддингов недоступен — кластеризация прерывается.
        DimensionMismatchError: Векторы одной группы разной размерности.
    """
    config = config or ClusteringConfig()

    records = coerce_records(failed_tests)
    if records is None:
        return _empty_result(INVALID_INPUT_INSIGHTS)
    if not records:
        return _empty_result(NO_FAILURES_INSIGHTS)

    logger.info("Кластеризация %d упавших тестов", len(records))

    groups = group_by_prompt(records)
    logger.info("Найдено %d уникальных промптов", len(groups))

    embedding_service = EmbeddingService(embedder, rate_limiter=rate_limiter)
    category_service = (
        CategoryService(categorizer)
        if categorizer is not None and config.category_analysis_enabled
        else None
    )

    prompt_clusters: list[PromptClusterReport] = []
    for prompt, group in groups.items():
        logger.info("Обработка промпта с %d упавшими тестами", len(group))
        if len(group) == 1:
            prompt_clusters.append(_single_test_report(prompt, group[0]))
            continue

        prompt_clusters.append(
            await _cluster_prompt_group(
                prompt, group, embedding_service, category_service, config,
            )
        )

    return ClusteringResult(
        prompt_clusters=prompt_clusters,
        summary=ClusteringSummary(
            total_failed=len(records),
            total_prompts=len(groups),
            analysis_time=_now_iso(),
        ),
        insights=(
            f"Analyzed {len(records)} failed tests across {len(groups)} unique prompts"
        ),
    )


async def _cluster_prompt_group(
    prompt: str,
    group: list[FailedTestRecord],
    embedding_service: EmbeddingService,
    category_service: CategoryService | None,
    config: ClusteringConfig,
) -> PromptClusterReport:
    embedded = await embedding_service.embed_records(group)

    k = choose_cluster_count(len(group), config.max_clusters)
    logger.info("Группа из %d тестов: k=%d", len(group), k)

    kmeans_result = kmeans(
        [item.embedding for item in embedded],
        k,
        max_iterations=config.max_iterations,
        tolerance=config.tolerance,
        seed=config.seed,
    )

    analysis = await _analyze_categories(category_service, embedded)
    clusters = format_clusters(kmeans_result, embedded, analysis)

    return PromptClusterReport(
        prompt=prompt,
        total_failed_tests=len(group),
        clusters=clusters,
        summary=PromptClusterSummary(
            clusters_found=len(clusters),
            avg_cluster_size=round(len(group) / len(clusters), 1) if clusters else 0.0,
        ),
        insights=analysis.insights,
        error_analysis=analysis,
    )


async def _analyze_categories(
    category_service: CategoryService | None,
    embedded: list[EmbeddedFailure],
) -> ErrorPatternAnalysis:
    """AI-категоризация группы; любая ошибка заменяется пустым анализом."""
    if category_service is None:
        return ErrorPatternAnalysis(insights=CATEGORY_ANALYSIS_DISABLED_INSIGHTS)

    summaries = [item.error_summary for item in embedded]
    try:
        return await category_service.analyze_error_patterns(summaries)
    except Exception as exc:
        logger.warning("Категоризация: ошибка, кластеры получат общие категории: %s", exc)
        return ErrorPatternAnalysis(insights=f"Error pattern analysis failed: {exc}")


def _single_test_report(prompt: str, record: FailedTestRecord) -> PromptClusterReport:
    """Группа из одного теста: кластеризация не выполняется."""
    payload = record.model_dump(by_alias=True)
    payload.update(index=0, errorText=record.error_reason, similarity=1.0)

    cluster = ErrorCluster(
        id=0,
        size=1,
        tests=[ClusteredTest.model_validate(payload)],
        member_indices=[0],
        representative_index=0,
        representative_error=record.error_reason,
        avg_similarity=1.0,
        category=ClusterCategory(
            name="Single Error",
            description="Single failed test case",
        ),
    )
    return PromptClusterReport(
        prompt=prompt,
        total_failed_tests=1,
        clusters=[cluster],
        summary=PromptClusterSummary(clusters_found=1, avg_cluster_size=1.0),
        insights=SINGLE_TEST_INSIGHTS,
    )


async def cluster_failures_safely(
    failed_tests: Any,
    embedder: EmbeddingProvider,
    categorizer: CategoryProvider | None = None,
    *,
    config: ClusteringConfig | None = None,
    rate_limiter: RateLimiter | None = None,
) -> ClusteringResult:
    """Обёртка для слоя результатов: сбой кластеризации не валит оценку.

    Любое исключение движка превращается в пустой результат, в
    ``summary.error`` которого записано сообщение об ошибке.
    """
    try:
        return await cluster_failed_tests(
            failed_tests,
            embedder,
            categorizer,
            config=config,
            rate_limiter=rate_limiter,
        )
    except Exception as exc:
        logger.error("Кластеризация ошибок не удалась: %s", exc, exc_info=True)
        total = len(failed_tests) if isinstance(failed_tests, (list, tuple)) else 0
        return _empty_result(
            CLUSTERING_FAILED_INSIGHTS,
            total_failed=total,
            error=str(exc),
        )


async def build_error_clusters(
    results: list[Mapping[str, Any]],
    embedder: EmbeddingProvider,
    categorizer: CategoryProvider | None = None,
    *,
    config: ClusteringConfig | None = None,
    rate_limiter: RateLimiter | None = None,
) -> ClusteringResult:
    """Построить ``errorClusters`` для сырых результатов оценки.

    Отбирает результаты с ложным ``success`` и кластеризует их через
    ``cluster_failures_safely``.
    """
    failed = [r for r in results if isinstance(r, Mapping) and not r.get("success")]
    if not failed:
        return _empty_result(NO_FAILED_RESULTS_INSIGHTS)

    logger.info("Отобрано %d упавших результатов из %d для кластеризации", len(failed), len(results))
    return await cluster_failures_safely(
        failed,
        embedder,
        categorizer,
        config=config,
        rate_limiter=rate_limiter,
    )
