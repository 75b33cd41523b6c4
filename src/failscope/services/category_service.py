"""Сервис AI-категоризации ошибок группы промпта.

Двухуровневая стратегия:
1. LLM получает пронумерованные краткие тексты ошибок всей группы и
   возвращает JSON с 2–5 категориями (описание, индексы ошибок,
   общие паттерны, рекомендации).
2. Если ответ не содержит разбираемого JSON — одна общая категория
   «General Errors», покрывающая все ошибки, а сырой текст модели
   сохраняется в ``insights``.

Сетевые ошибки провайдера здесь не перехватываются: за замену результата
отвечает оркестратор.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from failscope.clients.base import CategoryProvider
from failscope.models.failures import UNKNOWN_ERROR
from failscope.models.llm import ClusterCategory, ErrorPatternAnalysis

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY_NAME = "General Errors"
NO_ERRORS_INSIGHTS = "No errors to analyze"

_MAX_SUMMARY_CHARS = 500


def build_category_prompt(error_summaries: list[str]) -> str:
    """Собрать запрос к LLM по кратким текстам ошибок одной группы промпта.

    Ошибки нумеруются с 0 — так же, как индексы в ожидаемом ``errorIndices``.
    """
    lines: list[str] = []
    for index, summary in enumerate(error_summaries):
        text = " ".join((summary or UNKNOWN_ERROR).split())
        if len(text) > _MAX_SUMMARY_CHARS:
            text = text[:_MAX_SUMMARY_CHARS] + "..."
        lines.append(f"{index}. {text}")

    return (
        "Analyze the following error messages and categorize them into meaningful groups.\n"
        "Provide insights about common error patterns, root causes, and suggestions "
        "for improvement.\n"
        "\n"
        "Error messages (0-based numbering):\n"
        + "\n".join(lines)
        + "\n"
        "\n"
        "Please provide:\n"
        "1. Main categories of errors (2-5 categories)\n"
        "2. Brief description of each category\n"
        "3. Which error numbers belong to each category (0-based, as listed above)\n"
        "4. Common patterns or root causes\n"
        "5. Suggestions for improvement\n"
        "\n"
        "Format your response as JSON:\n"
        "{\n"
        '  "categories": [\n'
        "    {\n"
        '      "name": "Category Name",\n'
        '      "description": "Brief description",\n'
        '      "errorIndices": [0, 1, 2],\n'
        '      "commonPatterns": ["pattern1", "pattern2"],\n'
        '      "suggestions": ["suggestion1", "suggestion2"]\n'
        "    }\n"
        "  ],\n"
        '  "insights": "Overall insights about the error patterns"\n'
        "}"
    )


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Извлечь первый JSON-объект верхнего уровня из свободного текста.

    Разбор начинается с первой ``{`` и заканчивается на парной ``}``;
    текст до и после (пояснения, markdown-ограждения) игнорируется.
    """
    start = text.find("{")
    if start == -1:
        return None
    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def fallback_analysis(error_count: int, raw_text: str = "") -> ErrorPatternAnalysis:
    """Одна общая категория, покрывающая все ошибки группы."""
    return ErrorPatternAnalysis(
        categories=[
            ClusterCategory(
                name=FALLBACK_CATEGORY_NAME,
                description="Various error types detected",
                error_indices=list(range(error_count)),
                common_patterns=["Mixed error patterns"],
                suggestions=["Review individual errors for specific improvements"],
            )
        ],
        insights=raw_text,
    )


def parse_category_response(text: str, error_count: int) -> ErrorPatternAnalysis:
    """Разобрать ответ LLM.

    Категории валидируются по одной: некорректные отбрасываются, остальные
    сохраняются. Fallback-категория используется, только если JSON с
    ``categories`` не найден или ни одна категория не прошла валидацию.
    """
    data = extract_json_object(text)
    raw_categories = data.get("categories") if data is not None else None
    if not isinstance(raw_categories, list):
        logger.warning("Категоризация: ответ LLM не содержит JSON со списком категорий, используется fallback")
        return fallback_analysis(error_count, text)

    categories: list[ClusterCategory] = []
    for position, raw in enumerate(raw_categories):
        try:
            categories.append(ClusterCategory.model_validate(raw))
        except ValidationError as exc:
            logger.warning(
                "Категоризация: категория #%d отброшена (%d ошибок валидации)",
                position,
                exc.error_count(),
            )

    if raw_categories and not categories:
        logger.warning("Категоризация: ни одна категория не прошла валидацию, используется fallback")
        return fallback_analysis(error_count, text)

    return ErrorPatternAnalysis(
        categories=categories,
        insights=_insights_text(data.get("insights")),
    )


def _insights_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def resolve_cluster_category(
    categories: list[ClusterCategory],
    members: list[int],
    cluster_id: int,
) -> ClusterCategory:
    """Первая категория, чьи ``error_indices`` пересекаются с участниками кластера.

    Если пересечений нет — синтетическая категория ``Cluster {id + 1}``.
    """
    member_set = set(members)
    for category in categories:
        if category.error_indices and member_set.intersection(category.error_indices):
            return category

    return ClusterCategory(
        name=f"Cluster {cluster_id + 1}",
        description="Grouped errors with similar patterns",
    )


class CategoryService:
    """Категоризация ошибок группы промпта через внешний LLM."""

    def __init__(self, provider: CategoryProvider) -> None:
        self._provider = provider

    async def analyze_error_patterns(
        self,
        error_summaries: list[str],
    ) -> ErrorPatternAnalysis:
        """Получить категории для кратких текстов ошибок одной группы.

        Raises:
            Exception: Любая ошибка провайдера пробрасывается как есть.
        """
        if not error_summaries:
            return ErrorPatternAnalysis(insights=NO_ERRORS_INSIGHTS)

        prompt = build_category_prompt(error_summaries)
        response_text = await self._provider.categorize(prompt)
        analysis = parse_category_response(response_text, len(error_summaries))

        logger.info(
            "Категоризация: %d ошибок → %d категорий (%s)",
            len(error_summaries),
            len(analysis.categories),
            ", ".join(c.name for c in analysis.categories) or "—",
        )
        return analysis
