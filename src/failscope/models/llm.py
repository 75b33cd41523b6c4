"""Модели данных для результатов AI-категоризации ошибок."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClusterCategory(BaseModel):
    """Именованная категория ошибок с общими паттернами и рекомендациями.

    ``error_indices`` заполняется только у категорий от LLM: это индексы
    ошибок внутри группы промпта, по которым категория сопоставляется
    с кластерами k-means.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    error_indices: list[int] | None = Field(None, alias="errorIndices")
    common_patterns: list[str] = Field(default_factory=list, alias="commonPatterns")
    suggestions: list[str] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("common_patterns", "suggestions", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        # LLM иногда отдаёт null или одну строку вместо списка
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class ErrorPatternAnalysis(BaseModel):
    """Ответ категоризатора по одной группе промпта."""

    categories: list[ClusterCategory] = Field(default_factory=list)
    insights: str = ""
