"""Pydantic-модели для результатов кластеризации упавших тестов.

Сериализация в JSON для слоя результатов — ``model_dump(by_alias=True)``:
поля выводятся в camelCase.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from failscope.models.llm import ClusterCategory, ErrorPatternAnalysis


class ClusteredTest(BaseModel):
    """Упавший тест внутри кластера: поля исходной записи + обогащение."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    index: int
    id: str | int | None = None
    prompt: str | None = None
    response: str | None = None
    reason: str | None = None
    score: float = 0.0
    assertion_type: str | None = Field(None, alias="assertionType")
    error_text: str = Field("", alias="errorText")
    similarity: float = 1.0


class ErrorCluster(BaseModel):
    """Кластер — группа тестов одного промпта, упавших по схожей причине."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    size: int
    tests: list[ClusteredTest] = Field(default_factory=list)
    member_indices: list[int] = Field(default_factory=list, alias="memberIndices")
    representative_index: int = Field(alias="representativeIndex")
    representative_error: str = Field(alias="representativeError")
    avg_similarity: float = Field(1.0, alias="avgSimilarity")
    category: ClusterCategory


class PromptClusterSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    clusters_found: int = Field(alias="clustersFound")
    avg_cluster_size: float = Field(alias="avgClusterSize")


class PromptClusterReport(BaseModel):
    """Результат кластеризации одной группы промпта."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    total_failed_tests: int = Field(alias="totalFailedTests")
    clusters: list[ErrorCluster] = Field(default_factory=list)
    summary: PromptClusterSummary
    insights: str = ""
    error_analysis: ErrorPatternAnalysis | None = Field(None, alias="errorAnalysis")


class ClusteringSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_failed: int = Field(0, alias="totalFailed")
    total_prompts: int = Field(0, alias="totalPrompts")
    analysis_time: str = Field(alias="analysisTime")
    error: str | None = None


class ClusteringResult(BaseModel):
    """Итог кластеризации всех упавших тестов одной оценки."""

    model_config = ConfigDict(populate_by_name=True)

    prompt_clusters: list[PromptClusterReport] = Field(
        default_factory=list, alias="promptClusters",
    )
    summary: ClusteringSummary
    insights: str = ""

    @property
    def cluster_count(self) -> int:
        return sum(len(report.clusters) for report in self.prompt_clusters)

    def to_payload(self) -> dict[str, Any]:
        """JSON-совместимый dict в формате контракта слоя результатов."""
        return self.model_dump(mode="json", by_alias=True)
