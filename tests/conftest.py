"""Общие фабрики и фейковые провайдеры для тестов failscope."""

from __future__ import annotations

import json

from failscope.models.failures import EmbeddedFailure, FailedTestRecord


def make_failed_test(**overrides) -> dict:
    """Фабрика сырого упавшего теста (как его отдаёт сервис запуска оценок)."""
    defaults: dict = {
        "id": "test-1",
        "prompt": "What is the capital of France?",
        "response": "I think it might be Lyon.",
        "reason": "Incorrect factual answer",
        "score": 0,
        "assertionType": "llm-rubric",
    }
    defaults.update(overrides)
    return defaults


def make_record(**overrides) -> FailedTestRecord:
    """Фабрика FailedTestRecord с разумными дефолтами."""
    return FailedTestRecord.model_validate(make_failed_test(**overrides))


def make_embedded(
    index: int,
    embedding: list[float],
    *,
    reason: str = "Some error",
    response: str | None = "some response",
    test_id: str | None = None,
) -> EmbeddedFailure:
    """Фабрика EmbeddedFailure: запись + текст + вектор."""
    record = make_record(id=test_id or f"test-{index}", reason=reason, response=response)
    return EmbeddedFailure(
        index=index,
        record=record,
        text=record.embedding_text(),
        embedding=embedding,
    )


class KeywordEmbedder:
    """One-hot эмбеддинг по первому найденному ключевому слову.

    Тексты без ключевых слов попадают в отдельное последнее измерение.
    """

    def __init__(self, keywords: list[str]) -> None:
        self._keywords = [k.lower() for k in keywords]
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        vector = [0.0] * (len(self._keywords) + 1)
        lowered = text.lower()
        for i, keyword in enumerate(self._keywords):
            if keyword in lowered:
                vector[i] = 1.0
                return vector
        vector[-1] = 1.0
        return vector


class FailingEmbedder:
    """Провайдер эмбеддингов, всегда падающий с ошибкой."""

    def __init__(self, exc: Exception | None = None) -> None:
        self._exc = exc or RuntimeError("embedding backend unavailable")
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise self._exc


class ScriptedCategorizer:
    """Категоризатор, возвращающий заранее заданный текст."""

    def __init__(self, response: str | dict) -> None:
        self._response = (
            response if isinstance(response, str) else json.dumps(response)
        )
        self.prompts: list[str] = []

    async def categorize(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self._response


class FailingCategorizer:
    """Категоризатор, падающий с сетевой ошибкой."""

    def __init__(self) -> None:
        self.calls = 0

    async def categorize(self, prompt: str) -> str:
        self.calls += 1
        raise ConnectionError("LLM is down")


class CountingLimiter:
    """RateLimiter, который только считает вызовы acquire()."""

    def __init__(self) -> None:
        self.acquired = 0

    async def acquire(self) -> None:
        self.acquired += 1
