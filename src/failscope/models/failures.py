"""Модели входных данных: упавшие тест-кейсы оценки промптов."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_ERROR = "Unknown error"
NO_RESPONSE = "No response"
NO_PROMPT = "No prompt"


class FailedTestRecord(BaseModel):
    """Один упавший тест-кейс, полученный от сервиса запуска оценок.

    Движок кластеризации только читает записи и никогда их не изменяет.
    ``extra="allow"`` сохраняет дополнительные поля результата (vars,
    latencyMs, cost...) — они попадают в итоговый отчёт без изменений.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: str | int | None = None
    prompt: str | None = None
    response: str | None = None
    reason: str | None = None
    score: float = 0.0
    assertion_type: str | None = Field(None, alias="assertionType")

    @field_validator("prompt", "response", "reason", "assertion_type", mode="before")
    @classmethod
    def _stringify_text(cls, value: Any) -> Any:
        """Текстовые поля приводятся к строке, а не валят всю запись.

        Структурированные значения (dict/list) — JSON-строка, пустые
        контейнеры — None (дальше сработает плейсхолдер), прочие скаляры — ``str()``.
        """
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (dict, list, tuple)):
            if not value:
                return None
            return json.dumps(value, ensure_ascii=False, default=str)
        return str(value)

    @field_validator("score", mode="before")
    @classmethod
    def _default_score(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @property
    def error_reason(self) -> str:
        """Причина падения или плейсхолдер, если грейдер её не вернул."""
        return self.reason or UNKNOWN_ERROR

    @property
    def prompt_key(self) -> str:
        """Ключ группировки: точный текст промпта."""
        return self.prompt or NO_PROMPT

    def embedding_text(self) -> str:
        """Текст, по которому строится эмбеддинг записи."""
        response = self.response if self.response is not None else NO_RESPONSE
        return f"Error: {self.error_reason}\nResponse: {response}"


@dataclass(frozen=True)
class EmbeddedFailure:
    """Запись вместе с её текстом для эмбеддинга и самим вектором.

    ``index`` — позиция записи внутри группы промпта.
    """

    index: int
    record: FailedTestRecord
    text: str
    embedding: list[float]

    @property
    def error_summary(self) -> str:
        return summarize_error_text(self.text)


def summarize_error_text(text: str | None) -> str:
    """Первая строка текста для эмбеддинга без префикса ``Error: ``."""
    if not text:
        return ""
    first_line = text.split("\n", 1)[0]
    return first_line.replace("Error: ", "", 1)
