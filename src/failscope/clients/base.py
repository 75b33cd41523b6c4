"""Абстрактные интерфейсы внешних AI-провайдеров."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Протокол провайдера эмбеддингов.

    Реализации:
    - GeminiClient: модель ``text-embedding-004`` через Generative Language API
    - В тестах: детерминированные фейки (one-hot по ключевым словам)
    """

    async def embed(self, text: str) -> Sequence[float]:
        """Вернуть вектор фиксированной размерности для текста.

        При ошибке провайдера реализация обязана выбросить исключение,
        а не вернуть пустой вектор.
        """
        ...


@runtime_checkable
class CategoryProvider(Protocol):
    """Протокол LLM-провайдера для категоризации ошибок.

    Разделён от EmbeddingProvider: категоризация необязательна,
    её сбой не прерывает кластеризацию.

    Реализации:
    - GeminiClient: ``generateContent`` модели анализа
    """

    async def categorize(self, prompt: str) -> str:
        """Отправить промпт и вернуть свободный текст ответа модели.

        Ожидается, что текст содержит один JSON-объект с категориями.
        """
        ...
