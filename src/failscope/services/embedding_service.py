"""Сервис построения эмбеддингов для упавших тестов одной группы промпта."""

from __future__ import annotations

import logging

from failscope.clients.base import EmbeddingProvider
from failscope.exceptions import DimensionMismatchError, EmbeddingProviderError
from failscope.models.failures import EmbeddedFailure, FailedTestRecord
from failscope.utils.rate_limit import RateLimiter, TokenBucket

logger = logging.getLogger(__name__)

# 10 запросов/с ≙ паузе 100 мс между вызовами провайдера
DEFAULT_EMBEDDING_RATE = 10.0


class EmbeddingService:
    """Последовательно строит эмбеддинги записей через провайдера.

    Каждый вызов провайдера проходит через общий ``RateLimiter``, поэтому
    один экземпляр лимитера можно разделить между несколькими сервисами
    без превышения лимита провайдера.

    Любая ошибка провайдера фатальна: кластеризация на неполном наборе
    векторов не выполняется.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._provider = provider
        self._rate_limiter = rate_limiter or TokenBucket(DEFAULT_EMBEDDING_RATE)

    async def embed_records(
        self,
        records: list[FailedTestRecord],
    ) -> list[EmbeddedFailure]:
        """Построить эмбеддинги для всех записей группы, по одной за раз.

        Returns:
            Список ``EmbeddedFailure`` в порядке входных записей.

        Raises:
            EmbeddingProviderError: Провайдер упал или вернул пустой вектор.
            DimensionMismatchError: Векторы группы разной размерности.
        """
        embedded: list[EmbeddedFailure] = []
        dimension: int | None = None

        for index, record in enumerate(records):
            text = record.embedding_text()
            logger.debug("Эмбеддинг %d/%d для группы промпта", index + 1, len(records))

            await self._rate_limiter.acquire()
            try:
                vector = await self._provider.embed(text)
            except EmbeddingProviderError:
                raise
            except Exception as exc:
                raise EmbeddingProviderError(
                    f"Не удалось построить эмбеддинг для записи #{index} "
                    f"(id={record.id}): {exc}"
                ) from exc

            values = [float(x) for x in vector]
            if not values:
                raise EmbeddingProviderError(
                    f"Провайдер вернул пустой вектор для записи #{index} (id={record.id})"
                )
            if dimension is None:
                dimension = len(values)
            elif len(values) != dimension:
                raise DimensionMismatchError(dimension, len(values))

            embedded.append(
                EmbeddedFailure(index=index, record=record, text=text, embedding=values)
            )

        return embedded
