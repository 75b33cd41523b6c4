"""Ограничение частоты запросов к внешним провайдерам."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class RateLimiter(Protocol):
    """Политика ограничения частоты: ``acquire()`` ждёт разрешения на один вызов."""

    async def acquire(self) -> None:
        ...


class TokenBucket:
    """Асинхронный token bucket.

    Бакет вмещает ``capacity`` токенов и пополняется со скоростью ``rate``
    токенов в секунду. Каждый ``acquire()`` забирает один токен, при пустом
    бакете — ждёт ровно столько, сколько нужно до следующего токена.

    Один экземпляр можно разделять между конкурентными корутинами:
    ожидающие обслуживаются по очереди под ``asyncio.Lock``.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._rate = rate
        self._capacity = float(capacity)
        self._tokens = float(capacity)
        self._clock = clock
        self._sleep = sleep
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> int:
        return int(self._capacity)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated_at = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self._tokens < 1.0:
                wait = (1.0 - self._tokens) / self._rate
                logger.debug("Rate limit: ожидание %.3fs до следующего токена", wait)
                await self._sleep(wait)
                self._refill()
            self._tokens = max(0.0, self._tokens - 1.0)


class NoRateLimit:
    """Политика без ограничений (для тестов и локальных провайдеров)."""

    async def acquire(self) -> None:
        return None
