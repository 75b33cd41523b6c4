"""Настройка логирования для failscope (CLI и встраивание в слой результатов)."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# httpx логирует каждый запрос эмбеддинга на INFO
_HTTP_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "INFO", *, stream: TextIO | None = None) -> None:
    """Настроить корневой логгер: один обработчик, по умолчанию в stderr.

    Повторный вызов заменяет обработчик, а не добавляет второй.
    HTTP-логгеры поднимаются до WARNING, кроме уровня DEBUG: там
    трассировка запросов к провайдерам остаётся видна.

    Args:
        level: Имя уровня логирования (DEBUG, INFO, WARNING, ERROR).
            Неизвестное имя трактуется как INFO.
        stream: Куда писать логи; None — ``sys.stderr``.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    http_level = numeric_level if numeric_level <= logging.DEBUG else max(numeric_level, logging.WARNING)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
