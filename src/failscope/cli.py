"""Точка входа CLI failscope."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import textwrap
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from failscope import __version__

if TYPE_CHECKING:
    from failscope.models.clustering import ClusteringResult, ErrorCluster

logger = logging.getLogger(__name__)

_MAX_LINE = 200
_BOX_WIDTH = 88
_TESTS_PREFIX = "Тесты: "


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="failscope",
        description="Кластеризация упавших тестов оценки промптов по причине падения",
    )
    parser.add_argument(
        "input",
        help="JSON-файл со списком упавших тестов ('-' — читать из stdin)",
    )
    parser.add_argument(
        "--from-results",
        action="store_true",
        help="Вход — сырые результаты оценки; упавшие (success=false) отбираются автоматически",
    )
    parser.add_argument(
        "--output-format",
        choices=["text", "json"],
        default="text",
        help="Формат вывода (по умолчанию: text)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed инициализации k-means (переопределяет FAILSCOPE_KMEANS_SEED)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Уровень логирования (переопределяет FAILSCOPE_LOG_LEVEL)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"failscope {__version__}",
    )
    return parser


def load_input(path: str) -> Any:
    """Прочитать JSON из файла или stdin."""
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def extract_results(data: Any) -> list[Any]:
    """Достать список результатов из ``{"results": [...]}`` или голого списка."""
    if isinstance(data, dict):
        data = data.get("results", [])
    return data if isinstance(data, list) else []


async def async_main(args: argparse.Namespace) -> int:
    """Собрать зависимости и запустить кластеризацию. Возвращает код выхода."""
    # Отложенные импорты — чтобы --help работал быстро
    from failscope.clients.gemini_client import GeminiClient
    from failscope.config import Settings
    from failscope.exceptions import ConfigurationError, FailscopeError
    from failscope.logging_config import setup_logging
    from failscope.orchestrator import (
        ClusteringConfig,
        build_error_clusters,
        cluster_failed_tests,
    )
    from failscope.utils.rate_limit import TokenBucket

    # 1. Загрузка настроек
    try:
        settings = Settings()
    except Exception as exc:
        print(f"Ошибка конфигурации: {exc}", file=sys.stderr)
        return 2

    # 2. Настройка логирования
    setup_logging(args.log_level or settings.log_level)

    # 3. Чтение входа
    try:
        data = load_input(args.input)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Не удалось прочитать вход %s: %s", args.input, exc)
        return 2

    config = ClusteringConfig.from_settings(settings)
    if args.seed is not None:
        config = replace(config, seed=args.seed)
    rate_limiter = TokenBucket(
        settings.embedding_rate_per_second,
        settings.embedding_burst,
    )

    # 4. Кластеризация
    try:
        if not settings.gemini_api_key:
            raise ConfigurationError(
                "Не задан FAILSCOPE_GEMINI_API_KEY — эмбеддинги построить невозможно"
            )

        async with GeminiClient(
            settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            embedding_model=settings.embedding_model,
            analysis_model=settings.analysis_model,
            timeout=settings.request_timeout,
            llm_timeout=settings.llm_timeout,
            ssl_verify=settings.ssl_verify,
            max_retries=settings.llm_max_retries,
            retry_base_delay=settings.llm_retry_base_delay,
        ) as gemini:
            if args.from_results:
                result = await build_error_clusters(
                    extract_results(data),
                    gemini,
                    gemini,
                    config=config,
                    rate_limiter=rate_limiter,
                )
            else:
                result = await cluster_failed_tests(
                    data,
                    gemini,
                    gemini,
                    config=config,
                    rate_limiter=rate_limiter,
                )
    except ConfigurationError as exc:
        logger.error("Ошибка конфигурации: %s", exc)
        return 2
    except FailscopeError as exc:
        logger.error("Ошибка: %s", exc)
        return 1

    # 5. Вывод отчёта
    if args.output_format == "json":
        print(json.dumps(result.to_payload(), indent=2, ensure_ascii=False))
    else:
        print_clustering_result(result)

    return 1 if result.summary.error else 0


def print_clustering_result(result: ClusteringResult) -> None:
    """Вывод отчёта кластеризации в stdout: промпт, затем по рамке на кластер."""
    print()
    print(
        f"=== Кластеры ошибок "
        f"({result.cluster_count} кластеров из {result.summary.total_failed} падений, "
        f"промптов: {result.summary.total_prompts}) ==="
    )
    if result.summary.error:
        print(f"Ошибка кластеризации: {result.summary.error}")
    print()

    for report in result.prompt_clusters:
        print(f"Промпт: {_one_line(report.prompt)}")
        print()
        for cluster in report.clusters:
            for line in _render_cluster_box(cluster):
                print(line)
            print()
        if report.insights:
            print(f"Выводы: {_one_line(report.insights)}")
            print()

    print(result.insights)


def _render_cluster_box(cluster: ErrorCluster, width: int = _BOX_WIDTH) -> list[str]:
    """Рамка кластера: название и метрики в верхней границе, тело с переносом.

    Все строки рамки имеют длину ``width + 4``.
    """
    meta = f" {cluster.size} тестов · связность {cluster.avg_similarity:.2f} "
    name_limit = max(8, width - len(meta) - 16)
    title = f" Кластер #{cluster.id + 1}: {_one_line(cluster.category.name, name_limit)} "
    fill = width - len(title) - len(meta)
    if fill < 0:
        meta, fill = "", max(0, width - len(title))

    top = f"┌─{title}{'─' * fill}{meta}─┐"
    body = [f"│ {line.ljust(width)} │" for line in _cluster_body(cluster, width)]
    bottom = f"└{'─' * (width + 2)}┘"
    return [top, *body, bottom]


def _cluster_body(cluster: ErrorCluster, width: int = _BOX_WIDTH) -> list[str]:
    """Строки тела рамки: пример ошибки, паттерны, рекомендации, ID тестов."""
    lines = textwrap.wrap(
        f"Пример: {_one_line(cluster.representative_error)}",
        width,
        subsequent_indent="        ",
        max_lines=3,
        placeholder=" ...",
    )
    if cluster.category.description:
        lines.extend(textwrap.wrap(_one_line(cluster.category.description), width, max_lines=2))
    for pattern in cluster.category.common_patterns[:3]:
        lines.extend(_wrap_item(pattern, width, "  * "))
    for suggestion in cluster.category.suggestions[:3]:
        lines.extend(_wrap_item(suggestion, width, "  -> "))

    test_ids = [str(t.id) if t.id is not None else f"#{t.index}" for t in cluster.tests]
    lines.extend(
        textwrap.wrap(
            ", ".join(test_ids),
            width,
            initial_indent=_TESTS_PREFIX,
            subsequent_indent=" " * len(_TESTS_PREFIX),
            break_long_words=False,
            break_on_hyphens=False,
        )
        or [_TESTS_PREFIX.rstrip()]
    )
    return [line[:width] for line in lines]


def _wrap_item(text: str, width: int, bullet: str) -> list[str]:
    return textwrap.wrap(
        _one_line(text),
        width,
        initial_indent=bullet,
        subsequent_indent=" " * len(bullet),
        max_lines=2,
        placeholder=" ...",
    )


def _one_line(value: str, limit: int = _MAX_LINE) -> str:
    """Схлопнуть пробельные символы в одну строку и обрезать до ``limit``."""
    text = " ".join(value.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def main(argv: list[str] | None = None) -> None:
    """Точка входа консольного скрипта ``failscope``."""
    args = build_parser().parse_args(argv)
    try:
        exit_code = asyncio.run(async_main(args))
    except KeyboardInterrupt:
        print("Прервано пользователем", file=sys.stderr)
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
