"""Конфигурация приложения, загружаемая из переменных окружения."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Конфигурация приложения failscope.

    Все значения задаются через переменные окружения с префиксом ``FAILSCOPE_``
    или через файл ``.env`` в рабочей директории.
    """

    model_config = SettingsConfigDict(
        env_prefix="FAILSCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    gemini_api_key: str = Field(default="", description="API-ключ Google Generative Language API")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Базовый URL Generative Language API",
    )
    embedding_model: str = Field(default="text-embedding-004", description="Модель для построения эмбеддингов")
    analysis_model: str = Field(default="gemini-2.0-flash-lite", description="Модель для категоризации ошибок")

    request_timeout: int = Field(default=30, ge=1, description="Таймаут запроса эмбеддинга в секундах")
    llm_timeout: int = Field(default=120, ge=10, description="Таймаут одного запроса категоризации в секундах")
    llm_max_retries: int = Field(default=3, ge=0, description="Макс. число повторов при 429/5xx/сетевых ошибках")
    llm_retry_base_delay: float = Field(
        default=1.0, ge=0.0,
        description="Базовая задержка exponential backoff в секундах (delay = base * 2^attempt)",
    )
    ssl_verify: bool = Field(default=True, description="Проверка SSL-сертификатов (отключить для корпоративных прокси)")

    embedding_rate_per_second: float = Field(
        default=10.0, gt=0,
        description="Скорость пополнения token bucket для запросов эмбеддингов (запросов в секунду)",
    )
    embedding_burst: int = Field(default=1, ge=1, description="Ёмкость token bucket (допустимый всплеск запросов)")

    max_clusters: int = Field(default=5, ge=2, description="Верхняя граница числа кластеров в одной группе промпта")
    kmeans_max_iterations: int = Field(default=100, ge=1, description="Лимит итераций k-means")
    kmeans_tolerance: float = Field(default=1e-4, gt=0, description="Порог смещения центроидов для остановки k-means")
    kmeans_seed: int | None = Field(default=None, description="Seed генератора для инициализации k-means (None = случайно)")

    category_analysis_enabled: bool = Field(
        default=True,
        description="Включить/выключить AI-категоризацию кластеров",
    )

    log_level: str = Field(default="INFO", description="Уровень логирования")
