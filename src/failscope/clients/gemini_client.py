"""HTTP-клиент для Google Generative Language REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from failscope.exceptions import GeminiApiError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


class GeminiClient:
    """HTTP-клиент Gemini: эмбеддинги и генерация текста.

    Реализует оба протокола — ``EmbeddingProvider`` (``embed``) и
    ``CategoryProvider`` (``categorize``). Поддерживает retry с exponential
    backoff при 429 / 502-504 / сетевых ошибках.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        embedding_model: str = "text-embedding-004",
        analysis_model: str = "gemini-2.0-flash-lite",
        timeout: int = 30,
        llm_timeout: int = 120,
        ssl_verify: bool = True,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._embedding_model = embedding_model
        self._analysis_model = analysis_model
        self._timeout = timeout
        self._llm_timeout = llm_timeout
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._http = httpx.AsyncClient(timeout=timeout, verify=ssl_verify)

    async def embed(self, text: str) -> list[float]:
        """Построить эмбеддинг текста.

        POST {base_url}/models/{embedding_model}:embedContent
        Body: {"model": "models/...", "content": {"parts": [{"text": "..."}]}}

        Raises:
            GeminiApiError: При HTTP-ошибках, пустом или некорректном векторе.
        """
        url = f"{self._base_url}/models/{self._embedding_model}:embedContent"
        payload = {
            "model": f"models/{self._embedding_model}",
            "content": {"parts": [{"text": text}]},
        }
        data = await self._post(url, payload, timeout=self._timeout)
        return self._extract_embedding(data, url)

    async def categorize(self, prompt: str) -> str:
        """Отправить промпт модели анализа и вернуть текст ответа.

        POST {base_url}/models/{analysis_model}:generateContent
        Body: {"contents": [{"parts": [{"text": "..."}]}]}
        """
        url = f"{self._base_url}/models/{self._analysis_model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        data = await self._post(url, payload, timeout=self._llm_timeout)
        return self._extract_text(data, url)

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        timeout: int,
    ) -> dict[str, Any]:
        """POST с retry: delay = base * 2^attempt, до ``max_retries`` повторов."""
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-goog-api-key"] = self._api_key

        last_error: GeminiApiError | None = None

        for attempt in range(1 + self._max_retries):
            logger.debug(
                "Gemini запрос: POST %s attempt=%d/%d",
                url,
                attempt + 1,
                1 + self._max_retries,
            )

            retryable = False
            try:
                resp = await self._http.post(
                    url, json=payload, headers=headers, timeout=timeout,
                )
            except httpx.TimeoutException as exc:
                last_error = GeminiApiError(0, f"Таймаут запроса: {exc}", url)
                last_error.__cause__ = exc
                retryable = True
            except httpx.RequestError as exc:
                last_error = GeminiApiError(0, str(exc), url)
                last_error.__cause__ = exc
                retryable = True
            else:
                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    last_error = GeminiApiError(resp.status_code, resp.text[:500], url)
                    retryable = True
                elif resp.status_code >= 400:
                    raise GeminiApiError(resp.status_code, resp.text[:500], url)
                else:
                    try:
                        data = resp.json()
                    except Exception as exc:
                        raise GeminiApiError(
                            resp.status_code,
                            f"Ответ не является валидным JSON: {resp.text[:200]}",
                            url,
                        ) from exc
                    if not isinstance(data, dict):
                        raise GeminiApiError(
                            resp.status_code,
                            f"Ожидался JSON-объект, получен {type(data).__name__}",
                            url,
                        )
                    return data

            if retryable and attempt < self._max_retries:
                delay = self._retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Gemini ошибка (попытка %d/%d): %s — повтор через %.1fs",
                    attempt + 1,
                    1 + self._max_retries,
                    last_error,
                    delay,
                )
                await asyncio.sleep(delay)
            elif last_error is not None:
                raise last_error

        raise last_error  # type: ignore[misc]

    @staticmethod
    def _extract_embedding(data: dict[str, Any], url: str) -> list[float]:
        """Путь: embedding.values — непустой список чисел."""
        try:
            values = data["embedding"]["values"]
            if not isinstance(values, list) or not values:
                msg = "пустой или отсутствующий вектор"
                raise TypeError(msg)
            return [float(v) for v in values]
        except (KeyError, TypeError, ValueError) as exc:
            raise GeminiApiError(
                0,
                f"Неожиданная структура ответа embedContent: {exc}. "
                f"Ответ: {str(data)[:300]}",
                url,
            ) from exc

    @staticmethod
    def _extract_text(data: dict[str, Any], url: str) -> str:
        """Путь: candidates[0].content.parts[*].text (части склеиваются)."""
        try:
            parts = data["candidates"][0]["content"]["parts"]
            texts = [part["text"] for part in parts if "text" in part]
            if not texts or not all(isinstance(t, str) for t in texts):
                msg = "в ответе нет текстовых частей"
                raise TypeError(msg)
            return "".join(texts)
        except (KeyError, IndexError, TypeError) as exc:
            raise GeminiApiError(
                0,
                f"Неожиданная структура ответа generateContent: {exc}. "
                f"Ответ: {str(data)[:300]}",
                url,
            ) from exc

    async def close(self) -> None:
        """Освободить ресурсы HTTP-клиента."""
        await self._http.aclose()

    async def __aenter__(self) -> GeminiClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
