"""Embedding client that POSTs directly to an OpenAI-compatible endpoint.

Uses a shared :class:`httpx.AsyncClient` (injected, so the container owns
its lifetime and tests can pass one built on :class:`httpx.MockTransport`).
Every failure is raised as :class:`~kbembed.utils.errors.EmbeddingAPIError`
so the orchestrator can classify it with :func:`is_retryable`.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from kbembed.interfaces.embedding_client import IEmbeddingClient
from kbembed.providers.embedding.vectors import coerce_vector
from kbembed.services.chunking.text_cleaner import clean_for_embedding
from kbembed.utils.errors import EmbeddingAPIError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "openai-http"


class HttpEmbeddingClient(IEmbeddingClient):
    """Embedding client backed by a raw ``POST {input, model, encoding_format}``."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str,
        api_url: str = "https://api.openai.com/v1/embeddings",
        timeout: float = 30.0,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._model = model
        self._api_url = api_url
        self._timeout = timeout

    # ------------------------------------------------------------------
    # IEmbeddingClient implementation
    # ------------------------------------------------------------------

    async def generate(self, texts: list[str]) -> list[list[float] | None]:
        if not texts:
            return []

        payload = {
            "input": [clean_for_embedding(t) for t in texts],
            "model": self._model,
            "encoding_format": "float",
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._http.post(
                self._api_url, json=payload, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            raise EmbeddingAPIError(
                f"Embedding API request timed out after {self._timeout}s",
                cause=exc,
                provider_name=_PROVIDER_NAME,
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingAPIError(
                "Failed to generate embeddings",
                cause=exc,
                provider_name=_PROVIDER_NAME,
            ) from exc

        if not response.is_success:
            body = _parse_body(response)
            raise EmbeddingAPIError(
                f"Embedding API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                response_body=body,
                provider_name=_PROVIDER_NAME,
            )

        data = _parse_body(response)
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise EmbeddingAPIError(
                "Invalid API response structure",
                response_body=data,
                invalid_response=True,
                provider_name=_PROVIDER_NAME,
            )

        usage = data.get("usage") or {}
        logger.debug(
            "http_embedding_batch",
            model=self._model,
            batch_size=len(texts),
            vectors=len(items),
            tokens=usage.get("total_tokens") if isinstance(usage, dict) else None,
        )
        return [
            coerce_vector(item.get("embedding") if isinstance(item, dict) else None)
            for item in items
        ]

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    def get_model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text

