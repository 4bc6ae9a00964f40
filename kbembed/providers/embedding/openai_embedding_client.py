"""OpenAI SDK embedding client.

Wraps the ``openai`` async client.  Supports both real OpenAI and
OpenAI-compatible providers via a custom ``base_url``.  SDK exceptions are
mapped onto :class:`~kbembed.utils.errors.EmbeddingAPIError`: HTTP status
errors keep their status code, timeouts and connection failures carry none
(and are therefore retryable).
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from kbembed.interfaces.embedding_client import IEmbeddingClient
from kbembed.providers.embedding.vectors import coerce_vector
from kbembed.services.chunking.text_cleaner import clean_for_embedding
from kbembed.utils.errors import EmbeddingAPIError

logger = structlog.get_logger(logger_name=__name__)


class OpenAIEmbeddingClient(IEmbeddingClient):
    """Embedding client backed by ``AsyncOpenAI.embeddings.create``."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "",
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._model = model

        # Build client kwargs: add base_url only when configured.
        client_kwargs: dict[str, Any] = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._provider_label = "openai-compatible-sdk" if base_url else "openai-sdk"

    # ------------------------------------------------------------------
    # IEmbeddingClient implementation
    # ------------------------------------------------------------------

    async def generate(self, texts: list[str]) -> list[list[float] | None]:
        if not texts:
            return []

        try:
            response = await self._client.embeddings.create(
                input=[clean_for_embedding(t) for t in texts],
                model=self._model,
                encoding_format="float",
            )
        except openai.APIStatusError as exc:
            raise EmbeddingAPIError(
                f"Embedding API error ({exc.status_code}): {exc.message}",
                status_code=exc.status_code,
                response_body=exc.body,
                cause=exc,
                provider_name=self._provider_label,
            ) from exc
        except openai.APITimeoutError as exc:
            raise EmbeddingAPIError(
                "Embedding API request timed out",
                cause=exc,
                provider_name=self._provider_label,
            ) from exc
        except openai.APIError as exc:
            # APIConnectionError and response-validation failures: no status.
            raise EmbeddingAPIError(
                f"Failed to generate embeddings: {exc}",
                cause=exc,
                provider_name=self._provider_label,
            ) from exc

        data = getattr(response, "data", None)
        if not isinstance(data, list):
            raise EmbeddingAPIError(
                "Invalid API response structure",
                invalid_response=True,
                provider_name=self._provider_label,
            )

        logger.debug(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [coerce_vector(getattr(item, "embedding", None)) for item in data]

    def get_provider_name(self) -> str:
        return self._provider_label

    def get_model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.close()

