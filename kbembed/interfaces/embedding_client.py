"""Abstract base class for embedding API clients.

Defines the contract for turning a batch of texts into embedding vectors
through a remote embedding API.  The orchestrator never talks to HTTP or an
SDK directly, so clients are interchangeable and tests inject fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   HttpEmbeddingClient    - raw httpx POST to an OpenAI-compatible endpoint
#   OpenAIEmbeddingClient  - official openai SDK
# Located in: kbembed/providers/embedding/
class IEmbeddingClient(ABC):
    """Contract for the embedding call made once per batch."""

    @abstractmethod
    async def generate(self, texts: list[str]) -> list[list[float] | None]:
        """Generate embedding vectors for one batch of texts.

        Parameters
        ----------
        texts:
            The batch.  Implementations clean each text (control characters
            stripped, whitespace collapsed) before sending it.

        Returns
        -------
        list[list[float] | None]
            Vectors paired positionally with *texts*.  An entry the API
            returned in an unusable shape is ``None``; the list may also be
            shorter than *texts* if the API returned fewer vectors.

        Raises
        ------
        kbembed.utils.errors.EmbeddingAPIError
            On any transport failure, timeout, non-2xx status or malformed
            response envelope.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"openai-http"``."""

    @abstractmethod
    def get_model(self) -> str:
        """Return the embedding model name sent with every request."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the client has the credentials it needs."""
