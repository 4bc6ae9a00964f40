"""Tokenizer adapter over tiktoken encodings.

Only the token-aware chunking path uses a tokenizer.  The adapter converts
text to token ids and back for a named encoding (``cl100k_base`` for every
model in the registry).  Anything that provides ``encode``/``decode`` with
the same signatures satisfies :class:`Tokenizer`, so tests can plug in a
deterministic stand-in.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import structlog
import tiktoken

from kbembed.utils.errors import EmbeddingConfigurationError

logger = structlog.get_logger(logger_name=__name__)


class Tokenizer(Protocol):
    """Minimal text <-> token id contract used by the chunker."""

    @property
    def name(self) -> str: ...

    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


class TokenizerAdapter:
    """Wraps a :mod:`tiktoken` encoding.

    Raises
    ------
    EmbeddingConfigurationError
        If *encoding_name* is unknown or the encoding cannot be loaded.
    """

    def __init__(self, encoding_name: str) -> None:
        try:
            self._encoding = tiktoken.get_encoding(encoding_name)
        except Exception as exc:  # noqa: BLE001
            raise EmbeddingConfigurationError(
                f"Failed to initialize tokenizer for encoding '{encoding_name}': {exc}",
                config_key="encoding",
                cause=exc,
            ) from exc
        self._name = encoding_name

    @property
    def name(self) -> str:
        return self._name

    def encode(self, text: str) -> list[int]:
        # Special-token text like "<|endoftext|>" in user input is encoded as
        # ordinary text rather than rejected.
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: list[int]) -> str:
        return self._encoding.decode(tokens)

    def count(self, text: str) -> int:
        return len(self.encode(text))


@lru_cache(maxsize=8)
def get_tokenizer(encoding_name: str) -> TokenizerAdapter:
    """Return a cached :class:`TokenizerAdapter` for *encoding_name*."""
    tokenizer = TokenizerAdapter(encoding_name)
    logger.debug("tokenizer_loaded", encoding=encoding_name)
    return tokenizer
