"""Utility modules for kbembed.

- **errors** -- exception taxonomy with an ``ErrorKind`` discriminant and the
  :func:`is_retryable` classifier used to flag failed chunks.
- **concurrency** -- semaphore-throttled fan-out for embedding batches.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
"""

from kbembed.utils.concurrency import throttled_gather
from kbembed.utils.errors import (
    EmbeddingAPIError,
    EmbeddingCircuitBreakerError,
    EmbeddingConfigurationError,
    EmbeddingError,
    EmbeddingValidationError,
    ErrorKind,
    get_error_message,
    is_retryable,
    log_embedding_error,
)
from kbembed.utils.logging import configure_logging, get_logger

__all__ = [
    "EmbeddingAPIError",
    "EmbeddingCircuitBreakerError",
    "EmbeddingConfigurationError",
    "EmbeddingError",
    "EmbeddingValidationError",
    "ErrorKind",
    "configure_logging",
    "get_error_message",
    "get_logger",
    "is_retryable",
    "log_embedding_error",
    "throttled_gather",
]
