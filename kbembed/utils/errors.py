"""Exception taxonomy for the kbembed ingestion pipeline.

Every exception carries a :class:`ErrorKind` discriminant.  Callers that need
to branch on the failure kind (most importantly :func:`is_retryable`) match on
``error.kind`` rather than walking the class hierarchy, so a kind can be
checked on any object that exposes the attribute.

    EmbeddingError                 kind=embedding       (base, catch-all)
    +-- EmbeddingValidationError   kind=validation      (bad caller input)
    +-- EmbeddingConfigurationError kind=configuration  (startup / bad settings)
    +-- EmbeddingAPIError          kind=api             (embedding API / transport)
    +-- EmbeddingCircuitBreakerError kind=circuit_breaker (dependency fenced off)

Validation and configuration errors are raised before any network call.
API and circuit-breaker errors are normally caught per batch by the
orchestrator and recorded against the affected chunks with the result of
:func:`is_retryable`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog


class ErrorKind(str, Enum):  # noqa: UP042
    """Discriminant carried by every kbembed exception."""

    EMBEDDING = "embedding"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    API = "api"
    CIRCUIT_BREAKER = "circuit_breaker"


class EmbeddingError(Exception):
    """Base exception for all kbembed errors.

    Carries a human-readable ``message``, the underlying ``cause`` (if any),
    a free-form ``context`` dict for structured logging, the UTC
    ``timestamp`` at which the error was created and an optional
    ``provider_name`` identifying the external service involved.
    """

    kind: ErrorKind = ErrorKind.EMBEDDING

    def __init__(
        self,
        message: str = "Embedding pipeline operation failed",
        *,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._cause = cause
        self._context = dict(context or {})
        self._provider_name = provider_name
        self._timestamp = datetime.now(timezone.utc)
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def cause(self) -> BaseException | None:
        return self._cause

    @property
    def context(self) -> dict[str, Any]:
        return self._context

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation for logs and trace events."""
        return {
            "kind": self.kind.value,
            "message": self._message,
            "provider_name": self._provider_name,
            "context": self._context,
            "timestamp": self._timestamp.isoformat(),
            "cause": repr(self._cause) if self._cause is not None else None,
        }


# ---------------------------------------------------------------------------
# Caller / configuration errors (never retryable)
# ---------------------------------------------------------------------------


class EmbeddingValidationError(EmbeddingError):
    """Raised when caller input is rejected, e.g. empty or blank chunks.

    ``invalid_inputs`` lists the offending positions as ``"chunk[i]"``.
    """

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str = "Invalid embedding input",
        invalid_inputs: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self._invalid_inputs = list(invalid_inputs or [])

    @property
    def invalid_inputs(self) -> list[str]:
        return list(self._invalid_inputs)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["invalid_inputs"] = self.invalid_inputs
        return data


class EmbeddingConfigurationError(EmbeddingError):
    """Raised when configuration is invalid: unknown model or encoding, bad batch size, missing key."""

    kind = ErrorKind.CONFIGURATION

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        config_key: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self._config_key = config_key

    @property
    def config_key(self) -> str | None:
        return self._config_key

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self._config_key
        return data


# ---------------------------------------------------------------------------
# External dependency errors
# ---------------------------------------------------------------------------


class EmbeddingAPIError(EmbeddingError):
    """Raised when the embedding API call fails.

    ``status_code`` is ``None`` for transport-level failures (DNS, connection
    reset, timeout).  ``invalid_response`` is set when the API answered 2xx
    but the body did not have the expected ``{"data": [...]}`` shape, so a
    malformed success can be told apart from a transport failure.
    """

    kind = ErrorKind.API

    def __init__(
        self,
        message: str = "Embedding API call failed",
        status_code: int | None = None,
        response_body: Any = None,
        invalid_response: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self._status_code = status_code
        self._response_body = response_body
        self._invalid_response = invalid_response

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def response_body(self) -> Any:
        return self._response_body

    @property
    def invalid_response(self) -> bool:
        return self._invalid_response

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self._status_code
        data["invalid_response"] = self._invalid_response
        return data


class EmbeddingCircuitBreakerError(EmbeddingError):
    """Raised when the circuit breaker is open and the call was not attempted.

    Not retryable immediately: callers must wait until ``next_attempt_after``.
    """

    kind = ErrorKind.CIRCUIT_BREAKER

    def __init__(
        self,
        message: str = "Circuit breaker is open",
        circuit_state: str = "open",
        next_attempt_after: datetime | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self._circuit_state = circuit_state
        self._next_attempt_after = next_attempt_after

    @property
    def circuit_state(self) -> str:
        return self._circuit_state

    @property
    def next_attempt_after(self) -> datetime | None:
        return self._next_attempt_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["circuit_state"] = self._circuit_state
        data["next_attempt_after"] = (
            self._next_attempt_after.isoformat() if self._next_attempt_after else None
        )
        return data


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------


def error_kind(error: object) -> ErrorKind | None:
    """Return the :class:`ErrorKind` of *error*, or ``None`` if it has none."""
    kind = getattr(error, "kind", None)
    return kind if isinstance(kind, ErrorKind) else None


def is_retryable(error: object) -> bool:
    """Decide whether the operation that raised *error* may be retried.

    Unknown errors are treated as retryable; the caller is expected to apply
    backoff.
    """
    match error_kind(error):
        case ErrorKind.API:
            status = getattr(error, "status_code", None)
            if status is None:
                return True
            if status == 429 or status >= 500:
                return True
            if 400 <= status < 500:
                return False
            return True
        case ErrorKind.CIRCUIT_BREAKER | ErrorKind.VALIDATION | ErrorKind.CONFIGURATION:
            return False
        case _:
            return True


def get_error_message(error: object) -> str:
    """Return a user-facing message for *error*."""
    if isinstance(error, EmbeddingError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return "An unknown error occurred during embedding processing"


def log_embedding_error(
    error: object,
    logger: structlog.BoundLogger | None = None,
    **context: Any,
) -> None:
    """Emit one structured log line describing *error*."""
    log = logger or structlog.get_logger(logger_name=__name__)
    if isinstance(error, EmbeddingError):
        data = error.to_dict()
        # TimeStamper owns the "timestamp" key.
        data["error_timestamp"] = data.pop("timestamp")
        log.error("embedding_error", **data, **context)
    elif isinstance(error, BaseException):
        log.error(
            "embedding_unexpected_error",
            error_type=type(error).__name__,
            message=str(error),
            **context,
        )
    else:
        log.error("embedding_unknown_error", value=repr(error), **context)
