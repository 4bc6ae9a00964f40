"""Unit tests for the error taxonomy and retry classification."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from kbembed.utils.errors import (
    EmbeddingAPIError,
    EmbeddingCircuitBreakerError,
    EmbeddingConfigurationError,
    EmbeddingError,
    EmbeddingValidationError,
    ErrorKind,
    error_kind,
    get_error_message,
    is_retryable,
    log_embedding_error,
)


class TestKinds:
    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (EmbeddingError("x"), ErrorKind.EMBEDDING),
            (EmbeddingValidationError("x"), ErrorKind.VALIDATION),
            (EmbeddingConfigurationError("x"), ErrorKind.CONFIGURATION),
            (EmbeddingAPIError("x"), ErrorKind.API),
            (EmbeddingCircuitBreakerError("x"), ErrorKind.CIRCUIT_BREAKER),
        ],
    )
    def test_kind_discriminant(self, error: EmbeddingError, kind: ErrorKind) -> None:
        assert error.kind is kind
        assert error_kind(error) is kind

    def test_plain_exception_has_no_kind(self) -> None:
        assert error_kind(RuntimeError("boom")) is None

    def test_all_subclass_base(self) -> None:
        assert isinstance(EmbeddingAPIError("x"), EmbeddingError)


class TestIsRetryable:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [(429, True), (500, True), (503, True), (400, False), (401, False), (404, False), (None, True)],
    )
    def test_api_status_codes(self, status: int | None, expected: bool) -> None:
        assert is_retryable(EmbeddingAPIError("api", status_code=status)) is expected

    def test_invalid_response_without_status_is_retryable(self) -> None:
        assert is_retryable(EmbeddingAPIError("bad shape", invalid_response=True)) is True

    @pytest.mark.parametrize(
        "error",
        [
            EmbeddingCircuitBreakerError("open"),
            EmbeddingValidationError("bad"),
            EmbeddingConfigurationError("bad"),
        ],
    )
    def test_never_retryable(self, error: EmbeddingError) -> None:
        assert is_retryable(error) is False

    @pytest.mark.parametrize("error", [EmbeddingError("generic"), RuntimeError("boom"), "oops"])
    def test_unknown_defaults_to_retryable(self, error: object) -> None:
        assert is_retryable(error) is True


class TestFields:
    def test_str_includes_provider(self) -> None:
        err = EmbeddingAPIError("rate limited", status_code=429, provider_name="openai-http")
        assert str(err) == "[openai-http] rate limited"
        assert err.message == "rate limited"

    def test_validation_invalid_inputs(self) -> None:
        err = EmbeddingValidationError("bad chunks", invalid_inputs=["chunk[1]"])
        assert err.invalid_inputs == ["chunk[1]"]
        assert err.to_dict()["invalid_inputs"] == ["chunk[1]"]

    def test_circuit_breaker_fields(self) -> None:
        when = datetime(2030, 1, 1, tzinfo=timezone.utc)
        err = EmbeddingCircuitBreakerError("open", next_attempt_after=when)
        data = err.to_dict()
        assert data["circuit_state"] == "open"
        assert data["next_attempt_after"] == when.isoformat()

    def test_to_dict_basics(self) -> None:
        cause = ValueError("inner")
        err = EmbeddingConfigurationError("bad key", config_key="model", cause=cause)
        data = err.to_dict()
        assert data["kind"] == "configuration"
        assert data["config_key"] == "model"
        assert data["message"] == "bad key"
        assert "timestamp" in data


class TestMessages:
    def test_get_error_message(self) -> None:
        assert get_error_message(EmbeddingError("nice")) == "nice"
        assert get_error_message(RuntimeError("raw")) == "raw"
        assert get_error_message(RuntimeError()) == "RuntimeError"
        assert "unknown" in get_error_message(42)

    def test_log_embedding_error_renames_timestamp(self) -> None:
        logger = MagicMock()
        log_embedding_error(EmbeddingAPIError("x", status_code=500), logger, batch=2)

        logger.error.assert_called_once()
        event, = logger.error.call_args.args
        kwargs = logger.error.call_args.kwargs
        assert event == "embedding_error"
        assert "timestamp" not in kwargs
        assert "error_timestamp" in kwargs
        assert kwargs["status_code"] == 500
        assert kwargs["batch"] == 2

    def test_log_unexpected_error(self) -> None:
        logger = MagicMock()
        log_embedding_error(RuntimeError("boom"), logger)
        assert logger.error.call_args.args == ("embedding_unexpected_error",)
