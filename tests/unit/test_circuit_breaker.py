"""Unit tests for the in-memory circuit breaker."""

from __future__ import annotations

import pytest

from kbembed.services.embedding.circuit_breaker import CircuitBreaker, CircuitState
from kbembed.utils.errors import EmbeddingAPIError, EmbeddingCircuitBreakerError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(name="test", failure_threshold=2, recovery_timeout=10.0, clock=clock)


_RETRYABLE = EmbeddingAPIError("down", status_code=503)


class TestCircuitBreaker:
    def test_starts_closed(self, breaker: CircuitBreaker) -> None:
        assert breaker.state is CircuitState.CLOSED
        breaker.before_call()

    def test_opens_after_threshold(self, breaker: CircuitBreaker) -> None:
        breaker.record_failure(_RETRYABLE)
        assert breaker.state is CircuitState.CLOSED
        breaker.record_failure(_RETRYABLE)
        assert breaker.state is CircuitState.OPEN

        with pytest.raises(EmbeddingCircuitBreakerError) as exc_info:
            breaker.before_call()
        assert exc_info.value.circuit_state == "open"
        assert exc_info.value.next_attempt_after is not None

    def test_success_resets_count(self, breaker: CircuitBreaker) -> None:
        breaker.record_failure(_RETRYABLE)
        breaker.record_success()
        breaker.record_failure(_RETRYABLE)
        assert breaker.state is CircuitState.CLOSED

    def test_client_errors_do_not_count(self, breaker: CircuitBreaker) -> None:
        for _ in range(5):
            breaker.record_failure(EmbeddingAPIError("bad", status_code=400))
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_half_open_after_recovery_timeout(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        breaker.record_failure(_RETRYABLE)
        breaker.record_failure(_RETRYABLE)
        clock.now += 10.0

        assert breaker.state is CircuitState.HALF_OPEN
        breaker.before_call()
        # Only one trial call at a time.
        with pytest.raises(EmbeddingCircuitBreakerError) as exc_info:
            breaker.before_call()
        assert exc_info.value.circuit_state == "half_open"

    def test_trial_success_closes(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        breaker.record_failure(_RETRYABLE)
        breaker.record_failure(_RETRYABLE)
        clock.now += 11.0
        breaker.before_call()
        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    def test_trial_failure_reopens(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        breaker.record_failure(_RETRYABLE)
        breaker.record_failure(_RETRYABLE)
        clock.now += 11.0
        breaker.before_call()
        breaker.record_failure(_RETRYABLE)
        assert breaker.state is CircuitState.OPEN

    def test_rejects_bad_threshold(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreaker(failure_threshold=0)

    def test_released_trial_allows_next_trial(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        breaker.record_failure(_RETRYABLE)
        breaker.record_failure(_RETRYABLE)
        clock.now += 11.0
        breaker.before_call()

        breaker.release_trial()

        assert breaker.state is CircuitState.HALF_OPEN
        breaker.before_call()
        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    def test_release_without_trial_is_noop(self, breaker: CircuitBreaker) -> None:
        breaker.release_trial()
        assert breaker.state is CircuitState.CLOSED
