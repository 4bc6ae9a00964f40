"""In-memory circuit breaker for the embedding API.

States::

    CLOSED --(failure_threshold consecutive retryable failures)--> OPEN
    OPEN   --(recovery_timeout elapsed)--> HALF_OPEN
    HALF_OPEN --(trial call succeeds)--> CLOSED
    HALF_OPEN --(trial call fails)-----> OPEN
    HALF_OPEN --(trial call cancelled)--> HALF_OPEN, trial slot freed

Only failures that :func:`is_retryable` classifies as retryable (timeouts,
429, 5xx, transport errors) count.  A 4xx answer proves the API is up and
resets the count like a success.  While OPEN, :meth:`before_call` raises
:class:`EmbeddingCircuitBreakerError` so the batch fails fast without a
network call.

State is per process and per breaker instance; nothing is persisted.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog

from kbembed.utils.errors import EmbeddingCircuitBreakerError, is_retryable

logger = structlog.get_logger(logger_name=__name__)


class CircuitState(str, Enum):  # noqa: UP042
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Parameters
    ----------
    name:
        Label used in log events and error messages.
    failure_threshold:
        Consecutive retryable failures that open the circuit.
    recovery_timeout:
        Seconds to stay OPEN before allowing one trial call.
    clock:
        Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        name: str = "embedding-api",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            msg = f"failure_threshold must be >= 1, got {failure_threshold}"
            raise ValueError(msg)
        self._name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._remaining() <= 0:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            logger.info("circuit_half_open", breaker=self._name)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def before_call(self) -> None:
        """Raise if the call must not be attempted right now."""
        state = self.state
        if state is CircuitState.CLOSED:
            return
        if state is CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return

        remaining = max(self._remaining(), 0.0)
        raise EmbeddingCircuitBreakerError(
            f"Circuit breaker '{self._name}' is {state.value}",
            circuit_state=state.value,
            next_attempt_after=datetime.now(timezone.utc) + timedelta(seconds=remaining),
            provider_name=self._name,
        )

    def record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("circuit_closed", breaker=self._name)
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._trial_in_flight = False

    def release_trial(self) -> None:
        """Give back a HALF_OPEN trial slot whose call ended without a result.

        Used when the trial call is cancelled: the next caller may try
        again instead of the breaker waiting forever for a verdict.
        """
        if self._trial_in_flight:
            self._trial_in_flight = False
            logger.info("circuit_trial_released", breaker=self._name)

    def record_failure(self, error: BaseException) -> None:
        if not is_retryable(error):
            self.record_success()
            return

        self._failures += 1
        if self._state is CircuitState.HALF_OPEN or self._failures >= self._failure_threshold:
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        logger.warning(
            "circuit_opened",
            breaker=self._name,
            failures=self._failures,
            recovery_timeout=self._recovery_timeout,
        )

    def _remaining(self) -> float:
        return self._recovery_timeout - (self._clock() - self._opened_at)
