"""
Fault tolerance for database access.

``CircuitBreaker``
    Wraps every repository round-trip.  After ``failure_threshold``
    consecutive transient failures (connection refused, timeouts) the
    circuit opens and calls fail immediately with ``CircuitBreakerError``,
    which the API maps to 503 + ``Retry-After``.  Once ``recovery_timeout``
    has passed one trial call is let through; its outcome closes or re-opens
    the circuit.

``retry_with_backoff``
    Exponential backoff for idempotent work only: table creation at startup
    and the accrual sweep's "what is due" query.  Ledger mutations are never
    retried automatically.
"""

import asyncio
import functools
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Tuple, Type

from returns_api.core.config import settings

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: Tuple[Type[Exception], ...] = (ConnectionError, OSError, TimeoutError)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """A call was refused because the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is OPEN; retry in {retry_after:.1f}s")


class CircuitBreaker:
    """
    Async circuit breaker.

    Only ``expected_exceptions`` count as failures.  Anything else (a
    constraint violation, a domain error) passes through and leaves the
    failure count alone.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        expected_exceptions: Tuple[Type[Exception], ...] = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exceptions = expected_exceptions
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._successes = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        """Current state; an OPEN circuit turns HALF_OPEN once the timeout has passed."""
        if self._state == CircuitState.OPEN and self._seconds_open() >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit '%s' half-open, next call is a trial", self.name)
        return self._state

    def _seconds_open(self) -> float:
        return self._clock() - self._opened_at

    def _on_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit '%s' closed after a successful trial call", self.name)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._successes += 1

    def _on_failure(self, exc: Exception) -> None:
        self._consecutive_failures += 1
        trial_failed = self._state == CircuitState.HALF_OPEN
        if trial_failed or self._consecutive_failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.error(
                "Circuit '%s' opened after %d consecutive failure(s) (%s: %s); "
                "failing fast for %.1fs",
                self.name,
                self._consecutive_failures,
                type(exc).__name__,
                exc,
                self.recovery_timeout,
            )
        else:
            logger.warning(
                "Circuit '%s' failure %d/%d: %s",
                self.name,
                self._consecutive_failures,
                self.failure_threshold,
                exc,
            )

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``func(*args, **kwargs)`` unless the circuit is open."""
        if self.state == CircuitState.OPEN:
            raise CircuitBreakerError(
                self.name, max(self.recovery_timeout - self._seconds_open(), 0.0)
            )
        try:
            result = await func(*args, **kwargs)
        except self.expected_exceptions as exc:
            self._on_failure(exc)
            raise
        self._on_success()
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def get_status(self) -> dict:
        """Snapshot for ``/health``."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "success_count": self._successes,
            "recovery_timeout_s": self.recovery_timeout,
        }


db_circuit_breaker = CircuitBreaker(
    name="database",
    failure_threshold=settings.CB_FAILURE_THRESHOLD,
    recovery_timeout=settings.CB_RECOVERY_TIMEOUT,
    expected_exceptions=TRANSIENT_ERRORS,
)


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: bool) -> float:
    """Delay before retry ``attempt`` (0-based): ``base * 2**attempt``, capped, plus up to 50 % jitter."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter:
        delay += random.uniform(0, delay * 0.5)
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable:
    """
    Decorator: retry an async function on ``retryable_exceptions``.

    The function runs at most ``max_retries + 1`` times; the last error is
    re-raised.  Other exceptions propagate on the first occurrence.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as exc:
                    if attempt >= max_retries:
                        logger.error(
                            "%s failed after %d attempt(s): %s: %s",
                            func.__qualname__,
                            attempt + 1,
                            type(exc).__name__,
                            exc,
                        )
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, jitter)
                    logger.warning(
                        "%s attempt %d/%d failed (%s); retrying in %.2fs",
                        func.__qualname__,
                        attempt + 1,
                        max_retries + 1,
                        exc,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator

