"""Bounded retries for infrastructure calls, guarded by a circuit breaker.

Only transient infrastructure failures (store outages, timeouts, provider
rate limits and 5xx answers) are retried. Business-rule failures such as an
unknown order or an invalid transition go straight back to the caller.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from orderflow.core.errors import InvalidStateError, StoreUnavailableError, WorkItemNotFoundError


logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR_START = 500


class FailureKind(Enum):
    """Whether a failed call is worth another attempt."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class BackoffPolicy:
    """Attempt budget and exponential backoff for one guarded dependency."""

    max_attempts: int = 3
    initial_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 10.0
    failure_threshold: int = 5
    open_seconds: float = 60.0


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    """Raised when the circuit breaker rejects a call."""


class CircuitBreaker:
    """Stops calling a dependency after repeated failures until a quiet period passes."""

    def __init__(self, failure_threshold: int = 5, open_seconds: float = 60.0) -> None:
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self.consecutive_failures = 0
        self.opened_at = 0.0
        self.state = BreakerState.CLOSED

    def allow(self) -> bool:
        if self.state == BreakerState.OPEN:
            if time.monotonic() - self.opened_at < self.open_seconds:
                return False
            self.state = BreakerState.HALF_OPEN
            logger.info("Circuit half-open, allowing a probe call")
        return True

    def on_success(self) -> None:
        if self.state != BreakerState.CLOSED:
            logger.info("Circuit closed after successful call")
        self.consecutive_failures = 0
        self.state = BreakerState.CLOSED

    def on_failure(self) -> None:
        self.consecutive_failures += 1
        # A failed probe reopens immediately
        if self.state == BreakerState.HALF_OPEN or self.consecutive_failures >= self.failure_threshold:
            self.state = BreakerState.OPEN
            self.opened_at = time.monotonic()
            logger.warning(
                "Circuit opened after %d consecutive failures",
                self.consecutive_failures,
                extra={"open_seconds": self.open_seconds},
            )


_PERMANENT_MARKERS = (
    "credential not configured",
    "invalid api key",
    "unauthorized",
    "authentication failed",
    "400",
    "401",
    "403",
    "404",
)

_TRANSIENT_MARKERS = (
    "rate limit",
    "too many requests",
    "429",
    "502",
    "503",
    "504",
    "service unavailable",
    "timed out",
    "timeout",
    "connection",
    "network",
    "unreachable",
)


def classify_failure(exception: Exception) -> FailureKind:
    """Decide whether an exception raised by an infrastructure call is transient."""
    if isinstance(exception, WorkItemNotFoundError | InvalidStateError):
        return FailureKind.PERMANENT
    if isinstance(exception, StoreUnavailableError | TimeoutError | ConnectionError):
        return FailureKind.TRANSIENT
    if isinstance(exception, ModelHTTPError):
        status = exception.status_code
        if status == HTTP_TOO_MANY_REQUESTS or status >= HTTP_SERVER_ERROR_START:
            return FailureKind.TRANSIENT
        return FailureKind.PERMANENT

    text = str(exception).lower()
    if any(marker in text for marker in _PERMANENT_MARKERS):
        return FailureKind.PERMANENT
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return FailureKind.TRANSIENT
    if isinstance(exception, UnexpectedModelBehavior):
        return FailureKind.TRANSIENT
    # Unknown failures are not retried
    return FailureKind.PERMANENT


class RetryingCaller:
    """Runs zero-argument coroutine factories under a backoff policy and a breaker."""

    def __init__(self, policy: BackoffPolicy | None = None) -> None:
        self.policy = policy or BackoffPolicy()
        self.breaker = CircuitBreaker(self.policy.failure_threshold, self.policy.open_seconds)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given 0-based attempt."""
        return min(self.policy.initial_delay * self.policy.multiplier**attempt, self.policy.max_delay)

    async def call(self, func: Callable[[], Awaitable[T]], *, operation: str) -> T:
        """Await func(), retrying transient failures.

        Raises:
            CircuitOpenError: If the breaker is open
            Exception: The last failure once it is permanent or the budget is spent
        """
        attempt = 0
        while True:
            if not self.breaker.allow():
                raise CircuitOpenError(f"{operation} is temporarily disabled after repeated failures")

            try:
                result = await func()
            except Exception as e:
                kind = classify_failure(e)
                last_attempt = attempt + 1 >= self.policy.max_attempts
                logger.warning(
                    "%s failed on attempt %d/%d: %s",
                    operation,
                    attempt + 1,
                    self.policy.max_attempts,
                    e,
                    extra={"operation": operation, "error_type": type(e).__name__, "failure_kind": kind.value},
                )
                if kind == FailureKind.PERMANENT or last_attempt:
                    self.breaker.on_failure()
                    raise
                await asyncio.sleep(self.delay_for(attempt))
                attempt += 1
                continue

            self.breaker.on_success()
            if attempt:
                logger.info("%s succeeded after %d attempts", operation, attempt + 1)
            return result


class _CallerState:
    instance: RetryingCaller | None = None


def get_generation_caller() -> RetryingCaller:
    """Shared caller for message generation, created on first use."""
    if _CallerState.instance is None:
        _CallerState.instance = RetryingCaller()
    return _CallerState.instance
