"""Exponential backoff with jitter for retryable async operations."""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from om_intel.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    ``deadline_seconds`` bounds the total wall-clock time including sleeps;
    a delay that would cross it is not taken.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.25
    deadline_seconds: float | None = None

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), jitter included."""
        delay = min(self.max_delay, self.base_delay * self.multiplier ** (attempt - 1))
        spread = delay * self.jitter
        return max(0.0, delay + random.uniform(-spread, spread))


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retryable operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates immediately.

    Raises:
        RetryExhaustedError: attempts or deadline exhausted
    """
    started = time.monotonic()
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                raise RetryExhaustedError(operation_name, attempt, e) from e

            delay = policy.delay_for(attempt)
            if policy.deadline_seconds is not None:
                elapsed = time.monotonic() - started
                if elapsed + delay > policy.deadline_seconds:
                    raise RetryExhaustedError(operation_name, attempt, e) from e

            logger.info(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=str(e),
            )
            await sleep(delay)
