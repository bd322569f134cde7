"""Bounded retry with backoff and client-side time boxes.

One retry utility is shared by every retrying caller (navigation readiness,
backend data calls) instead of ad hoc timers at each call site.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
from typing import TypeVar

from confluency.core.exceptions import CollaboratorTimeoutError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between.

    ``max_attempts`` counts the first try. Linear policies wait
    ``base_delay * (1 + multiplier * attempt)`` after the zero-based
    ``attempt`` that failed; exponential ones ``base_delay * multiplier**attempt``.
    """

    max_attempts: int = 3
    base_delay: float = 0.3
    multiplier: float = 1.0
    exponential: bool = False
    max_delay: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        if self.base_delay < 0:
            msg = "base_delay must not be negative"
            raise ValueError(msg)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the failed zero-based ``attempt``."""
        if self.exponential:
            delay = self.base_delay * (self.multiplier**attempt)
        else:
            delay = self.base_delay * (1 + self.multiplier * attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: SleepFn = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Bound and backoff to apply.
        retry_on: Exception types that trigger another attempt. Anything
            else propagates immediately.
        sleep: Awaitable sleep, injectable so tests do not wait in real time.
        on_retry: Called with (attempt, error, delay) before each wait.
        operation_name: Used in log messages.

    Returns:
        The operation's result.

    Raises:
        RetryExhaustedError: When every attempt failed with a retryable error.
    """
    last_error: BaseException | None = None
    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt + 1 >= policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.debug(
                "%s attempt %d/%d failed: %s. Retrying in %.3fs",
                operation_name,
                attempt + 1,
                policy.max_attempts,
                e,
                delay,
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)

    logger.warning(
        "%s failed after %d attempts: %s",
        operation_name,
        policy.max_attempts,
        last_error,
    )
    raise RetryExhaustedError(policy.max_attempts, last_error)


async def call_with_timeout(
    awaitable: Awaitable[T], timeout: float | None, operation: str
) -> T:
    """Await ``awaitable`` bounded by ``timeout`` seconds (None = unbounded)."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise CollaboratorTimeoutError(operation, timeout) from e
