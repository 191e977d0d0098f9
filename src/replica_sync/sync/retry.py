"""Retry with capped exponential backoff for remote store operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from replica_sync.sync.errors import classify_error, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for remote operations."""

    max_retries: int = 3
    """Retries after the first attempt (total attempts = max_retries + 1)."""

    initial_delay: float = 1.0
    """Delay in seconds before the first retry."""

    max_delay: float = 10.0
    """Upper bound on any single delay, in seconds."""

    backoff_multiplier: float = 2.0
    """Factor applied to the delay after every retry."""

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def delay_for(self, retry: int) -> float:
        """Delay before the given retry (1-indexed)."""
        delay = self.initial_delay * (self.backoff_multiplier ** (retry - 1))
        return min(delay, self.max_delay)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "remote operation",
    policy: RetryPolicy | None = None,
    *,
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """Run *operation*, retrying transient failures with exponential backoff.

    Permission errors are raised on the first failure. Any other error is
    retried up to ``policy.max_retries`` times; when retries run out the last
    error is re-raised.

    Args:
        operation: Zero-argument coroutine factory to execute
        operation_name: Label used in log messages
        policy: Backoff settings (defaults to ``RetryPolicy()``)
        sleep: Awaitable sleep function, replaceable in tests

    Returns:
        Whatever *operation* returns on its first successful attempt
    """
    policy = policy or RetryPolicy()
    last_error: Exception | None = None

    for attempt in range(policy.max_attempts):
        if attempt > 0:
            delay = policy.delay_for(attempt)
            logger.info(
                "Retry %d/%d for %s after %.2fs",
                attempt,
                policy.max_retries,
                operation_name,
                delay,
            )
            await sleep(delay)

        try:
            return await operation()
        except Exception as e:
            last_error = e
            category = classify_error(e)

            if not is_retryable(category):
                logger.error(
                    "%s failed with non-retryable %s error: %s", operation_name, category, e
                )
                raise

            if attempt < policy.max_retries:
                logger.warning("%s attempt %d failed: %s", operation_name, attempt + 1, e)

    logger.error(
        "%s failed after %d retries: %s", operation_name, policy.max_retries, last_error
    )
    assert last_error is not None
    raise last_error
