"""
Bounded retry and deadlines for contended operations.

Optimistic writes lose races under load. Losing is not an error for the
caller; it means "re-read and try again". This module provides:

- RetryConfig: how many times to retry and how long to back off
- calculate_backoff: exponential backoff with random jitter
- retry_on_conflict: rerun an operation while it raises
  ConcurrentModificationError, up to the configured bound
- bounded: run an awaitable under a deadline that surfaces as
  OperationTimeoutError instead of hanging
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from fulfillment.exceptions import (
    ConcurrentModificationError,
    OperationTimeoutError,
    RetriesExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for conflict retries.

    Backoff is short on purpose: a lost version race is usually resolved
    by the time the winner's commit lands, and checkout latency matters
    more than politeness.

    Attributes:
        max_retries: Retries after the first attempt (0 = no retries)
        initial_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between retries
        jitter: Fraction of the delay added or removed at random (0-1)

    Example:
        >>> config = RetryConfig(max_retries=2, initial_delay=0.001)
    """

    max_retries: int = 4
    initial_delay: float = 0.005
    max_delay: float = 0.1
    exponential_base: float = 2.0
    jitter: float = 0.5

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_retries < 0:
            raise ValueError(
                f"max_retries must be >= 0, got {self.max_retries}. Use 0 for no retries."
            )

        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}.")

        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )

        if self.exponential_base < 1.0:
            raise ValueError(f"exponential_base must be >= 1.0, got {self.exponential_base}.")

        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate the delay before retry number ``attempt`` (0-based).

    Example:
        >>> config = RetryConfig(initial_delay=0.01, jitter=0.0)
        >>> calculate_backoff(0, config)
        0.01
        >>> calculate_backoff(2, config)
        0.04
    """
    delay = config.initial_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)

    # Spread competing writers apart so they do not collide again in lockstep
    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)  # nosec B311 - not crypto

    return max(0.0, delay)


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` again each time it loses an optimistic version race.

    The operation must re-read whatever it writes on every call; a retry
    that replays a stale version would just conflict again.

    Args:
        operation: Zero-argument coroutine factory
        config: Retry configuration (defaults if None)
        operation_name: Name used in logs and in RetriesExhaustedError

    Returns:
        Whatever the successful attempt returned

    Raises:
        RetriesExhaustedError: If every attempt conflicted
        Exception: Anything other than ConcurrentModificationError is
            raised immediately, without retrying
    """
    config = config or RetryConfig()
    last_error: ConcurrentModificationError | None = None

    for attempt in range(config.max_attempts):
        try:
            result = await operation()
        except ConcurrentModificationError as e:
            last_error = e
            if attempt < config.max_retries:
                delay = calculate_backoff(attempt, config)
                logger.debug(
                    "Version conflict in %s, retrying",
                    operation_name,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "max_retries": config.max_retries,
                        "delay_seconds": delay,
                        "entity": e.entity,
                        "entity_id": str(e.entity_id),
                    },
                )
                await asyncio.sleep(delay)
            continue

        if attempt > 0:
            logger.info(
                "%s succeeded after %d conflicts",
                operation_name,
                attempt,
                extra={"operation": operation_name, "attempt": attempt + 1},
            )
        return result

    assert last_error is not None
    logger.warning(
        "All retries exhausted for %s",
        operation_name,
        extra={
            "operation": operation_name,
            "attempts": config.max_attempts,
            "error": str(last_error),
        },
    )
    raise RetriesExhaustedError(operation_name, config.max_attempts, last_error) from last_error


async def bounded(awaitable: Awaitable[T], timeout: float | None, operation: str) -> T:
    """
    Await ``awaitable`` under a deadline.

    Args:
        awaitable: The suspension point to bound
        timeout: Deadline in seconds; None disables the bound
        operation: Name reported in OperationTimeoutError

    Raises:
        OperationTimeoutError: If the deadline passes first
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise OperationTimeoutError(operation, timeout) from e


__all__ = [
    "RetryConfig",
    "calculate_backoff",
    "retry_on_conflict",
    "bounded",
]
