"""
Bounded retry with exponential backoff for optimistic-lock conflicts.

Features:
- Configurable retry policies
- Exponential backoff with jitter
- Exhaustion surfaced as TransientError
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from oversight.config.defaults import (
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_BASE_DELAY_MS,
    RETRY_JITTER_FACTOR,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_MS,
)
from oversight.errors import OptimisticLockConflict, TransientError

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay_ms: float = RETRY_BASE_DELAY_MS
    max_delay_ms: float = RETRY_MAX_DELAY_MS
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER
    jitter: float = RETRY_JITTER_FACTOR
    retryable_exceptions: tuple = (OptimisticLockConflict,)


@dataclass
class RetryStats:
    """Statistics for retry attempts."""
    attempts: int = 0
    conflicts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[Exception] = None


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for given attempt with exponential backoff and jitter.

    Formula: min(base * (multiplier ^ attempt), max_delay) +/- jitter
    """
    delay = config.base_delay_ms * (config.backoff_multiplier ** attempt)
    delay = min(delay, config.max_delay_ms)

    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def is_retryable(error: Exception, config: RetryConfig) -> bool:
    """Check if error is retryable."""
    return isinstance(error, config.retryable_exceptions)


async def with_retry_async(
    func: Callable[..., Awaitable[Any]],
    *args,
    task_id: str = "unknown",
    config: Optional[RetryConfig] = None,
    stats: Optional[RetryStats] = None,
    **kwargs,
) -> Any:
    """
    Execute an async function, re-running it whole on retryable conflicts.

    Args:
        func: Async function to execute (one full read-compute-write attempt)
        *args: Positional arguments for func
        task_id: Identifier used in log messages
        config: Retry configuration
        stats: Optional stats object filled in place
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        TransientError: If every attempt hit a retryable conflict
        Any non-retryable exception raised by func, unchanged
    """
    config = config or RetryConfig()
    stats = stats if stats is not None else RetryStats()

    while stats.attempts < config.max_attempts:
        stats.attempts += 1
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e, config):
                raise
            stats.conflicts += 1
            stats.last_error = e
            if stats.attempts >= config.max_attempts:
                break
            delay_ms = calculate_backoff(stats.attempts - 1, config)
            stats.total_delay_ms += delay_ms
            logger.warning(
                f"{task_id}: conflict on attempt {stats.attempts}/{config.max_attempts}, "
                f"retrying in {delay_ms:.1f}ms ({e})"
            )
            await asyncio.sleep(delay_ms / 1000.0)

    raise TransientError(
        f"{task_id}: gave up after {stats.attempts} attempts ({stats.last_error})",
        attempts=stats.attempts,
    ) from stats.last_error
