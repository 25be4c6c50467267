"""
Bounded retry with exponential backoff for idempotent operations.

Only reads and other idempotent calls go through here. Non-idempotent
writes (refresh token rotation) are never retried: they fail closed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_ms: int,
    retry_on: tuple[type[BaseException], ...],
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` up to ``attempts`` times.

    The delay doubles after every failure: backoff_ms, 2*backoff_ms, ...
    The last failure is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory
        attempts: Total number of tries (>= 1)
        backoff_ms: Initial delay in milliseconds
        retry_on: Exception types that trigger a retry
        operation_name: Name used in log messages

    Returns:
        Result of the first successful call

    Example:
        >>> value = await retry_async(
        ...     lambda: cache.get("key"),
        ...     attempts=3,
        ...     backoff_ms=50,
        ...     retry_on=(CacheUnavailableError,),
        ... )
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{operation_name} failed after {attempts} attempts: {e}")
                raise
            delay_ms = backoff_ms * (2 ** (attempt - 1))
            logger.warning(
                f"{operation_name} failed (attempt {attempt}/{attempts}), "
                f"retrying in {delay_ms}ms: {e}"
            )
            await asyncio.sleep(delay_ms / 1000)

    raise AssertionError("unreachable")
