"""
Retry utilities with exponential backoff.

Used around database work that can lose a race with a concurrent writer
(conflict detection, stock updates).
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryError(Exception):
    """Raised when every attempt of a retried operation failed."""


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 0.05,
    max_delay: float = 2.0,
    operation_name: Optional[str] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[[BaseException], Awaitable[None]]] = None,
) -> T:
    """
    Retry an async operation with exponential backoff.

    Args:
        func: Async function to retry
        max_retries: Maximum number of attempts (default: 3)
        backoff_factor: Multiplier for delay between retries (default: 2.0)
        initial_delay: Initial delay in seconds (default: 0.05)
        max_delay: Maximum delay between retries in seconds (default: 2.0)
        operation_name: Name for logging purposes
        retry_on: Exception types that trigger another attempt; anything
            else propagates immediately
        on_retry: Optional coroutine awaited before each new attempt, e.g.
            to roll back the session

    Returns:
        Result from successful function call

    Raises:
        RetryError: If all retries are exhausted

    Example:
        >>> result = await with_retry(
        ...     lambda: detect(db, part_id),
        ...     retry_on=(OperationalError,),
        ...     operation_name="Conflict detection",
        ... )
    """
    name = operation_name or getattr(func, "__name__", "operation")
    last_exception = None

    for attempt in range(max_retries):
        try:
            logger.debug(f"Attempt {attempt + 1}/{max_retries}: {name}")
            result = await func()

            if attempt > 0:
                logger.info(f"{name} succeeded on attempt {attempt + 1}/{max_retries}")

            return result

        except retry_on as e:
            last_exception = e

            if attempt < max_retries - 1:
                delay = min(initial_delay * (backoff_factor**attempt), max_delay)

                logger.warning(f"{name} failed (attempt {attempt + 1}/{max_retries}): {e}")
                logger.info(f"Retrying in {delay:.2f}s...")

                if on_retry is not None:
                    await on_retry(e)
                await asyncio.sleep(delay)
            else:
                logger.error(f"{name} failed after {max_retries} attempts: {e}")

    raise RetryError(
        f"{name} failed after {max_retries} attempts. Last error: {last_exception}"
    ) from last_exception

