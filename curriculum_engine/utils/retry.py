"""Retry decorator with exponential backoff for storage calls."""
import asyncio
import functools
import time
from typing import Callable, Iterator, Optional, Tuple, Type

from curriculum_engine.utils.logger import get_logger

logger = get_logger("retry")


def _delays(max_retries: int, initial_delay: float, backoff_factor: float, max_delay: float) -> Iterator[float]:
    delay = initial_delay
    for _ in range(max_retries):
        yield min(delay, max_delay)
        delay *= backoff_factor


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
):
    """
    Decorator that retries a function with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call.
        initial_delay: Delay in seconds before the first retry.
        backoff_factor: Multiplier for the delay after each retry.
        max_delay: Upper bound for a single delay.
        retryable_exceptions: Exception types to retry on.
            If None, retries on all exceptions.
    """
    def _should_retry(exc: Exception) -> bool:
        return retryable_exceptions is None or isinstance(exc, retryable_exceptions)

    def decorator(func: Callable):
        def _log_retry(attempt: int, delay: float, exc: Exception) -> None:
            logger.warning(
                "retrying",
                function=func.__name__,
                attempt=attempt,
                delay=delay,
                error=str(exc),
            )

        def _log_exhausted(exc: Exception) -> None:
            logger.error(
                "retry_exhausted",
                function=func.__name__,
                attempts=max_retries + 1,
                error=str(exc),
            )

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            delays = _delays(max_retries, initial_delay, backoff_factor, max_delay)
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not _should_retry(e):
                        raise
                    delay = next(delays, None)
                    if delay is None:
                        _log_exhausted(e)
                        raise
                    attempt += 1
                    _log_retry(attempt, delay, e)
                    time.sleep(delay)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            delays = _delays(max_retries, initial_delay, backoff_factor, max_delay)
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not _should_retry(e):
                        raise
                    delay = next(delays, None)
                    if delay is None:
                        _log_exhausted(e)
                        raise
                    attempt += 1
                    _log_retry(attempt, delay, e)
                    await asyncio.sleep(delay)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
