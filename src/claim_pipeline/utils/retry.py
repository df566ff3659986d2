"""Retry with exponential backoff for knowledge-base embedding calls.

The document pipeline never retries; only the knowledge base uses this.
"""

import logging
from typing import Callable, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transient errors that are worth retrying
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 2.0,
    max_wait: float = 10.0,
    multiplier: float = 1.0,
    exceptions: tuple[type[BaseException], ...] = RETRYABLE_EXCEPTIONS,
):
    """Decorator that retries a function with exponential backoff on the given exceptions.

    Args:
        max_attempts: Maximum number of attempts (default 3).
        min_wait: Minimum wait between retries in seconds (default 2).
        max_wait: Maximum wait between retries in seconds (default 10).
        multiplier: Base multiplier for exponential backoff (default 1).
        exceptions: Exception types that trigger a retry; others propagate at once.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def wrapper(*args, **kwargs) -> T:
            return func(*args, **kwargs)

        return wrapper

    return decorator
