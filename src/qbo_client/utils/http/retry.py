"""Generic retry with capped exponential backoff.

This module provides :class:`RetryStrategy`, which runs any zero-argument
coroutine function and retries it when it raises one of a configured set
of exception types, plus an :func:`async_retry` decorator form of the same
policy. Delays grow as ``base_delay * 2**(attempt - 1)`` up to
``max_delay``; after the final attempt the last error is re-raised as is.
"""

import asyncio
import logging
import socket
from functools import wraps
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

from ...exceptions import NetworkError, ServiceUnavailableError
from ...exceptions import TimeoutError as QBOTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    ConnectionRefusedError,
    TimeoutError,
    socket.gaierror,
    QBOTimeoutError,
    NetworkError,
    ServiceUnavailableError,
)


class RetryStrategy:
    """Retry policy for arbitrary async operations.

    :param max_attempts: Total attempts, including the first
    :param base_delay: Delay after the first failure, in seconds
    :param max_delay: Upper bound on any single delay
    :param retryable_errors: Exception types that trigger a retry;
                             anything else propagates immediately
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 32.0,
        retryable_errors: Tuple[Type[BaseException], ...] = DEFAULT_RETRYABLE_ERRORS,
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retryable_errors = retryable_errors
        self.attempts = 0

    def calculate_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under the retry policy.

        :param operation: Zero-argument coroutine function
        :type operation: Callable[[], Awaitable[T]]
        :return: The operation's result
        :rtype: T
        """
        attempt = 0
        while True:
            attempt += 1
            self.attempts = attempt
            try:
                return await operation()
            except self.retryable_errors as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Max retry attempts reached ({attempt}) for {type(e).__name__}"
                    )
                    raise
                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"Retrying after {type(e).__name__} "
                    f"(attempt {attempt}/{self.max_attempts}, delay {delay:.2f}s)"
                )
                await asyncio.sleep(delay)

    @classmethod
    async def with_retry(
        cls,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = 3,
        base_delay: float = 1.0,
    ) -> T:
        """Run ``operation`` with a one-off strategy."""
        return await cls(max_attempts=max_attempts, base_delay=base_delay).execute(
            operation
        )


def async_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 32.0,
    retryable_errors: Optional[Tuple[Type[BaseException], ...]] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Create a retry decorator for async functions.

    Each call of the decorated function gets its own
    :class:`RetryStrategy`, so concurrent calls do not share attempt
    counters.

    :param max_attempts: Total attempts, including the first
    :type max_attempts: int
    :param base_delay: Delay after the first failure
    :type base_delay: float
    :param max_delay: Upper bound on any single delay
    :type max_delay: float
    :param retryable_errors: Exception types that trigger retries
    :type retryable_errors: Optional[Tuple[Type[BaseException], ...]]
    :return: Decorator
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            strategy = RetryStrategy(
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                retryable_errors=retryable_errors or DEFAULT_RETRYABLE_ERRORS,
            )
            return await strategy.execute(lambda: func(*args, **kwargs))

        return wrapper

    return decorator
