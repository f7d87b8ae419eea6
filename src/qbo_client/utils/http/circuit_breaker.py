"""Circuit breaker for API calls.

This module provides a three-state circuit breaker. After
``failure_threshold`` consecutive failures the breaker opens and rejects
calls without running them. Once ``recovery_timeout`` has passed since the
last failure, the next call moves it to half-open and is let through;
``half_open_attempts`` consecutive successes close it again.

State is guarded by one ``asyncio.Lock`` per breaker. The lock is never
held while the guarded operation runs.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from ...exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Three-state breaker guarding an async operation.

    :param failure_threshold: Consecutive failures that open the circuit
    :param recovery_timeout: Seconds after the last failure before a probe
    :param half_open_attempts: Consecutive probe successes needed to close
    :param name: Label used in log messages
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_attempts: int = 3,
        name: str = "default",
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_attempts = half_open_attempts
        self.name = name

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self.state == CircuitState.HALF_OPEN

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        :param operation: Zero-argument coroutine function
        :type operation: Callable[[], Awaitable[T]]
        :return: The operation's result
        :rtype: T
        :raises CircuitBreakerOpenError: If the circuit is open and the
            recovery timeout has not elapsed; ``operation`` is not invoked
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if not self._should_attempt_reset():
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is open"
                    )
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                logger.info(f"Circuit '{self.name}' entering HALF_OPEN")

        try:
            result = await operation()
        except Exception:
            await self._on_failure()
            raise

        await self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        return (
            self.last_failure_time is not None
            and time.monotonic() - self.last_failure_time >= self.recovery_timeout
        )

    async def _on_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.half_open_attempts:
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    self.success_count = 0
                    logger.info(
                        f"Circuit '{self.name}' CLOSED after successful attempts"
                    )
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.success_count = 0
            self.last_failure_time = time.monotonic()
            if (
                self.state != CircuitState.OPEN
                and self.failure_count >= self.failure_threshold
            ):
                self.state = CircuitState.OPEN
                logger.warning(
                    f"Circuit '{self.name}' OPEN after {self.failure_count} failures"
                )

    async def reset(self) -> None:
        """Force the breaker back to closed with cleared counters."""
        async with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None
            logger.info(f"Circuit '{self.name}' reset")
