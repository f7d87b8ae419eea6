"""HTTP utilities public API (barrel module).

This package provides:
- Shared async HTTP client manager and helpers
- Request builder for the versioned company endpoint
- Executor that retries transport failures with backoff
- Response classification into typed results
- Generic retry strategy and decorator
- Circuit breaker and per-realm connection pool

Recommended import pattern for consumers:
    from qbo_client.utils.http import HttpExecutor, RequestBuilder, async_retry
"""

from .builder import API_VERSION_PATH, USER_AGENT, RequestBuilder
from .circuit_breaker import CircuitBreaker, CircuitState
from .client_manager import HTTPClientManager, create_limits, create_timeout
from .executor import HttpExecutor, calculate_backoff
from .pool import ConnectionPool, PooledConnection
from .response_handler import ResponseHandler
from .retry import DEFAULT_RETRYABLE_ERRORS, RetryStrategy, async_retry

__all__ = [
    "API_VERSION_PATH",
    "USER_AGENT",
    "RequestBuilder",
    "CircuitBreaker",
    "CircuitState",
    "HTTPClientManager",
    "create_limits",
    "create_timeout",
    "HttpExecutor",
    "calculate_backoff",
    "ConnectionPool",
    "PooledConnection",
    "ResponseHandler",
    "DEFAULT_RETRYABLE_ERRORS",
    "RetryStrategy",
    "async_retry",
]
