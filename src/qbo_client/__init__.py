"""QuickBooks Online API client package.

This package provides an async client for the QuickBooks Online accounting
REST API. It includes OAuth2 token management with automatic refresh,
request building and execution with retry and backoff, typed success and
error results, a circuit breaker and per-company connection limits.

:var __version__: Current package version
:type __version__: str
"""

from ._version import __version__
from .auth import OAuthClient, OAuthManager, Token
from .client import Client
from .config import Settings, load_settings
from .exceptions import (
    APIError,
    AuthenticationError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ConflictError,
    ConnectionError,
    InvalidTokenError,
    NetworkError,
    NotFoundError,
    QBOClientError,
    RateLimitError,
    RefreshTokenError,
    ServiceUnavailableError,
    TimeoutError,
    TokenExpiredError,
    ValidationError,
)
from .models import ErrorResult, Request, SuccessResult
from .tenants import TenantClientManager

__all__ = [
    "__version__",
    "Client",
    "TenantClientManager",
    "OAuthClient",
    "OAuthManager",
    "Token",
    "Settings",
    "load_settings",
    "Request",
    "SuccessResult",
    "ErrorResult",
    "QBOClientError",
    "ConfigurationError",
    "AuthenticationError",
    "TokenExpiredError",
    "InvalidTokenError",
    "RefreshTokenError",
    "ConnectionError",
    "TimeoutError",
    "NetworkError",
    "APIError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "ServiceUnavailableError",
    "CircuitBreakerOpenError",
]
