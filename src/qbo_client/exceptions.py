"""Structured exception classes for the QuickBooks Online client."""

import json
from typing import Any, Dict, Optional


class QBOClientError(Exception):
    """Base exception for all QuickBooks Online client errors.

    This exception serves as the parent class for every error raised by
    the library, providing a consistent interface for error handling
    regardless of whether the failure came from configuration, token
    handling, the transport or the API itself.

    :param message: Human-readable error message
    :param code: Optional error code for programmatic handling
    :param details: Optional dictionary containing additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with message, code, and details."""
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format.

        :return: Dictionary containing error code, message, and details
        """
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string.

        :return: JSON-encoded string representation of the exception
        """
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(QBOClientError):
    """Raised for configuration-related errors.

    :param message: Description of the configuration error
    :param setting: Optional name of the problematic setting
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        """Initialize configuration error with message and optional setting."""
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)
        self.setting = setting


class AuthenticationError(QBOClientError):
    """Raised when authentication fails.

    Covers rejected credentials (HTTP 401), a missing refresh token and
    failed OAuth exchanges. The vendor error code, when one was returned,
    is kept on ``error_code``.

    :param message: Description of the authentication failure
    :param error_code: Optional error code reported by the API
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        """Initialize authentication error with message and optional code."""
        details = {}
        if error_code:
            details["error_code"] = error_code
        super().__init__(message=message, code="AUTHENTICATION_ERROR", details=details)
        self.error_code = error_code


class TokenExpiredError(AuthenticationError):
    """Raised when the access token has expired and cannot be refreshed."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code)
        self.code = "TOKEN_EXPIRED"


class InvalidTokenError(AuthenticationError):
    """Raised when a token is malformed or rejected."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code)
        self.code = "INVALID_TOKEN"


class RefreshTokenError(AuthenticationError):
    """Raised when a refresh exchange was attempted and failed."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code)
        self.code = "REFRESH_TOKEN_ERROR"


class ConnectionError(QBOClientError):
    """Raised for transport-level failures.

    The underlying exception (usually an ``httpx`` error) is kept on
    ``original_error`` so callers can inspect what actually went wrong.

    :param message: Description of the connection failure
    :param original_error: Optional exception that caused the failure
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        """Initialize connection error with message and optional cause."""
        details = {}
        if original_error is not None:
            details["original_error"] = str(original_error)
            details["error_type"] = type(original_error).__name__
        super().__init__(message=message, code="CONNECTION_ERROR", details=details)
        self.original_error = original_error


class TimeoutError(ConnectionError):
    """Raised when an operation does not complete within its time limit."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, original_error=original_error)
        self.code = "TIMEOUT_ERROR"


class NetworkError(ConnectionError):
    """Raised when a request keeps failing at the network level.

    :param message: Description of the network failure
    :param original_error: Last underlying exception
    :param attempts: Number of attempts made before giving up
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        attempts: Optional[int] = None,
    ):
        super().__init__(message, original_error=original_error)
        self.code = "NETWORK_ERROR"
        self.attempts = attempts
        if attempts is not None:
            self.details["attempts"] = attempts


class APIError(QBOClientError):
    """Raised for non-2xx API responses.

    :param message: Description of the API error
    :param status_code: Optional HTTP status code from the API response
    :param response: Optional result object the error was built from
    :param error_code: Optional vendor error code
    :param error_detail: Optional vendor error detail
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
        error_code: Optional[str] = None,
        error_detail: Optional[str] = None,
    ):
        """Initialize API error with message and optional response details."""
        details: Dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if error_code:
            details["error_code"] = error_code
        if error_detail:
            details["error_detail"] = error_detail
        super().__init__(message=message, code="API_ERROR", details=details)
        self.status_code = status_code
        self.response = response
        self.error_code = error_code
        self.error_detail = error_detail


class ValidationError(APIError):
    """Raised when the API rejects a request as invalid (HTTP 400)."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = "VALIDATION_ERROR"


class NotFoundError(APIError):
    """Raised when a resource does not exist (HTTP 404)."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = "NOT_FOUND"


class ConflictError(APIError):
    """Raised on a stale SyncToken or duplicate entity (HTTP 409)."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = "CONFLICT"


class RateLimitError(APIError):
    """Raised when API rate limits are exceeded (HTTP 429).

    :param message: Description of the rate limit error
    :param retry_after: Optional seconds to wait before retrying
    """

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs: Any):
        """Initialize rate limit error with message and optional delay."""
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.code = "RATE_LIMIT_ERROR"
        self.retry_after = retry_after
        if retry_after is not None:
            self.details["retry_after"] = retry_after


class ServiceUnavailableError(APIError):
    """Raised for server-side failures (HTTP 500, 502, 503, 504)."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = "SERVICE_UNAVAILABLE"


class CircuitBreakerOpenError(QBOClientError):
    """Raised when an open circuit breaker rejects a call."""

    def __init__(self, message: str = "Circuit breaker is open"):
        super().__init__(message=message, code="CIRCUIT_BREAKER_OPEN")
