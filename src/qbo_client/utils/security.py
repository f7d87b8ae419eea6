"""Security utilities for redaction and secure logging.

This module keeps OAuth credentials out of logs and diagnostics:
- Pattern-based redaction of bearer/basic credentials and token fields
- Header, URL and dictionary sanitization for request diagnostics
- A logging formatter that applies redaction to every record
"""

import copy
import logging
import re
import sys
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

# Patterns for sensitive data detection
SENSITIVE_PATTERNS = {
    "bearer_token": re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    "basic_auth": re.compile(r"(Basic\s+)[A-Za-z0-9+/=]+", re.IGNORECASE),
    "access_token": re.compile(r'("access_token"\s*:\s*")[^"]+'),
    "refresh_token": re.compile(r'("refresh_token"\s*:\s*")[^"]+'),
}

# Headers that should never be logged
SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-access-token",
    "x-refresh-token",
}

# Dictionary keys whose values are always redacted
SENSITIVE_KEYS = {"token", "secret", "password", "authorization"}


def redact_secret(value: Optional[str]) -> Optional[str]:
    """Replace a secret with a marker that only reveals its length.

    :param value: Secret to redact
    :type value: Optional[str]
    :return: Redaction marker, or the value itself when empty
    :rtype: Optional[str]
    """
    if not value:
        return value
    return f"<REDACTED:length={len(value)}>"


def sanitize_string(value: str) -> str:
    """Redact credentials embedded in a free-form string.

    The credential itself is replaced while its prefix (``Bearer``,
    ``"access_token": "``) is kept so the log line stays readable.

    :param value: String to sanitize
    :type value: str
    :return: String with credentials replaced by ``[REDACTED]``
    :rtype: str
    """
    if not value:
        return value
    for pattern in SENSITIVE_PATTERNS.values():
        value = pattern.sub(r"\1[REDACTED]", value)
    return value


def sanitize_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize HTTP headers for logging.

    :param headers: Dictionary of HTTP headers
    :type headers: Dict[str, Any]
    :return: Copy with sensitive headers redacted
    :rtype: Dict[str, Any]
    """
    if not headers:
        return headers
    sanitized = dict(headers)
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            sanitized[key] = redact_secret(value) if isinstance(value, str) else "<REDACTED>"
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
    return sanitized


def strip_headers(headers: Dict[str, Any], names: Iterable[str]) -> Dict[str, Any]:
    """Return a copy of ``headers`` without the given names (case-insensitive)."""
    drop = {name.lower() for name in names}
    return {k: v for k, v in headers.items() if k.lower() not in drop}


def sanitize_url(url: str) -> str:
    """Drop the query string and fragment from a URL.

    Query strings carry SQL queries and other caller data that has no
    place in logs.

    :param url: URL to sanitize
    :type url: str
    :return: URL without query and fragment
    :rtype: str
    """
    if not url:
        return url
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def safe_log_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Create a safe version of a dictionary for logging.

    Recursively redacts values whose key looks sensitive and sanitizes
    string values.

    :param data: Dictionary to sanitize
    :type data: Dict[str, Any]
    :return: Sanitized deep copy
    :rtype: Dict[str, Any]
    """
    if not data:
        return data

    def _sanitize(obj: Any) -> Any:
        if isinstance(obj, dict):
            result = {}
            for key, value in obj.items():
                if any(s in str(key).lower() for s in SENSITIVE_KEYS):
                    result[key] = "<REDACTED>"
                else:
                    result[key] = _sanitize(value)
            return result
        if isinstance(obj, list):
            return [_sanitize(item) for item in obj]
        if isinstance(obj, str):
            return sanitize_string(obj)
        return obj

    return _sanitize(copy.deepcopy(data))


class SanitizingFormatter(logging.Formatter):
    """Formatter that redacts credentials from every log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with automatic sanitization.

        :param record: Log record to format
        :type record: logging.LogRecord
        :return: Sanitized log message
        :rtype: str
        """
        try:
            record.msg = sanitize_string(record.getMessage())
            record.args = None
        except (TypeError, ValueError):
            # Mismatched format args; fall back to the raw message
            record.msg = sanitize_string(str(record.msg))
            record.args = None
        return super().format(record)


_LOGGING_CONFIGURED = False


def setup_secure_logging(level: str = "INFO") -> None:
    """Attach a sanitizing stream handler to the ``qbo_client`` logger.

    Only the library's own logger is touched; the root logger and the
    application's handlers are left alone. Repeated calls only update
    the level.

    :param level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :type level: str
    """
    global _LOGGING_CONFIGURED

    package_logger = logging.getLogger("qbo_client")
    package_logger.setLevel(getattr(logging, level.upper()))

    if _LOGGING_CONFIGURED:
        package_logger.debug("Logging already configured, level updated")
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        SanitizingFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    package_logger.addHandler(handler)
    _LOGGING_CONFIGURED = True
