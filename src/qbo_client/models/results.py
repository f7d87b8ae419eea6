"""Typed results for QuickBooks Online API responses.

Every HTTP response becomes exactly one of two immutable values:

- :class:`SuccessResult` for 2xx responses, with helpers to pull the
  entity out of single-entity and ``QueryResponse`` bodies and to read
  pagination metadata.
- :class:`ErrorResult` for everything else, which parses the vendor
  ``Fault`` envelope and maps the status code onto the exception
  taxonomy in :mod:`qbo_client.exceptions`.
"""

import logging
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    QBOClientError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
)
from .request import Request

logger = logging.getLogger(__name__)

QUERY_RESPONSE_KEY = "QueryResponse"
PAGINATION_KEYS = ("startPosition", "maxResults", "totalCount")
METADATA_KEYS = ("time",)
SERVER_ERROR_STATUSES = (500, 502, 503, 504)

_LEADING_INT = re.compile(r"\s*([-+]?\d+)")


def parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """Parse a Retry-After header value into seconds.

    Supports both delta-seconds and HTTP-date formats. Header names are
    matched case-insensitively.

    :param headers: Response headers
    :type headers: Mapping[str, str]
    :return: Seconds to wait, or None if absent or unparseable
    :rtype: Optional[float]
    """
    raw = None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            raw = value
            break
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw:
        return None

    try:
        return max(0.0, float(raw))
    except ValueError:
        pass

    try:
        retry_date = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        logger.warning(f"Failed to parse Retry-After header '{raw}'")
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_date - datetime.now(timezone.utc)).total_seconds())


def _to_int(value: Any) -> int:
    """Leading-integer coercion for metadata values; never raises."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


class FaultEntry(BaseModel):
    """One error entry from a ``Fault`` envelope."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    element: Optional[str] = None


class _Result(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: Dict[str, Any] = Field(default_factory=dict)
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    request: Optional[Request] = None


class SuccessResult(_Result):
    """A 2xx response."""

    @property
    def success(self) -> bool:
        return True

    @property
    def error(self) -> bool:
        return False

    @property
    def entity(self) -> Any:
        """Return the main entity of the response.

        For query responses this is the entity collection inside
        ``QueryResponse``; otherwise the first top-level value whose key
        is not response metadata.
        """
        query = self.data.get(QUERY_RESPONSE_KEY)
        if isinstance(query, dict):
            for key, value in query.items():
                if key not in PAGINATION_KEYS:
                    return value

        for key, value in self.data.items():
            if key not in METADATA_KEYS:
                return value
        return None

    @property
    def metadata(self) -> Dict[str, Any]:
        """Return pagination metadata for query responses, else ``{}``."""
        query = self.data.get(QUERY_RESPONSE_KEY)
        if not isinstance(query, dict):
            return {}
        return {
            "start_position": query.get("startPosition"),
            "max_results": query.get("maxResults"),
            "total_count": query.get("totalCount"),
        }

    @property
    def has_more(self) -> bool:
        """Return whether another page of results exists."""
        meta = self.metadata
        if not meta:
            return False
        start = _to_int(meta["start_position"])
        max_results = _to_int(meta["max_results"])
        total = _to_int(meta["total_count"])
        return (start + max_results) < total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "status_code": self.status_code,
            "entity": self.entity,
            "metadata": self.metadata,
            "has_more": self.has_more,
        }


class ErrorResult(_Result):
    """A non-2xx response."""

    @property
    def success(self) -> bool:
        return False

    @property
    def error(self) -> bool:
        return True

    @property
    def errors(self) -> List[FaultEntry]:
        """Return the fault entries, synthesizing one if there are none."""
        fault = self.data.get("Fault")
        fault_errors = fault.get("Error") if isinstance(fault, dict) else None
        if not fault_errors:
            return [self._default_error()]
        if isinstance(fault_errors, dict):
            fault_errors = [fault_errors]

        entries = []
        for error in fault_errors:
            if not isinstance(error, dict):
                continue
            detail = error.get("Detail") or error.get("detail")
            element = error.get("element")
            entries.append(
                FaultEntry(
                    code=str(error.get("code") or "UNKNOWN"),
                    message=str(
                        error.get("Message") or error.get("message") or "Unknown error"
                    ),
                    detail=str(detail) if detail is not None else None,
                    element=str(element) if element is not None else None,
                )
            )
        return entries or [self._default_error()]

    def _default_error(self) -> FaultEntry:
        detail = self.data.get("message") or self.data.get("error")
        return FaultEntry(
            code=str(self.status_code),
            message=f"HTTP Error {self.status_code}",
            detail=str(detail) if detail is not None else None,
        )

    @property
    def error_message(self) -> str:
        return "; ".join(f"{e.code}: {e.message}" for e in self.errors)

    @property
    def error_codes(self) -> List[str]:
        return [e.code for e in self.errors]

    @property
    def retry_after(self) -> Optional[float]:
        return parse_retry_after(self.headers)

    def to_exception(self) -> QBOClientError:
        """Map the status code onto the exception taxonomy.

        :return: The typed error for this response (not raised)
        :rtype: QBOClientError
        """
        message = self.error_message
        status = self.status_code
        first = self.errors[0]

        if status == 401:
            return AuthenticationError(message, error_code=first.code)
        if status == 404:
            return NotFoundError(message, status_code=status, response=self)
        if status == 409:
            return ConflictError(message, status_code=status, response=self)
        if status == 429:
            return RateLimitError(
                message, status_code=status, retry_after=self.retry_after
            )
        if status in SERVER_ERROR_STATUSES:
            return ServiceUnavailableError(message, status_code=status)
        if status == 400:
            return ValidationError(
                message,
                status_code=status,
                response=self,
                error_code=first.code,
                error_detail=first.detail,
            )
        return APIError(
            message,
            status_code=status,
            response=self,
            error_code=first.code,
            error_detail=first.detail,
        )

    def raise_for_error(self) -> None:
        """Raise the typed error for this response."""
        raise self.to_exception()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "status_code": self.status_code,
            "errors": [e.model_dump() for e in self.errors],
            "error_message": self.error_message,
        }
