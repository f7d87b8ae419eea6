"""Immutable request value sent to the QuickBooks Online API."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.security import sanitize_headers, sanitize_url, strip_headers


class Request(BaseModel):
    """A fully built API request.

    The Authorization header is captured when the request is built and is
    not re-derived afterwards, so a retried request reuses the same token.

    :param method: HTTP method (GET, POST, PUT, DELETE)
    :type method: str
    :param url: Fully qualified URL including any query string
    :type url: str
    :param headers: Request headers
    :type headers: Dict[str, str]
    :param body: Serialized JSON body, if any
    :type body: Optional[str]
    :param metadata: Realm ID, environment and build timestamp
    :type metadata: Dict[str, Any]
    """

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_get(self) -> bool:
        return self.method == "GET"

    @property
    def is_post(self) -> bool:
        return self.method == "POST"

    @property
    def is_put(self) -> bool:
        return self.method == "PUT"

    @property
    def is_delete(self) -> bool:
        return self.method == "DELETE"

    def to_safe_dict(self) -> Dict[str, Any]:
        """Return a projection safe for logs.

        The Authorization header and the URL query string are removed.
        The request itself is left untouched.
        """
        return {
            "method": self.method,
            "url": sanitize_url(self.url),
            "headers": sanitize_headers(strip_headers(self.headers, ["Authorization"])),
            "body_present": self.body is not None,
            "metadata": dict(self.metadata),
        }
