"""Construction of signed API requests.

:class:`RequestBuilder` turns ``(method, endpoint, query, body)`` into an
immutable :class:`~qbo_client.models.request.Request` addressed at
``{base_url}/v3/company/{realm_id}/{endpoint}``. It performs no I/O.
"""

import json
import platform
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional
from urllib.parse import urlencode

from ..._version import __version__
from ...config.settings import Settings
from ...models.request import Request

if TYPE_CHECKING:
    from ...auth.oauth_manager import OAuthManager

API_VERSION_PATH = "v3/company"
USER_AGENT = f"qbo-client/{__version__} Python/{platform.python_version()}"


class RequestBuilder:
    """Builds requests for the realm owned by an OAuth manager."""

    def __init__(self, oauth_manager: "OAuthManager", settings: Settings):
        self.oauth_manager = oauth_manager
        self.settings = settings

    def build(
        self,
        method: str,
        endpoint: str,
        query: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        minor_version: Optional[int] = None,
    ) -> Request:
        """Build a request.

        Caller headers are merged over the defaults, so a caller-supplied
        Authorization header replaces the manager's bearer token.

        :param method: HTTP method; upper-cased but not validated here
        :type method: str
        :param endpoint: Path below the company URL, e.g. ``customer/42``
        :type endpoint: str
        :param query: Query parameters
        :type query: Optional[Dict[str, Any]]
        :param body: None, a pre-serialized string, or a JSON-serializable value
        :type body: Any
        :param headers: Extra headers
        :type headers: Optional[Dict[str, str]]
        :param minor_version: API minor version, sent as ``minorversion``
        :type minor_version: Optional[int]
        :return: Immutable request
        :rtype: Request
        """
        return Request(
            method=str(method).upper(),
            url=self._construct_url(endpoint, query or {}, minor_version),
            headers=self._build_headers(headers or {}),
            body=self._serialize_body(body),
            metadata=self._build_metadata(),
        )

    def _construct_url(
        self, endpoint: str, query: Dict[str, Any], minor_version: Optional[int]
    ) -> str:
        realm_id = self.oauth_manager.token.realm_id
        url = f"{self.settings.base_url}/{API_VERSION_PATH}/{realm_id}/{endpoint.lstrip('/')}"

        if minor_version is not None:
            query = {**query, "minorversion": minor_version}
        if not query:
            return url
        return f"{url}?{urlencode(query)}"

    def _build_headers(self, custom_headers: Dict[str, str]) -> Dict[str, str]:
        defaults = {
            "Authorization": self.oauth_manager.authorization_header,
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        return {**defaults, **custom_headers}

    @staticmethod
    def _serialize_body(body: Any) -> Optional[str]:
        if body is None:
            return None
        if isinstance(body, str):
            return body
        return json.dumps(body)

    def _build_metadata(self) -> Dict[str, Any]:
        return {
            "realm_id": self.oauth_manager.token.realm_id,
            "environment": self.settings.environment,
            "timestamp": datetime.now(timezone.utc),
        }
