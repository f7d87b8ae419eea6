"""OAuth token ownership and refresh for a single realm.

:class:`OAuthManager` holds exactly one :class:`~qbo_client.auth.token.Token`
and is the only place that token is replaced. Refreshes are serialized per
manager so that concurrent callers never spend the same refresh token twice.
"""

import asyncio
import logging
from typing import Optional

import httpx

from ..config.settings import Settings
from ..exceptions import AuthenticationError, RefreshTokenError
from ..utils.http.client_manager import HTTPClientManager
from ..utils.security import safe_log_dict
from .oauth_client import extract_error_message, post_token_request
from .token import Token

logger = logging.getLogger(__name__)


class OAuthManager:
    """Manage the token lifecycle for one QuickBooks company.

    The held token is never mutated; :meth:`refresh` swaps in a new one.
    Concurrent refresh calls are coalesced: callers queued behind an
    in-flight refresh receive its result instead of issuing another
    exchange.
    """

    def __init__(
        self,
        token: Token,
        settings: Settings,
        http: Optional[HTTPClientManager] = None,
    ):
        """Initialize the manager.

        :param token: Initial token
        :type token: Token
        :param settings: Settings with OAuth app credentials and endpoints
        :type settings: Settings
        :param http: Client manager used for the token exchange
        :type http: Optional[HTTPClientManager]
        """
        self._token = token
        self.settings = settings
        self._http = http or HTTPClientManager(settings)
        self._refresh_lock = asyncio.Lock()

    @property
    def token(self) -> Token:
        return self._token

    @property
    def realm_id(self) -> str:
        return self._token.realm_id

    @property
    def is_valid(self) -> bool:
        return self._token.is_valid

    @property
    def refresh_needed(self) -> bool:
        """Return whether the token is expired or about to expire."""
        return self._token.is_expired or self._token.expires_soon()

    @property
    def authorization_header(self) -> str:
        return self._token.authorization_header

    def replace_token(self, token: Token) -> None:
        """Install credentials obtained outside this manager."""
        self._token = token

    async def refresh(self) -> Token:
        """Exchange the refresh token for a new token pair.

        :return: The new token, now held by the manager
        :rtype: Token
        :raises AuthenticationError: If no refresh token is available;
            no request is made in that case
        :raises RefreshTokenError: If the exchange was attempted and failed
        """
        stale = self._token
        if not stale.refresh_token:
            raise AuthenticationError("No refresh token available")

        async with self._refresh_lock:
            if self._token is not stale:
                logger.debug(
                    f"Token for realm {stale.realm_id} already refreshed by a "
                    "concurrent caller"
                )
                return self._token

            logger.info(f"Refreshing OAuth token for realm {stale.realm_id}")
            try:
                response = await post_token_request(
                    self._http,
                    self.settings,
                    {
                        "grant_type": "refresh_token",
                        "refresh_token": stale.refresh_token,
                    },
                )
                new_token = self._parse_refresh_response(response, stale)
            except RefreshTokenError as e:
                logger.error(f"Token refresh failed for realm {stale.realm_id}: {e}")
                raise
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Token refresh failed for realm {stale.realm_id}: {e}")
                raise RefreshTokenError(f"Failed to refresh token: {e}") from e

            self._token = new_token
            logger.info(f"OAuth token refreshed for realm {stale.realm_id}")
            return new_token

    @staticmethod
    def _parse_refresh_response(response: httpx.Response, stale: Token) -> Token:
        if not response.is_success:
            error_code = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    error_code = body.get("error")
            except ValueError:
                pass
            raise RefreshTokenError(
                f"Token refresh failed: {extract_error_message(response)}",
                error_code=error_code,
            )

        data = response.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise RefreshTokenError("Token refresh failed: no access_token in response")
        logger.debug(f"Token endpoint response: {safe_log_dict(data)}")

        return Token.create(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or stale.refresh_token,
            realm_id=stale.realm_id,
            expires_in=data.get("expires_in"),
        )

    async def close(self) -> None:
        await self._http.close()
