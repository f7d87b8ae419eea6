"""Intuit OAuth2 authorization-code flow.

This module implements the first leg of QuickBooks authentication: building
the consent URL a user is sent to, and exchanging the authorization code
that comes back for an initial :class:`~qbo_client.auth.token.Token`. It
also holds the token-endpoint helpers shared with
:class:`~qbo_client.auth.oauth_manager.OAuthManager`.
"""

import base64
import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

import httpx

from ..config.settings import Settings
from ..exceptions import AuthenticationError
from ..utils.http.client_manager import HTTPClientManager
from .token import Token

logger = logging.getLogger(__name__)

AUTHORIZATION_URL = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_PATH = "/oauth2/v1/tokens/bearer"
DEFAULT_SCOPE = "com.intuit.quickbooks.accounting"


def basic_auth_header(client_id: Optional[str], client_secret: Optional[str]) -> str:
    """Return the HTTP Basic header value for the OAuth app credentials."""
    credentials = f"{client_id or ''}:{client_secret or ''}".encode()
    return f"Basic {base64.b64encode(credentials).decode()}"


def extract_error_message(response: httpx.Response) -> str:
    """Pull a human-readable reason out of a failed token response.

    Prefers ``error_description``, then ``error``, then the HTTP reason
    phrase when the body is empty or not JSON.

    :param response: Failed token endpoint response
    :type response: httpx.Response
    :return: Error message
    :rtype: str
    """
    fallback = response.reason_phrase or f"HTTP {response.status_code}"
    if not response.content:
        return fallback
    try:
        data = response.json()
    except ValueError:
        return fallback
    if not isinstance(data, dict):
        return fallback
    return data.get("error_description") or data.get("error") or fallback


def token_endpoint(settings: Settings) -> str:
    return f"{settings.oauth_base_url}{TOKEN_PATH}"


async def post_token_request(
    http: HTTPClientManager, settings: Settings, form: dict
) -> httpx.Response:
    """POST a form-encoded grant to the OAuth token endpoint.

    :param http: Client manager providing the HTTP client
    :param settings: Settings with the OAuth app credentials
    :param form: Grant parameters
    :return: Raw token endpoint response
    :rtype: httpx.Response
    """
    client = await http.get_client()
    return await client.post(
        token_endpoint(settings),
        data=form,
        headers={
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": basic_auth_header(
                settings.client_id, settings.client_secret
            ),
        },
    )


class OAuthClient:
    """Authorization-code flow for connecting a new QuickBooks company."""

    def __init__(self, settings: Settings, http: Optional[HTTPClientManager] = None):
        self.settings = settings
        self._http = http or HTTPClientManager(settings)

    def authorization_url(
        self,
        redirect_uri: str,
        state: Optional[str] = None,
        scope: str = DEFAULT_SCOPE,
    ) -> str:
        """Build the Intuit consent URL.

        :param redirect_uri: Callback URL registered with the app
        :type redirect_uri: str
        :param state: CSRF state value; a random one is generated if omitted
        :type state: Optional[str]
        :param scope: Requested OAuth scope
        :type scope: str
        :return: URL to send the user to
        :rtype: str
        """
        params = {
            "client_id": self.settings.client_id,
            "scope": scope,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state or secrets.token_hex(16),
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code_for_token(
        self, code: str, redirect_uri: str, realm_id: str
    ) -> Token:
        """Exchange an authorization code for the first token pair.

        :param code: Authorization code from the callback
        :param redirect_uri: Same redirect URI used for the consent URL
        :param realm_id: Company ID from the callback
        :return: New token
        :rtype: Token
        :raises AuthenticationError: If the exchange fails for any reason
        """
        logger.info(f"Exchanging authorization code for token (realm {realm_id})")
        try:
            response = await post_token_request(
                self._http,
                self.settings,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                },
            )
            if not response.is_success:
                raise AuthenticationError(
                    f"Token exchange failed: {extract_error_message(response)}"
                )
            data = response.json()
            token = Token.create(
                access_token=data.get("access_token"),
                refresh_token=data.get("refresh_token"),
                realm_id=realm_id,
                expires_in=data.get("expires_in"),
            )
        except (AuthenticationError, httpx.HTTPError, ValueError) as e:
            logger.error(f"Token exchange failed for realm {realm_id}: {e}")
            raise AuthenticationError(f"Failed to exchange code: {e}") from e

        logger.info(f"Token exchange successful (realm {realm_id})")
        return token

    async def close(self) -> None:
        await self._http.close()
