"""HTTP client lifecycle management.

This module owns the ``httpx.AsyncClient`` shared by the request executor
and the OAuth token exchange. One manager is created per
:class:`~qbo_client.client.Client` from its settings; the underlying client
is created lazily on first use and closed explicitly.
"""

import asyncio
import logging
from typing import Optional

import httpx

from ...config.settings import Settings

logger = logging.getLogger(__name__)


def create_timeout(
    connect: float = 30.0,
    read: float = 60.0,
    write: float = 60.0,
    pool: float = 5.0,
) -> httpx.Timeout:
    """Create a timeout configuration object.

    :param connect: Connection timeout in seconds
    :type connect: float
    :param read: Read timeout in seconds
    :type read: float
    :param write: Write timeout in seconds
    :type write: float
    :param pool: Pool timeout in seconds
    :type pool: float
    :return: Configured timeout object
    :rtype: httpx.Timeout
    """
    return httpx.Timeout(connect=connect, read=read, write=write, pool=pool)


def create_limits(
    max_keepalive_connections: int = 5,
    max_connections: int = 10,
    keepalive_expiry: float = 30.0,
) -> httpx.Limits:
    """Create a connection limits configuration object.

    :param max_keepalive_connections: Maximum number of keepalive connections
    :type max_keepalive_connections: int
    :param max_connections: Maximum total number of connections
    :type max_connections: int
    :param keepalive_expiry: Keepalive connection expiry time in seconds
    :type keepalive_expiry: float
    :return: Configured limits object
    :rtype: httpx.Limits
    """
    return httpx.Limits(
        max_keepalive_connections=max_keepalive_connections,
        max_connections=max_connections,
        keepalive_expiry=keepalive_expiry,
    )


class HTTPClientManager:
    """Owns a lazily created ``httpx.AsyncClient`` configured from settings.

    Timeouts, TLS verification and connection limits come from
    :class:`~qbo_client.config.settings.Settings`. A transport may be
    injected, which is how tests route traffic to ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the manager.

        :param settings: Client settings
        :type settings: Settings
        :param transport: Optional transport for the underlying client
        :type transport: Optional[httpx.AsyncBaseTransport]
        """
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    def _build_client(self) -> httpx.AsyncClient:
        timeout = create_timeout(
            connect=self.settings.open_timeout,
            read=self.settings.read_timeout,
            write=self.settings.timeout,
            pool=self.settings.pool_timeout,
        )
        limits = create_limits(
            max_keepalive_connections=self.settings.pool_size,
            max_connections=self.settings.pool_size * 2,
        )
        kwargs = {
            "timeout": timeout,
            "limits": limits,
            "verify": self.settings.validate_ssl,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def get_client(self) -> httpx.AsyncClient:
        """Return the shared client, creating it on first use.

        :return: Configured HTTP client instance
        :rtype: httpx.AsyncClient
        """
        if self._client is None or self._client.is_closed:
            async with self._lock:
                if self._client is None or self._client.is_closed:
                    self._client = self._build_client()
                    logger.debug(
                        f"Created HTTP client (verify={self.settings.validate_ssl})"
                    )
        return self._client

    async def close(self) -> None:
        """Close the shared client if it was created."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed HTTP client")
        self._client = None
