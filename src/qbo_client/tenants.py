"""Registry of clients for many QuickBooks companies.

Applications serving several companies keep one :class:`~qbo_client.client.Client`
per realm in a :class:`TenantClientManager`. A cached client is reused while
its token is valid and replaced otherwise.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .client import Client
from .config.settings import Settings, load_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "qbo:"


class TenantClientManager:
    """Caches one client per realm.

    :param settings: Settings shared by every client created here
    :param client_options: Extra keyword arguments for each new client
    """

    def __init__(self, settings: Optional[Settings] = None, **client_options: Any):
        self.settings = settings or load_settings()
        self._client_options = client_options
        self._clients: Dict[str, Client] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(realm_id: str) -> str:
        return f"{KEY_PREFIX}{realm_id}"

    async def client_for(
        self,
        realm_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Union[datetime, str, None] = None,
    ) -> Client:
        """Return the cached client for ``realm_id`` or build a new one.

        :param realm_id: QuickBooks company id
        :type realm_id: str
        :param access_token: Access token for a new client
        :type access_token: str
        :param refresh_token: Refresh token for a new client
        :type refresh_token: Optional[str]
        :param expires_at: Access token expiry for a new client
        :type expires_at: Union[datetime, str, None]
        :return: A client whose token was valid when cached, or a new one
        :rtype: Client
        """
        key = self._key(realm_id)
        async with self._lock:
            existing = self._clients.get(key)
            if existing is not None:
                if existing.valid_token:
                    return existing
                logger.info(
                    f"Existing client token invalid, creating new for realm {realm_id}"
                )
                await existing.close()

            client = Client(
                access_token=access_token,
                refresh_token=refresh_token,
                realm_id=realm_id,
                expires_at=expires_at,
                settings=self.settings,
                **self._client_options,
            )
            self._clients[key] = client
            logger.info(
                f"New client created for realm {realm_id} "
                f"(total clients: {len(self._clients)})"
            )
            return client

    async def remove_client(self, realm_id: str) -> None:
        async with self._lock:
            client = self._clients.pop(self._key(realm_id), None)
        if client is not None:
            await client.close()
            logger.info(f"Client removed for realm {realm_id}")

    async def clear_all(self) -> None:
        async with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            await client.close()
        logger.info(f"All clients cleared (count: {len(clients)})")

    async def refresh_all(self) -> Dict[str, bool]:
        """Refresh every cached token that is expired or expiring soon.

        Failures are logged and do not stop the remaining refreshes.

        :return: Realm id mapped to whether its refresh succeeded
        :rtype: Dict[str, bool]
        """
        outcome: Dict[str, bool] = {}
        async with self._lock:
            for client in self._clients.values():
                if not client.token_expires_soon:
                    continue
                try:
                    await client.refresh_token()
                except Exception as e:
                    logger.error(
                        f"Failed to refresh token for realm {client.realm_id}: {e}"
                    )
                    outcome[client.realm_id] = False
                else:
                    logger.info(f"Token refreshed for realm {client.realm_id}")
                    outcome[client.realm_id] = True
        return outcome

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def realm_ids(self) -> List[str]:
        return [key[len(KEY_PREFIX):] for key in self._clients]
