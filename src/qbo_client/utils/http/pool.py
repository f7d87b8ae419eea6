"""Bounded per-realm connection slots.

The pool hands out logical connection slots keyed by realm so that no
single company can hold more than ``size`` concurrent requests. Checkout
waits on an ``asyncio.Condition`` until a slot is free or capacity allows
a new one, and gives up with :class:`~qbo_client.exceptions.TimeoutError`
once ``timeout`` seconds have passed.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional

from ...exceptions import TimeoutError

logger = logging.getLogger(__name__)


@dataclass
class PooledConnection:
    """A single slot owned by one realm."""

    realm_id: str
    created_at: float = field(default_factory=time.time)
    in_use: bool = False
    checked_out_at: Optional[float] = None
    checked_in_at: Optional[float] = None


class ConnectionPool:
    """Per-realm slot pool.

    :param size: Maximum slots per realm
    :param timeout: Maximum seconds a checkout may wait
    """

    def __init__(self, size: int = 5, timeout: float = 5.0):
        self.max_size = size
        self.timeout = timeout
        self._connections: Dict[str, List[PooledConnection]] = {}
        self._condition = asyncio.Condition()

    async def checkout(self, realm_id: str) -> PooledConnection:
        """Acquire a slot for ``realm_id``, waiting if necessary.

        :param realm_id: QuickBooks company id
        :type realm_id: str
        :return: The slot, marked in use
        :rtype: PooledConnection
        :raises TimeoutError: If no slot could be acquired in time
        """
        start_time = time.monotonic()

        async with self._condition:
            while True:
                connection = self._find_available(realm_id)
                if connection is None and self._can_create(realm_id):
                    connection = self._create(realm_id)
                if connection is not None:
                    break

                elapsed = time.monotonic() - start_time
                if elapsed >= self.timeout:
                    raise TimeoutError(
                        f"Could not acquire connection within {self.timeout}s"
                    )
                try:
                    await asyncio.wait_for(
                        self._condition.wait(), timeout=self.timeout - elapsed
                    )
                except asyncio.TimeoutError:
                    pass

            connection.in_use = True
            connection.checked_out_at = time.time()

        logger.debug(
            f"Connection checked out: realm_id={realm_id} "
            f"pool_size={len(self._connections.get(realm_id, []))}"
        )
        return connection

    async def checkin(self, realm_id: str, connection: PooledConnection) -> None:
        """Return a slot and wake the waiters."""
        async with self._condition:
            connection.in_use = False
            connection.checked_in_at = time.time()
            # Waiters for every realm share this condition
            self._condition.notify_all()

        logger.debug(f"Connection checked in: realm_id={realm_id}")

    @asynccontextmanager
    async def connection(self, realm_id: str) -> AsyncIterator[PooledConnection]:
        """Hold a slot for the duration of the ``async with`` block."""
        conn = await self.checkout(realm_id)
        try:
            yield conn
        finally:
            await self.checkin(realm_id, conn)

    async def clear(self) -> None:
        async with self._condition:
            self._connections.clear()
            self._condition.notify_all()

        logger.info("Connection pool cleared")

    def size(self, realm_id: Optional[str] = None) -> int:
        """Number of slots created, for one realm or across all of them."""
        if realm_id is not None:
            return len(self._connections.get(realm_id, []))
        return sum(len(conns) for conns in self._connections.values())

    def in_use(self, realm_id: str) -> int:
        return sum(1 for conn in self._connections.get(realm_id, []) if conn.in_use)

    def _find_available(self, realm_id: str) -> Optional[PooledConnection]:
        for conn in self._connections.get(realm_id, []):
            if not conn.in_use:
                return conn
        return None

    def _can_create(self, realm_id: str) -> bool:
        return len(self._connections.get(realm_id, [])) < self.max_size

    def _create(self, realm_id: str) -> PooledConnection:
        conn = PooledConnection(realm_id=realm_id)
        self._connections.setdefault(realm_id, []).append(conn)
        logger.debug(
            f"New connection created: realm_id={realm_id} "
            f"total={len(self._connections[realm_id])}"
        )
        return conn
