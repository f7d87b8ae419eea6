"""QuickBooks Online API client.

:class:`Client` is the entry point of the library. It ties the OAuth
manager, request builder, executor, response handler, connection pool and
circuit breaker together for a single realm and exposes the accounting
operations: query, find, create, update, delete, batch and company info,
plus token management.

Example:
    async with Client(access_token, refresh_token, realm_id) as qbo:
        result = await qbo.query("Customer", conditions="Active = true")
        customers = result.entity
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import httpx

from .auth.oauth_manager import OAuthManager
from .auth.token import Token
from .config.settings import Settings, load_settings
from .exceptions import TokenExpiredError
from .models.request import Request
from .models.results import ErrorResult, SuccessResult
from .utils.http.builder import RequestBuilder
from .utils.http.circuit_breaker import CircuitBreaker
from .utils.http.client_manager import HTTPClientManager
from .utils.http.executor import HttpExecutor
from .utils.http.pool import ConnectionPool
from .utils.http.response_handler import ResponseHandler
from .utils.security import setup_secure_logging

logger = logging.getLogger(__name__)

Result = Union[SuccessResult, ErrorResult]

DEFAULT_RATE_LIMIT_WAIT = 60.0


def build_query_string(
    entity: str,
    conditions: Optional[str] = None,
    select: str = "*",
    limit: int = 100,
    offset: int = 0,
) -> str:
    """Build a QuickBooks query statement.

    :param entity: Entity name, e.g. ``Customer``
    :type entity: str
    :param conditions: WHERE clause body
    :type conditions: Optional[str]
    :param select: Selected fields
    :type select: str
    :param limit: Maximum rows returned
    :type limit: int
    :param offset: Rows to skip; QuickBooks positions are 1-based
    :type offset: int
    :return: The statement
    :rtype: str
    """
    query = f"SELECT {select} FROM {entity}"
    if conditions:
        query += f" WHERE {conditions}"
    if offset > 0:
        query += f" STARTPOSITION {offset + 1}"
    query += f" MAXRESULTS {limit}"
    return query


class Client:
    """Client for one QuickBooks Online company (realm)."""

    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[str],
        realm_id: str,
        expires_at: Union[datetime, str, None] = None,
        expires_in: Optional[int] = None,
        settings: Optional[Settings] = None,
        executor: Optional[HttpExecutor] = None,
        pool: Optional[ConnectionPool] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        raise_errors: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        :param access_token: OAuth2 access token
        :type access_token: str
        :param refresh_token: OAuth2 refresh token
        :type refresh_token: Optional[str]
        :param realm_id: QuickBooks company id
        :type realm_id: str
        :param expires_at: Access token expiry as a datetime or ISO8601 string
        :type expires_at: Union[datetime, str, None]
        :param expires_in: Seconds until the access token expires
        :type expires_in: Optional[int]
        :param settings: Settings; loaded from the environment if omitted
        :type settings: Optional[Settings]
        :param executor: Request executor
        :type executor: Optional[HttpExecutor]
        :param pool: Connection pool; built from settings if omitted
        :type pool: Optional[ConnectionPool]
        :param circuit_breaker: Breaker; built from settings if omitted
                                and enabled
        :type circuit_breaker: Optional[CircuitBreaker]
        :param raise_errors: Raise error results as typed exceptions
                             instead of returning them
        :type raise_errors: bool
        :param transport: Transport for the HTTP client, used in tests
        :type transport: Optional[httpx.AsyncBaseTransport]
        """
        self.settings = settings or load_settings()
        setup_secure_logging(self.settings.log_level)
        self.realm_id = realm_id
        self.raise_errors = raise_errors

        token = Token.create(
            access_token=access_token,
            refresh_token=refresh_token,
            realm_id=realm_id,
            expires_at=expires_at,
            expires_in=expires_in,
        )

        self._http = HTTPClientManager(self.settings, transport=transport)
        self.oauth_manager = OAuthManager(token, self.settings, http=self._http)
        self.request_builder = RequestBuilder(self.oauth_manager, self.settings)
        self.response_handler = ResponseHandler()
        self.executor = executor or HttpExecutor(self.settings, http=self._http)
        self.pool = pool or ConnectionPool(
            size=self.settings.pool_size, timeout=self.settings.pool_timeout
        )
        if circuit_breaker is None and self.settings.circuit_breaker_enabled:
            circuit_breaker = CircuitBreaker(
                failure_threshold=self.settings.circuit_failure_threshold,
                recovery_timeout=self.settings.circuit_recovery_timeout,
                half_open_attempts=self.settings.circuit_half_open_attempts,
                name=f"qbo:{realm_id}",
            )
        self.circuit_breaker = circuit_breaker

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.executor.aclose()
        await self._http.close()

    # Core operations

    async def query(
        self,
        entity: str,
        conditions: Optional[str] = None,
        select: str = "*",
        limit: int = 100,
        offset: int = 0,
        params: Optional[Dict[str, Any]] = None,
    ) -> Result:
        """Run a query statement against an entity.

        :param entity: Entity name, e.g. ``Customer``
        :type entity: str
        :param conditions: WHERE clause body
        :type conditions: Optional[str]
        :param select: Selected fields
        :type select: str
        :param limit: Maximum rows returned
        :type limit: int
        :param offset: Rows to skip
        :type offset: int
        :param params: Extra query parameters
        :type params: Optional[Dict[str, Any]]
        :return: The API result
        """
        await self.ensure_valid_token()
        statement = build_query_string(entity, conditions, select, limit, offset)
        request = self.request_builder.build(
            "GET", "query", query={"query": statement, **(params or {})}
        )
        return await self._execute_request(request)

    async def find(self, entity: str, id: Union[str, int]) -> Result:
        await self.ensure_valid_token()
        request = self.request_builder.build("GET", f"{entity.lower()}/{id}")
        return await self._execute_request(request)

    async def create(self, entity: str, data: Dict[str, Any]) -> Result:
        await self.ensure_valid_token()
        request = self.request_builder.build("POST", entity.lower(), body=data)
        return await self._execute_request(request)

    async def update(
        self,
        entity: str,
        id: Union[str, int],
        data: Dict[str, Any],
        sparse: bool = True,
    ) -> Result:
        """Update an entity; the API requires its ``Id`` in the body."""
        await self.ensure_valid_token()
        payload = {**data, "Id": str(id)}
        if sparse:
            payload["sparse"] = True
        request = self.request_builder.build("POST", entity.lower(), body=payload)
        return await self._execute_request(request)

    async def delete(
        self, entity: str, id: Union[str, int], sync_token: Union[str, int]
    ) -> Result:
        await self.ensure_valid_token()
        request = self.request_builder.build(
            "POST",
            entity.lower(),
            query={"operation": "delete"},
            body={"Id": str(id), "SyncToken": str(sync_token)},
        )
        return await self._execute_request(request)

    async def company_info(self) -> Result:
        await self.ensure_valid_token()
        request = self.request_builder.build("GET", f"companyinfo/{self.realm_id}")
        return await self._execute_request(request)

    async def batch(self, operations: List[Dict[str, Any]]) -> Result:
        """Send several operations in one call.

        :param operations: Items with ``operation``, ``entity`` and ``data``
        :type operations: List[Dict[str, Any]]
        :return: The API result
        """
        await self.ensure_valid_token()
        body = {
            "BatchItemRequest": [
                {
                    "bId": f"bid{index}",
                    "operation": op.get("operation"),
                    str(op.get("entity")): op.get("data"),
                }
                for index, op in enumerate(operations)
            ]
        }
        request = self.request_builder.build("POST", "batch", body=body)
        return await self._execute_request(request)

    # Token management

    async def refresh_token(self) -> Dict[str, Any]:
        """Refresh the token and return the new credentials for persistence."""
        token = await self.oauth_manager.refresh()
        return token.to_persistence_dict()

    @property
    def valid_token(self) -> bool:
        return self.oauth_manager.is_valid

    @property
    def token_expires_soon(self) -> bool:
        return self.oauth_manager.refresh_needed

    async def ensure_valid_token(self) -> None:
        """Refresh an invalid token when allowed.

        :raises TokenExpiredError: If the token is invalid and cannot be
            refreshed automatically
        """
        if self.oauth_manager.is_valid:
            return

        if not (
            self.settings.auto_refresh_token and self.oauth_manager.token.refresh_token
        ):
            raise TokenExpiredError("Access token has expired")

        logger.info(f"Token invalid, attempting auto-refresh for realm {self.realm_id}")
        await self.oauth_manager.refresh()

    # Execution

    async def _execute_request(self, request: Request) -> Result:
        rate_limit_budget = self.settings.retry_count

        while True:
            result = await self._send(request)
            if not (
                isinstance(result, ErrorResult)
                and result.status_code == 429
                and rate_limit_budget > 0
            ):
                break

            rate_limit_budget -= 1
            retry_after = result.retry_after
            if retry_after is None:
                retry_after = DEFAULT_RATE_LIMIT_WAIT
            logger.warning(
                f"Rate limit hit for realm {self.realm_id}, retrying in {retry_after}s"
            )
            await asyncio.sleep(retry_after)

        if result.error and self.raise_errors:
            result.raise_for_error()
        return result

    async def _send(self, request: Request) -> Result:
        async with self.pool.connection(self.realm_id):
            if self.circuit_breaker is not None:
                response = await self.circuit_breaker.call(
                    lambda: self.executor.execute(request)
                )
            else:
                response = await self.executor.execute(request)
        return self.response_handler.handle(response, request)
