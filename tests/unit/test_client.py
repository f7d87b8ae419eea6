"""Tests for the QuickBooks Online client."""

import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from qbo_client.client import Client, build_query_string
from qbo_client.exceptions import (
    CircuitBreakerOpenError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    TokenExpiredError,
)
from qbo_client.models.results import ErrorResult, SuccessResult
from qbo_client.utils.http.circuit_breaker import CircuitBreaker

REALM = "123145"
BASE = f"https://sandbox-quickbooks.api.intuit.com/v3/company/{REALM}"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"


def _client(settings, transport, expires_at=None, **kwargs):
    if expires_at is None:
        expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    return Client(
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        realm_id=REALM,
        expires_at=expires_at,
        settings=settings,
        transport=transport,
        **kwargs,
    )


def _query_of(request):
    return parse_qs(urlparse(str(request.url)).query)


class TestBuildQueryString:
    """Query statement construction."""

    def test_defaults(self):
        assert build_query_string("Customer") == "SELECT * FROM Customer MAXRESULTS 100"

    def test_offset_is_one_based(self):
        assert build_query_string("Customer", offset=5) == (
            "SELECT * FROM Customer STARTPOSITION 6 MAXRESULTS 100"
        )

    def test_conditions_and_select(self):
        assert build_query_string(
            "Invoice", conditions="TotalAmt > '100'", select="Id, TotalAmt", limit=10
        ) == "SELECT Id, TotalAmt FROM Invoice WHERE TotalAmt > '100' MAXRESULTS 10"


class TestClientOperations:
    """CRUD, query, batch and company info requests."""

    @pytest.mark.asyncio
    async def test_query(self, settings, make_transport):
        transport = make_transport(
            lambda request: httpx.Response(
                200,
                json={
                    "QueryResponse": {
                        "Customer": [{"Id": "1"}],
                        "startPosition": 1,
                        "maxResults": 1,
                    }
                },
            )
        )
        async with _client(settings, transport) as qbo:
            result = await qbo.query("Customer", params={"minorversion": 65})

        assert isinstance(result, SuccessResult)
        assert result.entity == [{"Id": "1"}]
        sent = transport.requests[0]
        assert sent.method == "GET"
        assert str(sent.url).startswith(f"{BASE}/query?")
        assert _query_of(sent) == {
            "query": ["SELECT * FROM Customer MAXRESULTS 100"],
            "minorversion": ["65"],
        }
        assert sent.headers["Authorization"] == "Bearer test-access-token"

    @pytest.mark.asyncio
    async def test_find(self, settings, make_transport):
        transport = make_transport(
            lambda request: httpx.Response(200, json={"Customer": {"Id": "42"}})
        )
        async with _client(settings, transport) as qbo:
            result = await qbo.find("Customer", 42)

        assert result.entity == {"Id": "42"}
        assert str(transport.requests[0].url) == f"{BASE}/customer/42"

    @pytest.mark.asyncio
    async def test_create(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        async with _client(settings, transport) as qbo:
            await qbo.create("Customer", {"DisplayName": "Acme"})

        sent = transport.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == f"{BASE}/customer"
        assert json.loads(sent.content) == {"DisplayName": "Acme"}

    @pytest.mark.asyncio
    async def test_update_is_sparse_by_default(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        async with _client(settings, transport) as qbo:
            await qbo.update("Customer", 7, {"SyncToken": "0", "DisplayName": "New"})
            await qbo.update("Customer", 7, {"SyncToken": "1"}, sparse=False)

        sparse_body = json.loads(transport.requests[0].content)
        full_body = json.loads(transport.requests[1].content)
        assert sparse_body == {
            "SyncToken": "0",
            "DisplayName": "New",
            "Id": "7",
            "sparse": True,
        }
        assert full_body == {"SyncToken": "1", "Id": "7"}

    @pytest.mark.asyncio
    async def test_delete(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        async with _client(settings, transport) as qbo:
            await qbo.delete("Invoice", 9, 3)

        sent = transport.requests[0]
        assert str(sent.url) == f"{BASE}/invoice?operation=delete"
        assert json.loads(sent.content) == {"Id": "9", "SyncToken": "3"}

    @pytest.mark.asyncio
    async def test_company_info(self, settings, make_transport):
        transport = make_transport(
            lambda request: httpx.Response(200, json={"CompanyInfo": {"CompanyName": "Acme"}})
        )
        async with _client(settings, transport) as qbo:
            result = await qbo.company_info()

        assert result.entity == {"CompanyName": "Acme"}
        assert str(transport.requests[0].url) == f"{BASE}/companyinfo/{REALM}"

    @pytest.mark.asyncio
    async def test_batch(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        async with _client(settings, transport) as qbo:
            await qbo.batch(
                [
                    {"operation": "create", "entity": "Customer", "data": {"DisplayName": "A"}},
                    {"operation": "delete", "entity": "Invoice", "data": {"Id": "1"}},
                ]
            )

        body = json.loads(transport.requests[0].content)
        assert str(transport.requests[0].url) == f"{BASE}/batch"
        assert body == {
            "BatchItemRequest": [
                {"bId": "bid0", "operation": "create", "Customer": {"DisplayName": "A"}},
                {"bId": "bid1", "operation": "delete", "Invoice": {"Id": "1"}},
            ]
        }


class TestClientErrors:
    """Error results and typed exceptions."""

    @pytest.mark.asyncio
    async def test_error_raised_by_default(self, settings, make_transport):
        transport = make_transport(
            lambda request: httpx.Response(
                404,
                json={"Fault": {"Error": [{"Message": "Object Not Found", "code": "610"}]}},
            )
        )
        async with _client(settings, transport) as qbo:
            with pytest.raises(NotFoundError, match="610: Object Not Found"):
                await qbo.find("Customer", 1)

    @pytest.mark.asyncio
    async def test_error_returned_when_not_raising(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(404, json={}))
        async with _client(settings, transport, raise_errors=False) as qbo:
            result = await qbo.find("Customer", 1)

        assert isinstance(result, ErrorResult)
        assert isinstance(result.to_exception(), NotFoundError)


class TestClientRateLimiting:
    """429 handling."""

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_after_delay(self, settings, make_transport):
        responses = [
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, json={"Customer": {"Id": "1"}}),
        ]
        transport = make_transport(lambda request: responses.pop(0))

        async with _client(settings, transport) as qbo:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                result = await qbo.find("Customer", 1)

        assert result.success
        assert len(transport.requests) == 2
        mock_sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_rate_limit_defaults_to_sixty_seconds(self, settings, make_transport):
        responses = [httpx.Response(429), httpx.Response(200, json={})]
        transport = make_transport(lambda request: responses.pop(0))

        async with _client(settings, transport) as qbo:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                await qbo.find("Customer", 1)

        mock_sleep.assert_awaited_once_with(60.0)

    @pytest.mark.asyncio
    async def test_rate_limit_budget_is_bounded(self, settings, make_transport):
        transport = make_transport(
            lambda request: httpx.Response(429, headers={"Retry-After": "1"})
        )
        limited = settings.model_copy(update={"retry_count": 2})

        async with _client(limited, transport) as qbo:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(RateLimitError) as exc_info:
                    await qbo.find("Customer", 1)

        assert exc_info.value.retry_after == 1.0
        assert len(transport.requests) == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_no_rate_limit_retry_without_budget(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(429))
        no_retry = settings.model_copy(update={"retry_count": 0})

        async with _client(no_retry, transport) as qbo:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(RateLimitError):
                    await qbo.find("Customer", 1)

        assert len(transport.requests) == 1
        mock_sleep.assert_not_awaited()


class TestClientTokens:
    """Token validation and refresh."""

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_before_request(
        self, settings, make_transport, sample_oauth_token
    ):
        def handler(request):
            if str(request.url) == TOKEN_URL:
                return httpx.Response(200, json=sample_oauth_token)
            return httpx.Response(200, json={"Customer": {"Id": "1"}})

        transport = make_transport(handler)
        expired = datetime.now(timezone.utc) - timedelta(minutes=5)

        async with _client(settings, transport, expires_at=expired) as qbo:
            assert not qbo.valid_token
            assert qbo.token_expires_soon
            await qbo.find("Customer", 1)
            assert qbo.valid_token

        assert str(transport.requests[0].url) == TOKEN_URL
        assert transport.requests[1].headers["Authorization"] == "Bearer new-access-token"

    @pytest.mark.asyncio
    async def test_expired_token_without_auto_refresh(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        manual = settings.model_copy(update={"auto_refresh_token": False})
        expired = datetime.now(timezone.utc) - timedelta(minutes=5)

        async with _client(manual, transport, expires_at=expired) as qbo:
            with pytest.raises(TokenExpiredError, match="Access token has expired"):
                await qbo.find("Customer", 1)

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_refresh_token_returns_persistence_data(
        self, settings, make_transport, sample_oauth_token
    ):
        transport = make_transport(
            lambda request: httpx.Response(200, json=sample_oauth_token)
        )
        async with _client(settings, transport) as qbo:
            data = await qbo.refresh_token()

        assert data["access_token"] == "new-access-token"
        assert data["refresh_token"] == "new-refresh-token"
        assert data["realm_id"] == REALM
        assert data["expires_at"] > datetime.now(timezone.utc)


class TestClientResilience:
    """Circuit breaker and pool wiring."""

    def test_defaults_built_from_settings(self, settings, make_transport):
        qbo = _client(settings, make_transport(lambda request: httpx.Response(200)))
        assert qbo.pool.max_size == settings.pool_size
        assert qbo.pool.timeout == settings.pool_timeout
        assert qbo.circuit_breaker.failure_threshold == settings.circuit_failure_threshold
        assert qbo.circuit_breaker.name == f"qbo:{REALM}"

    def test_breaker_can_be_disabled(self, settings, make_transport):
        disabled = settings.model_copy(update={"circuit_breaker_enabled": False})
        qbo = _client(disabled, make_transport(lambda request: httpx.Response(200)))
        assert qbo.circuit_breaker is None

    def test_log_level_applied_to_package_logger(self, settings, make_transport):
        package_logger = logging.getLogger("qbo_client")

        _client(
            settings.model_copy(update={"log_level": "DEBUG"}),
            make_transport(lambda request: httpx.Response(200)),
        )
        assert package_logger.level == logging.DEBUG

        _client(
            settings.model_copy(update={"log_level": "WARNING"}),
            make_transport(lambda request: httpx.Response(200)),
        )
        assert package_logger.level == logging.WARNING


    @pytest.mark.asyncio
    async def test_open_breaker_blocks_requests(self, settings, make_transport):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = make_transport(handler)
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60.0)
        single_attempt = settings.model_copy(update={"retry_count": 1})

        async with _client(single_attempt, transport, circuit_breaker=breaker) as qbo:
            with pytest.raises(NetworkError):
                await qbo.find("Customer", 1)
            with pytest.raises(CircuitBreakerOpenError):
                await qbo.find("Customer", 1)

        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_slot_released_after_request(self, settings, make_transport):
        transport = make_transport(lambda request: httpx.Response(200, json={}))
        async with _client(settings, transport) as qbo:
            await qbo.find("Customer", 1)
            assert qbo.pool.size(REALM) == 1
            assert qbo.pool.in_use(REALM) == 0
