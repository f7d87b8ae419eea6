import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from qbo_client.auth.token import Token  # noqa: E402
from qbo_client.config.settings import Settings  # noqa: E402


def pytest_configure(config):
    # Register the asyncio marker so pytest doesn't warn when it's used.
    config.addinivalue_line(
        "markers", "asyncio: mark test to run in an asyncio event loop"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "auth: mark test as testing authentication"
    )


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set required environment variables for tests.

    Every test gets sandbox credentials and fast retry delays so that
    Settings can be created without a real Intuit app.
    """
    monkeypatch.setenv("QBO_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("QBO_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("QBO_ENVIRONMENT", "sandbox")
    monkeypatch.setenv("QBO_RETRY_DELAY", "0.01")
    monkeypatch.setenv("QBO_LOG_LEVEL", "INFO")

    yield


@pytest.fixture
def settings():
    """Settings built from the patched environment."""
    return Settings()


@pytest.fixture
def valid_token():
    """A token that expires in one hour."""
    return Token.create(
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        realm_id="123145",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def expired_token():
    """A token that expired an hour ago."""
    return Token.create(
        access_token="old-access-token",
        refresh_token="test-refresh-token",
        realm_id="123145",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )


@pytest.fixture
def sample_oauth_token():
    """Sample OAuth token endpoint response."""
    return {
        "access_token": "new-access-token",
        "refresh_token": "new-refresh-token",
        "token_type": "bearer",
        "expires_in": 3600,
        "x_refresh_token_expires_in": 8726400,
    }


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it served."""

    def __init__(self, handler):
        self.requests = []

        def recording_handler(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)


@pytest.fixture
def make_transport():
    """Factory for recording mock transports."""
    return RecordingTransport
