"""Configuration settings for the QuickBooks Online client.

This module defines the configuration consumed by the client: OAuth app
credentials, the target environment, timeouts, retry policy, connection
pool limits and circuit breaker thresholds. Settings are loaded from
``QBO_``-prefixed environment variables and ``.env`` files, and are passed
explicitly into every component that needs them.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError

ENVIRONMENTS: Dict[str, str] = {
    "production": "https://quickbooks.api.intuit.com",
    "sandbox": "https://sandbox-quickbooks.api.intuit.com",
}

OAUTH_BASE_URL = "https://oauth.platform.intuit.com"


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    :param client_id: Intuit OAuth2 client ID
    :type client_id: Optional[str]
    :param client_secret: Intuit OAuth2 client secret
    :type client_secret: Optional[str]
    :param environment: Target environment (sandbox/production)
    :type environment: Literal["sandbox", "production"]
    :param base_url: API base URL, derived from the environment when unset
    :type base_url: Optional[str]
    :param oauth_base_url: Base URL of the OAuth token service
    :type oauth_base_url: str
    :param retry_count: Total attempts for transport failures, and the
                        number of re-issues allowed after a 429
    :type retry_count: int
    :param pool_size: Maximum connection slots per realm
    :type pool_size: int
    :param log_level: Logging level for the library
    :type log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    """

    model_config = SettingsConfigDict(
        env_prefix="QBO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
    )

    # OAuth application credentials
    client_id: Optional[str] = Field(None, description="Intuit OAuth2 client ID")
    client_secret: Optional[str] = Field(
        None, description="Intuit OAuth2 client secret"
    )

    # Endpoints
    environment: Literal["sandbox", "production"] = Field(
        "sandbox", description="QuickBooks environment"
    )
    base_url: Optional[str] = Field(
        None, description="API base URL (defaults to the environment's URL)"
    )
    oauth_base_url: str = Field(OAUTH_BASE_URL, description="OAuth base URL")

    # Timeouts (seconds)
    timeout: float = Field(60.0, gt=0, description="Overall request timeout")
    open_timeout: float = Field(30.0, gt=0, description="Connect timeout")
    read_timeout: float = Field(60.0, gt=0, description="Read timeout")

    # Retry policy
    retry_count: int = Field(3, ge=0, description="Attempts for transport failures")
    retry_delay: float = Field(1.0, ge=0, description="Base backoff delay")
    max_retry_delay: float = Field(32.0, ge=0, description="Backoff delay cap")

    # Connection pool
    pool_size: int = Field(5, gt=0, description="Connection slots per realm")
    pool_timeout: float = Field(5.0, gt=0, description="Checkout wait timeout")

    # Circuit breaker
    circuit_breaker_enabled: bool = Field(True, description="Guard calls with a breaker")
    circuit_failure_threshold: int = Field(5, gt=0)
    circuit_recovery_timeout: float = Field(60.0, ge=0)
    circuit_half_open_attempts: int = Field(3, gt=0)

    # Behaviour toggles
    auto_refresh_token: bool = Field(
        True, description="Refresh expired tokens before requests"
    )
    validate_ssl: bool = Field(True, description="Verify TLS certificates")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )

    @model_validator(mode="after")
    def resolve_base_url(self) -> "Settings":
        """Fill ``base_url`` from the environment when not set explicitly.

        :return: The settings instance
        :rtype: Settings
        """
        if not self.base_url:
            self.base_url = ENVIRONMENTS[self.environment]
        self.base_url = self.base_url.rstrip("/")
        self.oauth_base_url = self.oauth_base_url.rstrip("/")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_sandbox(self) -> bool:
        return self.environment == "sandbox"

    def validate_credentials(self) -> bool:
        """Check that the settings can be used against the live API.

        :return: True when valid
        :rtype: bool
        :raises ConfigurationError: Listing every problem found
        """
        errors = []
        if not self.client_id:
            errors.append("client_id is required")
        if not self.client_secret:
            errors.append("client_secret is required")
        if errors:
            raise ConfigurationError(", ".join(errors))
        return True

    def to_safe_dict(self) -> Dict[str, Any]:
        """Return a loggable summary with the client ID masked."""
        return {
            "client_id": f"{self.client_id[:6]}..." if self.client_id else None,
            "environment": self.environment,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "retry_count": self.retry_count,
            "pool_size": self.pool_size,
            "circuit_breaker_enabled": self.circuit_breaker_enabled,
        }


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment plus explicit overrides.

    :param overrides: Field values taking precedence over the environment
    :return: Validated settings
    :rtype: Settings
    :raises ConfigurationError: If any value fails validation
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
