"""OAuth2 token value for QuickBooks Online.

A :class:`Token` carries the access and refresh credentials for one realm
together with the access token's expiry. Tokens are frozen: a refresh
produces a new instance rather than mutating the old one.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..utils.security import redact_secret

DEFAULT_EXPIRY_THRESHOLD = 300


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Token(BaseModel):
    """OAuth2 credentials for a single QuickBooks company.

    :param access_token: Bearer credential sent with API requests
    :type access_token: Optional[str]
    :param refresh_token: Credential used to obtain new access tokens
    :type refresh_token: Optional[str]
    :param realm_id: QuickBooks company ID the token is scoped to
    :type realm_id: str
    :param expires_at: Access token expiry; ``None`` means it never expires
    :type expires_at: Optional[datetime]
    """

    model_config = ConfigDict(frozen=True)

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    realm_id: str
    expires_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        access_token: Optional[str],
        refresh_token: Optional[str],
        realm_id: str,
        expires_at: Union[datetime, str, None] = None,
        expires_in: Optional[int] = None,
    ) -> "Token":
        """Build a token from raw OAuth exchange data.

        Exactly one expiry representation is honored, checked in this
        order: an absolute ``datetime``, an ISO8601 string, then a
        relative ``expires_in`` in seconds.

        :param access_token: Access credential
        :param refresh_token: Refresh credential
        :param realm_id: QuickBooks company ID
        :param expires_at: Expiry as a datetime or ISO8601 string
        :param expires_in: Seconds until expiry
        :return: New token
        :rtype: Token
        """
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            realm_id=str(realm_id),
            expires_at=cls._calculate_expiry(expires_at, expires_in),
        )

    @staticmethod
    def _calculate_expiry(
        expires_at: Union[datetime, str, None], expires_in: Optional[int]
    ) -> Optional[datetime]:
        if isinstance(expires_at, datetime):
            return _as_aware(expires_at)
        if isinstance(expires_at, str):
            return _as_aware(datetime.fromisoformat(expires_at.replace("Z", "+00:00")))
        if isinstance(expires_in, str):
            try:
                expires_in = float(expires_in.strip())
            except ValueError:
                raise ValueError(f"Invalid expires_in value: {expires_in!r}") from None
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool):
            return _utcnow() + timedelta(seconds=expires_in)
        return None

    @property
    def is_valid(self) -> bool:
        """Return whether the access token is present and unexpired."""
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return _utcnow() < _as_aware(self.expires_at)

    @property
    def is_expired(self) -> bool:
        return not self.is_valid

    def expires_soon(self, threshold_seconds: float = DEFAULT_EXPIRY_THRESHOLD) -> bool:
        """Return whether the token expires within ``threshold_seconds``.

        Tokens without an expiry never expire soon.

        :param threshold_seconds: Look-ahead window in seconds
        :type threshold_seconds: float
        :return: True if the expiry falls inside the window
        :rtype: bool
        """
        if self.expires_at is None:
            return False
        return _utcnow() + timedelta(seconds=threshold_seconds) >= _as_aware(
            self.expires_at
        )

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Return the token and its derived state as a dictionary.

        Credentials are redacted unless ``redact`` is False.

        :param redact: Replace credentials with length markers
        :type redact: bool
        :return: Token attributes and validity flags
        :rtype: Dict[str, Any]
        """
        access = redact_secret(self.access_token) if redact else self.access_token
        refresh = redact_secret(self.refresh_token) if redact else self.refresh_token
        return {
            "access_token": access,
            "refresh_token": refresh,
            "realm_id": self.realm_id,
            "expires_at": self.expires_at,
            "valid": self.is_valid,
            "expires_soon": self.expires_soon(),
        }

    def to_persistence_dict(self) -> Dict[str, Any]:
        """Return raw credentials for storage by the caller."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "realm_id": self.realm_id,
        }

    def __repr__(self) -> str:
        return (
            f"Token(realm_id={self.realm_id!r}, expires_at={self.expires_at!r}, "
            f"valid={self.is_valid})"
        )
