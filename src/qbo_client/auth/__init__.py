"""Authentication package for the QuickBooks Online client.

Exposes the token value, the per-realm refresh manager and the
authorization-code flow client.
"""

from .oauth_client import OAuthClient
from .oauth_manager import OAuthManager
from .token import Token

__all__ = ["OAuthClient", "OAuthManager", "Token"]
