"""Configuration package for the QuickBooks Online client."""

from .settings import ENVIRONMENTS, OAUTH_BASE_URL, Settings, load_settings

__all__ = ["ENVIRONMENTS", "OAUTH_BASE_URL", "Settings", "load_settings"]
