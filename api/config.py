"""
Runtime configuration
Environment-backed settings, read at call time so a missing variable
surfaces on the request that needs it rather than at startup.
"""

import os
from typing import Optional


DEFAULT_DEV_PORTAL_BASE_URL = "https://developer.worldcoin.org"


class ServerConfigurationError(RuntimeError):
    """A required environment variable is missing or empty."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing environment variables: {', '.join(missing)}")


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return a stripped env value, treating blank strings as unset."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def require(*names: str) -> dict[str, str]:
    """Read every name, raising ServerConfigurationError if any is empty."""
    values = {name: get_env(name) for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ServerConfigurationError(missing)
    return values


def payment_recipient_address() -> Optional[str]:
    return get_env("PAYMENT_RECIPIENT_ADDRESS")


def dev_portal_base_url() -> str:
    return get_env("DEV_PORTAL_BASE_URL", DEFAULT_DEV_PORTAL_BASE_URL).rstrip("/")


def cookie_secret() -> Optional[str]:
    return get_env("PAY_REF_COOKIE_SECRET")


def is_production() -> bool:
    return get_env("APP_ENV", "development").lower() == "production"


def cors_allow_origins() -> list[str]:
    raw = get_env("CORS_ALLOW_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
