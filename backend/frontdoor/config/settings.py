"""
Process settings read from the environment.

Tenant applications live in a YAML file (see config/tenants.py); this
module only covers process-wide knobs.
"""

import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/tenants.yml"
DEFAULT_DATABASE_URL = "sqlite:///./frontdoor.db"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Ignoring non-integer environment value",
            extra={"variable": name, "default": default},
        )
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "Ignoring non-numeric environment value",
            extra={"variable": name, "default": default},
        )
        return default


def normalize_database_url(database_url: str) -> str:
    """SQLAlchemy requires postgresql:// rather than the postgres:// alias."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration."""

    config_path: str = DEFAULT_CONFIG_PATH
    database_url: str = DEFAULT_DATABASE_URL
    entitlement_cache_ttl_seconds: int = 30
    entitlement_sweep_interval_seconds: int = 300
    login_attempt_ttl_seconds: int = 600
    login_max_pending: int = 10000
    identity_timeout_seconds: float = 10.0
    billing_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            config_path=os.getenv("FRONTDOOR_CONFIG", DEFAULT_CONFIG_PATH),
            database_url=normalize_database_url(
                os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
            ),
            entitlement_cache_ttl_seconds=_int_env("ENTITLEMENT_CACHE_TTL", 30),
            entitlement_sweep_interval_seconds=_int_env("ENTITLEMENT_SWEEP_INTERVAL", 300),
            login_attempt_ttl_seconds=_int_env("LOGIN_ATTEMPT_TTL", 600),
            login_max_pending=_int_env("LOGIN_MAX_PENDING", 10000),
            identity_timeout_seconds=_float_env("IDENTITY_TIMEOUT_SECONDS", 10.0),
            billing_timeout_seconds=_float_env("BILLING_TIMEOUT_SECONDS", 10.0),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
