"""Core configuration and infrastructure helpers."""

from .config import (
    API_BASE_URL,
    JWT_ACCESS_TTL_SECONDS,
    JWT_ALGORITHM,
    JWT_REFRESH_TTL_SECONDS,
    OAUTH_ALLOWED_REDIRECT_PATTERNS,
    OAUTH_FORCE_HTTPS_HOSTS,
    OAUTH_GENERIC_CALLBACK_PATH,
    OAUTH_MAX_EXCHANGE_ATTEMPTS,
    OAUTH_REQUEST_TIMEOUT,
    OAUTH_STATE_TTL_SECONDS,
    REDIS_URL,
    STATE_STORE_BACKEND,
    ProviderCredentials,
    jwt_secrets,
    provider_credentials,
    validate_provider_credentials,
)
from .database import create_db_and_tables, get_engine, get_session, make_engine
from .logging import configure_logging, flow_context, mask_state
from .time import as_utc, utcnow

__all__ = [
    "API_BASE_URL",
    "JWT_ACCESS_TTL_SECONDS",
    "JWT_ALGORITHM",
    "JWT_REFRESH_TTL_SECONDS",
    "OAUTH_ALLOWED_REDIRECT_PATTERNS",
    "OAUTH_FORCE_HTTPS_HOSTS",
    "OAUTH_GENERIC_CALLBACK_PATH",
    "OAUTH_MAX_EXCHANGE_ATTEMPTS",
    "OAUTH_REQUEST_TIMEOUT",
    "OAUTH_STATE_TTL_SECONDS",
    "REDIS_URL",
    "STATE_STORE_BACKEND",
    "ProviderCredentials",
    "as_utc",
    "configure_logging",
    "create_db_and_tables",
    "flow_context",
    "get_engine",
    "get_session",
    "jwt_secrets",
    "make_engine",
    "mask_state",
    "provider_credentials",
    "utcnow",
    "validate_provider_credentials",
]
