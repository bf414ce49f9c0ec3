"""Application settings and environment helpers."""

from __future__ import annotations

import os
import re
from typing import Iterable, List, NamedTuple, Tuple

from dotenv import load_dotenv

from ..errors import ConfigurationError

load_dotenv(override=False)


def _require_env(name: str) -> str:
    """Return a required environment variable or raise a configuration error."""

    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number") from exc


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


# Service ---------------------------------------------------------------------
SERVICE_NAME = os.getenv("SERVICE_NAME", "federation")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = _env_bool("LOG_JSON", False)
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:4000").rstrip("/")


# Persistence -----------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "")
STATE_STORE_BACKEND = os.getenv("STATE_STORE_BACKEND", "memory").strip().lower()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


# OAuth flow ------------------------------------------------------------------
OAUTH_STATE_TTL_SECONDS = _env_int("OAUTH_STATE_TTL_SECONDS", 600)
OAUTH_REQUEST_TIMEOUT = _env_float("OAUTH_REQUEST_TIMEOUT", 10.0)
OAUTH_MAX_EXCHANGE_ATTEMPTS = _env_int("OAUTH_MAX_EXCHANGE_ATTEMPTS", 3)

# Hosts whose callbacks are always served over TLS even when the client sends http.
OAUTH_FORCE_HTTPS_HOSTS = _split_csv(
    os.getenv("OAUTH_FORCE_HTTPS_HOSTS", "ngrok-free.app")
)
OAUTH_GENERIC_CALLBACK_PATH = os.getenv(
    "OAUTH_GENERIC_CALLBACK_PATH", "/api/oauth/callback"
)

# Callbacks accepted by ``begin_flow``. Deployments serving their callback
# anywhere else must list it in OAUTH_ALLOWED_REDIRECT_PATTERNS.
OAUTH_APP_SCHEME = os.getenv("OAUTH_APP_SCHEME", "glubon").strip().lower()

_default_redirect_patterns = [
    rf"^{re.escape(API_BASE_URL)}/api/oauth/[a-z]+/callback(\?.*)?$",
    rf"^{re.escape(API_BASE_URL)}{re.escape(OAUTH_GENERIC_CALLBACK_PATH)}(\?.*)?$",
    r"^https?://[a-z0-9-]+\.ngrok(-free)?\.app/api/oauth/([a-z]+/)?callback(\?.*)?$",
    r"^https?://localhost(:\d+)?/api/oauth/([a-z]+/)?callback(\?.*)?$",
    # Mobile app deep link.
    rf"^{re.escape(OAUTH_APP_SCHEME)}://oauth(\?.*)?$",
]

# Whitespace separated, regular expressions may contain commas.
_additional_redirect_patterns = (
    os.getenv("OAUTH_ALLOWED_REDIRECT_PATTERNS") or ""
).split()

OAUTH_ALLOWED_REDIRECT_PATTERNS = _unique(
    [*_default_redirect_patterns, *_additional_redirect_patterns]
)


# Session tokens --------------------------------------------------------------
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TTL_SECONDS = _env_int("JWT_ACCESS_TTL_SECONDS", 7 * 24 * 3600)
JWT_REFRESH_TTL_SECONDS = _env_int("JWT_REFRESH_TTL_SECONDS", 30 * 24 * 3600)


def jwt_secrets() -> Tuple[str, str]:
    """Return the ``(access, refresh)`` signing secrets."""

    return _require_env("JWT_SECRET"), _require_env("JWT_REFRESH_SECRET")


# Provider credentials --------------------------------------------------------
class ProviderCredentials(NamedTuple):
    client_id: str
    client_secret: str


def provider_credentials(provider: str) -> ProviderCredentials:
    """Read ``<PROVIDER>_CLIENT_ID`` / ``<PROVIDER>_CLIENT_SECRET``.

    ``provider`` is the provider name (``Provider`` members are accepted as they
    are string valued). The raised error names the variable, never its value.
    """

    prefix = str(getattr(provider, "value", provider)).upper()
    return ProviderCredentials(
        client_id=_require_env(f"{prefix}_CLIENT_ID"),
        client_secret=_require_env(f"{prefix}_CLIENT_SECRET"),
    )


def validate_provider_credentials(providers: Iterable[str]) -> None:
    """Fail fast at startup when any enabled provider lacks credentials."""

    for provider in providers:
        provider_credentials(provider)


__all__ = [
    "API_BASE_URL",
    "DATABASE_URL",
    "JWT_ACCESS_TTL_SECONDS",
    "JWT_ALGORITHM",
    "JWT_REFRESH_TTL_SECONDS",
    "LOG_JSON",
    "LOG_LEVEL",
    "OAUTH_ALLOWED_REDIRECT_PATTERNS",
    "OAUTH_APP_SCHEME",
    "OAUTH_FORCE_HTTPS_HOSTS",
    "OAUTH_GENERIC_CALLBACK_PATH",
    "OAUTH_MAX_EXCHANGE_ATTEMPTS",
    "OAUTH_REQUEST_TIMEOUT",
    "OAUTH_STATE_TTL_SECONDS",
    "REDIS_URL",
    "SERVICE_NAME",
    "STATE_STORE_BACKEND",
    "ProviderCredentials",
    "jwt_secrets",
    "provider_credentials",
    "validate_provider_credentials",
]
