"""Redirect URI validation and normalization.

The provider compares the ``redirect_uri`` sent with the token request to the
one it saw during authorization, byte for byte. Both sides of the flow go
through :func:`normalize_redirect_uri` so the fixups below are applied
identically.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Pattern, Sequence, Tuple
from urllib.parse import urlsplit

from ..core.config import (
    OAUTH_ALLOWED_REDIRECT_PATTERNS,
    OAUTH_FORCE_HTTPS_HOSTS,
    OAUTH_GENERIC_CALLBACK_PATH,
)
from ..models import Provider


@lru_cache(maxsize=8)
def _compile(patterns: Tuple[str, ...]) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


def is_allowed_redirect_uri(
    redirect_uri: str, patterns: Iterable[str] = OAUTH_ALLOWED_REDIRECT_PATTERNS
) -> bool:
    return any(pattern.match(redirect_uri) for pattern in _compile(tuple(patterns)))


def _forces_https(host: str, force_https_hosts: Sequence[str]) -> bool:
    host = host.lower()
    return any(host == item or host.endswith(f".{item}") for item in force_https_hosts)


def normalize_redirect_uri(
    provider: Provider,
    redirect_uri: str,
    force_https_hosts: Sequence[str] = OAUTH_FORCE_HTTPS_HOSTS,
    generic_callback_path: str = OAUTH_GENERIC_CALLBACK_PATH,
) -> str:
    """Apply the scheme and path fixups shared by authorization and exchange.

    * ``http://`` becomes ``https://`` for tunnel hosts that only serve TLS.
    * A generic ``.../callback`` URI becomes ``.../{provider}/callback``.

    The function is idempotent.
    """

    normalized = redirect_uri
    parts = urlsplit(normalized)

    if parts.scheme == "http" and _forces_https(parts.hostname or "", force_https_hosts):
        normalized = "https" + normalized[len("http"):]

    if generic_callback_path and normalized.endswith(generic_callback_path):
        prefix, _, leaf = generic_callback_path.rpartition("/")
        specific = f"{prefix}/{provider.slug}/{leaf}"
        normalized = normalized[: -len(generic_callback_path)] + specific

    return normalized


__all__ = ["is_allowed_redirect_uri", "normalize_redirect_uri"]
