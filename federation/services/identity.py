"""Provider profile lookup and normalization into ``ExternalIdentity``."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping

import httpx
from pydantic import ValidationError

from ..core.config import OAUTH_REQUEST_TIMEOUT
from ..errors import (
    ConfigurationError,
    IdentityVerificationFailed,
    IncompleteProviderProfile,
)
from ..models import ExternalIdentity, Provider
from ..providers import ProviderAdapter

logger = logging.getLogger(__name__)

# Needed to find or create the local account.
REQUIRED_FIELDS = ("email", "external_id", "first_name")


class IdentityVerifier:
    def __init__(
        self,
        adapters: Mapping[Provider, ProviderAdapter],
        http_client: httpx.AsyncClient,
        timeout: float = OAUTH_REQUEST_TIMEOUT,
    ) -> None:
        self._adapters = adapters
        self._client = http_client
        self._timeout = timeout

    async def verify(self, provider: Provider, access_token: str) -> ExternalIdentity:
        """Fetch the profile for ``access_token`` and validate it.

        Raises:
            IdentityVerificationFailed: the provider refused the token or
                could not be reached.
            IncompleteProviderProfile: email, id or first name is missing.
        """

        adapter = self._adapters.get(provider)
        if adapter is None:
            raise ConfigurationError(f"No adapter registered for {provider.value}")

        try:
            fields = await asyncio.wait_for(
                adapter.fetch_profile(self._client, access_token), timeout=self._timeout
            )
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Provider token verification failed",
                extra={"provider": provider.value, "error": type(exc).__name__},
            )
            raise IdentityVerificationFailed(
                f"Invalid {provider.display_name} access token"
            ) from exc

        missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
        if missing:
            logger.warning(
                "Provider profile is incomplete",
                extra={"provider": provider.value, "missing": missing},
            )
            raise IncompleteProviderProfile(
                f"Incomplete user data from {provider.display_name}", missing=missing
            )

        try:
            fields = dict(fields)
            fields["email"] = str(fields["email"]).strip().lower()
            return ExternalIdentity(**fields)
        except (ValidationError, TypeError) as exc:
            logger.warning(
                "Provider profile could not be parsed",
                extra={"provider": provider.value, "error": type(exc).__name__},
            )
            raise IdentityVerificationFailed(
                f"Invalid {provider.display_name} profile data"
            ) from exc


__all__ = ["IdentityVerifier", "REQUIRED_FIELDS"]
