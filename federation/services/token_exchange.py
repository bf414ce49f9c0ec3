"""Authorization code exchange with the provider token endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

import httpx

from ..core.config import OAUTH_REQUEST_TIMEOUT
from ..errors import ConfigurationError, TokenExchangeFailed
from ..models import Provider, ProviderToken
from ..providers import ProviderAdapter

logger = logging.getLogger(__name__)


class TokenExchangeClient:
    """Dispatch ``exchange`` to the provider's adapter under a timeout.

    Every transport, HTTP status and payload problem surfaces as
    :class:`TokenExchangeFailed`, which callers treat as retriable.
    """

    def __init__(
        self,
        adapters: Mapping[Provider, ProviderAdapter],
        http_client: httpx.AsyncClient,
        timeout: float = OAUTH_REQUEST_TIMEOUT,
    ) -> None:
        self._adapters = adapters
        self._client = http_client
        self._timeout = timeout

    async def exchange(
        self,
        provider: Provider,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> ProviderToken:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise ConfigurationError(f"No adapter registered for {provider.value}")

        failure = f"Failed to exchange {provider.display_name} authorization code"
        try:
            token = await asyncio.wait_for(
                adapter.exchange_token(self._client, code, redirect_uri, code_verifier),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Token exchange timed out",
                extra={"provider": provider.value, "timeout": self._timeout},
            )
            raise TokenExchangeFailed(failure) from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Token endpoint rejected the authorization code",
                extra={
                    "provider": provider.value,
                    "status_code": exc.response.status_code,
                },
            )
            raise TokenExchangeFailed(failure) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Token exchange failed",
                extra={"provider": provider.value, "error": type(exc).__name__},
            )
            raise TokenExchangeFailed(failure) from exc

        logger.info("Token exchange succeeded", extra={"provider": provider.value})
        return token


__all__ = ["TokenExchangeClient"]
