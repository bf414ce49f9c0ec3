"""Wire the flow components from configuration."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Optional

import httpx
from sqlmodel import Session

from .core.config import (
    OAUTH_ALLOWED_REDIRECT_PATTERNS,
    OAUTH_MAX_EXCHANGE_ATTEMPTS,
    OAUTH_REQUEST_TIMEOUT,
    OAUTH_STATE_TTL_SECONDS,
    validate_provider_credentials,
)
from .models import Provider
from .providers import ADAPTER_TYPES, ProviderAdapter, build_adapters
from .services import (
    AccountLinker,
    IdentityVerifier,
    OAuthOrchestrator,
    SessionIssuer,
    StateStore,
    TokenExchangeClient,
    UserRepository,
    build_state_store,
)


def build_orchestrator(
    session: Session,
    http_client: Optional[httpx.AsyncClient] = None,
    state_store: Optional[StateStore] = None,
    adapters: Optional[Mapping[Provider, ProviderAdapter]] = None,
    session_issuer: Optional[SessionIssuer] = None,
    validate_credentials: bool = False,
) -> OAuthOrchestrator:
    """Build an orchestrator bound to one database session.

    Anything not passed in comes from the environment. A client created here
    is owned by the caller; prefer :func:`open_orchestrator` when none is
    at hand. With ``validate_credentials`` every provider's client id and
    secret must be configured up front instead of on first use.
    """

    if validate_credentials:
        validate_provider_credentials(ADAPTER_TYPES)
    adapters = adapters if adapters is not None else build_adapters()
    http_client = http_client or httpx.AsyncClient(timeout=OAUTH_REQUEST_TIMEOUT)
    return OAuthOrchestrator(
        state_store=state_store if state_store is not None else build_state_store(),
        token_exchange=TokenExchangeClient(adapters, http_client, OAUTH_REQUEST_TIMEOUT),
        identity_verifier=IdentityVerifier(adapters, http_client, OAUTH_REQUEST_TIMEOUT),
        account_linker=AccountLinker(UserRepository(session)),
        session_issuer=session_issuer or SessionIssuer.from_settings(),
        adapters=adapters,
        state_ttl_seconds=OAUTH_STATE_TTL_SECONDS,
        max_exchange_attempts=OAUTH_MAX_EXCHANGE_ATTEMPTS,
        allowed_redirect_patterns=OAUTH_ALLOWED_REDIRECT_PATTERNS,
    )


@asynccontextmanager
async def open_orchestrator(
    session: Session, state_store: Optional[StateStore] = None
) -> AsyncIterator[OAuthOrchestrator]:
    """Yield an orchestrator whose HTTP client is closed on exit."""

    async with httpx.AsyncClient(timeout=OAUTH_REQUEST_TIMEOUT) as http_client:
        yield build_orchestrator(session, http_client, state_store)


__all__ = ["build_orchestrator", "open_orchestrator"]
