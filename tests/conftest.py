import os
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import parse_qs

# Configuration is read at import time.
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("STATE_STORE_BACKEND", "memory")
for _prefix in ("GOOGLE", "FACEBOOK", "LINKEDIN"):
    os.environ.setdefault(f"{_prefix}_CLIENT_ID", f"{_prefix.lower()}-env-client-id")
    os.environ.setdefault(f"{_prefix}_CLIENT_SECRET", f"{_prefix.lower()}-env-client-secret")

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from federation.core.config import ProviderCredentials
from federation.models import Provider
from federation.providers import build_adapters
from federation.services import (
    AccountLinker,
    IdentityVerifier,
    MemoryStateStore,
    OAuthOrchestrator,
    SessionIssuer,
    TokenExchangeClient,
    UserRepository,
)

REDIRECT_URI = "http://localhost:4000/api/oauth/google/callback"

TOKEN_ENDPOINTS = {
    ("oauth2.googleapis.com", "/token"): Provider.GOOGLE,
    ("graph.facebook.com", "/v18.0/oauth/access_token"): Provider.FACEBOOK,
    ("www.linkedin.com", "/oauth/v2/accessToken"): Provider.LINKEDIN,
}


class FakeClock:
    """Settable wall clock; ``monotonic`` drives ``MemoryStateStore`` expiry."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ProviderStub:
    """Answers the provider endpoints for an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.token_failures = 0
        self.profile_status = 200
        self.google_profile: Dict[str, object] = {
            "id": "google-123",
            "email": "Ada@Example.com",
            "verified_email": True,
            "name": "Ada Lovelace",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "picture": "https://lh3.googleusercontent.com/ada.png",
        }
        self.facebook_profile: Dict[str, object] = {
            "id": "fb-456",
            "email": "ada@example.com",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "picture": {"data": {"url": "https://graph.facebook.com/ada.jpg"}},
        }
        self.linkedin_profile: Dict[str, object] = {
            "id": "li-789",
            "localizedFirstName": "Ada",
            "localizedLastName": "Lovelace",
        }
        self.linkedin_email = "ada@example.com"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        provider = TOKEN_ENDPOINTS.get((host, path))
        if provider is not None:
            if self.token_failures:
                self.token_failures -= 1
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": f"{provider.slug}-access-token",
                    "expires_in": 3599,
                    "token_type": "Bearer",
                },
            )

        if self.profile_status != 200:
            return httpx.Response(self.profile_status, json={"error": "invalid_token"})
        if host == "www.googleapis.com" and path == "/oauth2/v2/userinfo":
            return httpx.Response(200, json=self.google_profile)
        if host == "graph.facebook.com" and path == "/me":
            return httpx.Response(200, json=self.facebook_profile)
        if host == "api.linkedin.com" and path == "/v2/me":
            return httpx.Response(200, json=self.linkedin_profile)
        if host == "api.linkedin.com" and path == "/v2/emailAddresses":
            return httpx.Response(
                200,
                json={"elements": [{"handle~": {"emailAddress": self.linkedin_email}}]},
            )
        return httpx.Response(404)

    def token_requests(self) -> List[httpx.Request]:
        return [
            request
            for request in self.requests
            if (request.url.host, request.url.path) in TOKEN_ENDPOINTS
        ]

    def last_token_form(self) -> Dict[str, str]:
        request = self.token_requests()[-1]
        if request.method == "GET":
            return dict(request.url.params)
        return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def provider_stub():
    return ProviderStub()


@pytest.fixture()
def http_client(provider_stub):
    return httpx.AsyncClient(transport=httpx.MockTransport(provider_stub.handler))


@pytest.fixture()
def adapters():
    return build_adapters(
        {
            provider: ProviderCredentials(
                f"{provider.slug}-client-id", f"{provider.slug}-client-secret"
            )
            for provider in (Provider.GOOGLE, Provider.FACEBOOK, Provider.LINKEDIN)
        }
    )


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def users(session):
    return UserRepository(session)


@pytest.fixture()
def state_store(clock):
    return MemoryStateStore(clock=clock.monotonic)


@pytest.fixture()
def issuer(clock):
    return SessionIssuer("test-access-secret", "test-refresh-secret", clock=clock)


@pytest.fixture()
def orchestrator(state_store, http_client, adapters, users, issuer, clock):
    return OAuthOrchestrator(
        state_store=state_store,
        token_exchange=TokenExchangeClient(adapters, http_client),
        identity_verifier=IdentityVerifier(adapters, http_client),
        account_linker=AccountLinker(users, clock=clock),
        session_issuer=issuer,
        adapters=adapters,
        clock=clock,
    )
