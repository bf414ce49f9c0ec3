"""Common shape of an identity provider integration."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx

from ..core.config import ProviderCredentials, provider_credentials
from ..models import Provider, ProviderToken
from .pkce import CHALLENGE_METHOD


def text(value: Any) -> str:
    """Coerce an optional provider value to a stripped string."""

    if value is None:
        return ""
    return str(value).strip()


def split_full_name(name: Any) -> Tuple[str, str]:
    first, _, last = text(name).partition(" ")
    return first, last.strip()


def bearer(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


class ProviderAdapter(ABC):
    """Authorization URL, token exchange and profile lookup for one provider.

    Subclasses declare their endpoints as class attributes and implement the
    two network calls. Whether PKCE is used is a property of the adapter.
    """

    provider: ClassVar[Provider]
    authorize_url: ClassVar[str]
    token_url: ClassVar[str]
    scopes: ClassVar[Tuple[str, ...]]
    scope_separator: ClassVar[str] = " "
    supports_pkce: ClassVar[bool] = True
    extra_params: ClassVar[Mapping[str, str]] = {}

    def __init__(self, credentials: Optional[ProviderCredentials] = None) -> None:
        self._credentials = credentials

    @property
    def credentials(self) -> ProviderCredentials:
        # Resolved on first use so a missing secret surfaces as a configuration error.
        if self._credentials is None:
            self._credentials = provider_credentials(self.provider.value)
        return self._credentials

    def build_auth_url(
        self, redirect_uri: str, state: str, code_challenge: Optional[str] = None
    ) -> str:
        if self.supports_pkce and not code_challenge:
            raise ValueError(f"{self.provider.display_name} requires a PKCE code challenge")

        params: Dict[str, str] = {
            "client_id": self.credentials.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope_separator.join(self.scopes),
            "response_type": "code",
            **self.extra_params,
            "state": state,
        }
        if self.supports_pkce:
            params["code_challenge"] = code_challenge or ""
            params["code_challenge_method"] = CHALLENGE_METHOD
        return f"{self.authorize_url}?{urlencode(params, quote_via=quote)}"

    def token_request_params(
        self, code: str, redirect_uri: str, code_verifier: Optional[str] = None
    ) -> Dict[str, str]:
        params = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "redirect_uri": redirect_uri,
        }
        if self.supports_pkce and code_verifier:
            params["code_verifier"] = code_verifier
        return params

    @abstractmethod
    async def exchange_token(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> ProviderToken:
        """Trade the authorization code for a provider token."""

    @abstractmethod
    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> Dict[str, Any]:
        """Return the profile mapped onto ``ExternalIdentity`` field names."""


__all__ = ["ProviderAdapter", "bearer", "split_full_name", "text"]
