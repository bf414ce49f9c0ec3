"""Facebook Login adapter.

Facebook does not support PKCE; the anti-CSRF ``state`` still applies. The
token endpoint takes its parameters in the query string of a GET request.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import httpx

from ..models import Provider, ProviderToken
from .base import ProviderAdapter, split_full_name, text

GRAPH_VERSION = "v18.0"


class FacebookAdapter(ProviderAdapter):
    provider = Provider.FACEBOOK
    authorize_url = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
    token_url = f"https://graph.facebook.com/{GRAPH_VERSION}/oauth/access_token"
    profile_url = "https://graph.facebook.com/me"
    profile_fields = "id,name,email,first_name,last_name,picture"
    scopes = ("email", "public_profile")
    scope_separator = ","
    supports_pkce = False

    async def exchange_token(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> ProviderToken:
        response = await client.get(
            self.token_url, params=self.token_request_params(code, redirect_uri)
        )
        response.raise_for_status()
        return ProviderToken.from_payload(response.json())

    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> Dict[str, Any]:
        response = await client.get(
            self.profile_url,
            params={"access_token": access_token, "fields": self.profile_fields},
        )
        response.raise_for_status()
        return self.normalize_profile(response.json())

    @staticmethod
    def normalize_profile(payload: Mapping[str, Any]) -> Dict[str, Any]:
        first, last = split_full_name(payload.get("name"))
        picture = ((payload.get("picture") or {}).get("data") or {}).get("url")
        return {
            "external_id": text(payload.get("id")),
            "email": text(payload.get("email")),
            "first_name": text(payload.get("first_name")) or first,
            "last_name": text(payload.get("last_name")) or last,
            "profile_pic_url": text(picture),
            "phone_number": "",
            # Graph only returns confirmed addresses.
            "email_verified": bool(payload.get("email")),
        }


__all__ = ["FacebookAdapter"]
