"""Google (OpenID Connect) adapter."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import httpx

from ..models import Provider, ProviderToken
from .base import ProviderAdapter, bearer, split_full_name, text


class GoogleAdapter(ProviderAdapter):
    provider = Provider.GOOGLE
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    scopes = ("openid", "email", "profile")
    extra_params = {"access_type": "offline", "prompt": "consent"}

    async def exchange_token(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> ProviderToken:
        response = await client.post(
            self.token_url,
            data=self.token_request_params(code, redirect_uri, code_verifier),
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return ProviderToken.from_payload(response.json())

    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> Dict[str, Any]:
        response = await client.get(self.userinfo_url, headers=bearer(access_token))
        response.raise_for_status()
        return self.normalize_profile(response.json())

    @staticmethod
    def normalize_profile(payload: Mapping[str, Any]) -> Dict[str, Any]:
        first, last = split_full_name(payload.get("name"))
        # v2/userinfo reports ``verified_email``; the OIDC endpoint ``email_verified``.
        verified = payload.get("verified_email", payload.get("email_verified", False))
        return {
            "external_id": text(payload.get("id") or payload.get("sub")),
            "email": text(payload.get("email")),
            "first_name": text(payload.get("given_name")) or first,
            "last_name": text(payload.get("family_name")) or last,
            "profile_pic_url": text(payload.get("picture")),
            "phone_number": "",
            "email_verified": bool(verified),
        }


__all__ = ["GoogleAdapter"]
