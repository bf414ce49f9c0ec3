"""LinkedIn adapter.

The profile and the primary email address live behind two endpoints; both
are read concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

import httpx

from ..models import Provider, ProviderToken
from .base import ProviderAdapter, bearer, text


def _localized(value: Any) -> str:
    if not isinstance(value, Mapping):
        return ""
    localized = value.get("localized") or {}
    preferred = value.get("preferredLocale") or {}
    key = f"{preferred.get('language', 'en')}_{preferred.get('country', 'US')}"
    return text(localized.get(key) or next(iter(localized.values()), ""))


class LinkedInAdapter(ProviderAdapter):
    provider = Provider.LINKEDIN
    authorize_url = "https://www.linkedin.com/oauth/v2/authorization"
    token_url = "https://www.linkedin.com/oauth/v2/accessToken"
    profile_url = "https://api.linkedin.com/v2/me"
    profile_projection = (
        "(id,localizedFirstName,localizedLastName,firstName,lastName,"
        "profilePicture(displayImage~:playableStreams))"
    )
    email_url = "https://api.linkedin.com/v2/emailAddresses"
    scopes = ("r_liteprofile", "r_emailaddress")

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
        )
        response.raise_for_status()
        return ProviderToken.from_payload(response.json())

    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> Dict[str, Any]:
        headers = bearer(access_token)
        profile_response, email_response = await asyncio.gather(
            client.get(
                self.profile_url,
                params={"projection": self.profile_projection},
                headers=headers,
            ),
            client.get(
                self.email_url,
                params={"q": "members", "projection": "(elements*(handle~))"},
                headers=headers,
            ),
        )
        profile_response.raise_for_status()
        email_response.raise_for_status()
        return self.normalize_profile(profile_response.json(), email_response.json())

    @staticmethod
    def normalize_profile(
        profile: Mapping[str, Any], email_payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        elements = email_payload.get("elements") or [{}]
        email = (elements[0].get("handle~") or {}).get("emailAddress")

        picture = ""
        display_image = (profile.get("profilePicture") or {}).get("displayImage~") or {}
        images = display_image.get("elements") or []
        if images:
            identifiers = images[-1].get("identifiers") or [{}]
            picture = text(identifiers[0].get("identifier"))

        return {
            "external_id": text(profile.get("id")),
            "email": text(email),
            "first_name": text(profile.get("localizedFirstName"))
            or _localized(profile.get("firstName")),
            "last_name": text(profile.get("localizedLastName"))
            or _localized(profile.get("lastName")),
            "profile_pic_url": picture,
            "phone_number": "",
            # LinkedIn only exposes the member's confirmed primary address.
            "email_verified": bool(email),
        }


__all__ = ["LinkedInAdapter"]
