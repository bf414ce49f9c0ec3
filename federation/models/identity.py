"""Transient models exchanged between the flow components.

None of these are persisted as tables: ``OAuthStateRecord`` lives in the
state store as JSON, the others only exist for the duration of a flow.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from pydantic import BaseModel

from ..core.time import as_utc
from .enums import Provider, Role


class OAuthStateRecord(BaseModel):
    """One in-flight authorization attempt."""

    state: str
    provider: Provider
    role: Optional[Role] = None
    issued_at: datetime

    def is_expired(self, now: datetime, ttl_seconds: int) -> bool:
        return now - as_utc(self.issued_at) > timedelta(seconds=ttl_seconds)

    def remaining_ttl(self, now: datetime, ttl_seconds: int) -> int:
        elapsed = (now - as_utc(self.issued_at)).total_seconds()
        return max(1, int(ttl_seconds - elapsed))


class ProviderToken(BaseModel):
    """Token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ProviderToken":
        access_token = payload.get("access_token")
        if not access_token:
            raise ValueError("Token response did not include an access_token")
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_in=payload.get("expires_in"),
            token_type=payload.get("token_type") or "Bearer",
        )


class ExternalIdentity(BaseModel):
    """Provider profile normalized to the fields account resolution needs."""

    external_id: str
    email: str
    first_name: str
    last_name: str = ""
    profile_pic_url: str = ""
    phone_number: str = ""
    email_verified: bool = False


__all__ = ["ExternalIdentity", "OAuthStateRecord", "ProviderToken"]
