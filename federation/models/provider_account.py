"""Database model linking a local user to a provider identity."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from ..core.time import utcnow
from .enums import Provider


class ProviderAccount(SQLModel, table=True):
    """One provider identity owned by one local user."""

    __tablename__ = "provider_account"
    __table_args__ = (
        UniqueConstraint("provider", "provider_id", name="uq_provider_account_identity"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    provider: Provider = Field(index=True)
    provider_id: str = Field(index=True)
    user_id: uuid.UUID = Field(foreign_key="user_account.id", index=True, nullable=False)
    # Opaque provider access token, refreshed on every login.
    access_token: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


__all__ = ["ProviderAccount"]
