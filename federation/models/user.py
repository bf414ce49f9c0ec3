"""Database model for local accounts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..core.time import utcnow
from .enums import DEFAULT_ROLE, Provider, Role


class User(SQLModel, table=True):
    """Local account, optionally linked to one or more provider identities."""

    __tablename__ = "user_account"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    email: str = Field(index=True, unique=True)
    first_name: str = ""
    last_name: str = ""
    profile_pic_url: str = ""
    phone_number: str = ""
    role: Role = Field(default=DEFAULT_ROLE)
    permissions: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    # Primary (originating) provider.
    provider: Provider = Field(default=Provider.EMAIL)
    is_verified: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    last_login_at: Optional[datetime] = None


__all__ = ["User"]
