"""Persistence helpers for users and their provider accounts."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlmodel import Session, func, select

from ..models import Provider, ProviderAccount, User


class UserRepository:
    """Thin wrapper over a SQLModel session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: uuid.UUID) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        normalized_email = (email or "").strip().lower()
        return self.session.exec(
            select(User).where(func.lower(User.email) == normalized_email)
        ).first()

    def find_provider_account(
        self, provider: Provider, provider_id: str
    ) -> Optional[ProviderAccount]:
        return self.session.exec(
            select(ProviderAccount).where(
                ProviderAccount.provider == provider,
                ProviderAccount.provider_id == provider_id,
            )
        ).first()

    def provider_accounts(self, user_id: uuid.UUID) -> list[ProviderAccount]:
        return list(
            self.session.exec(
                select(ProviderAccount).where(ProviderAccount.user_id == user_id)
            ).all()
        )

    def add(self, *rows: object) -> None:
        for row in rows:
            self.session.add(row)

    def commit(self, user: User) -> User:
        self.session.commit()
        self.session.refresh(user)
        return user

    def rollback(self) -> None:
        self.session.rollback()


__all__ = ["UserRepository"]
