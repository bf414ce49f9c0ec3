"""Resolve a provider identity to a local account."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from ..core.time import utcnow
from ..errors import AccountConflict
from ..models import DEFAULT_ROLE, ExternalIdentity, Provider, ProviderAccount, Role, User
from .users import UserRepository

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "profile_pic_url", "phone_number")


@dataclass
class LinkOutcome:
    user: User
    is_new: bool
    was_linked: bool


def merge_profile(user: User, identity: ExternalIdentity) -> bool:
    """Fill empty local profile fields from the provider.

    A non-empty local value always wins. Returns whether anything changed.
    """

    changed = False
    for field in PROFILE_FIELDS:
        incoming = getattr(identity, field)
        if incoming and not getattr(user, field):
            setattr(user, field, incoming)
            changed = True
    return changed


def upgrade_primary_provider(user: User, provider: Provider) -> bool:
    """Policy applied when a provider identity is linked to an existing user.

    Accounts created with a password adopt the provider as their primary
    provider and count as verified, since the provider vouched for the
    address. Accounts that already originate from a provider keep it.
    """

    if user.provider != Provider.EMAIL:
        return False
    user.provider = provider
    user.is_verified = True
    return True


class AccountLinker:
    def __init__(
        self, users: UserRepository, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self._users = users
        self._clock = clock

    def resolve(
        self,
        identity: ExternalIdentity,
        provider: Provider,
        requested_role: Optional[Role],
        provider_access_token: str,
    ) -> LinkOutcome:
        """Create, link or refresh the account for ``identity``.

        Raises:
            AccountConflict: the account is deactivated, or the provider
                identity already belongs to another user.
        """

        user = self._users.find_by_email(identity.email)
        account = self._users.find_provider_account(provider, identity.external_id)

        if account is not None and (user is None or account.user_id != user.id):
            logger.warning(
                "Provider identity already linked to another account",
                extra={"provider": provider.value},
            )
            raise AccountConflict(
                f"This {provider.display_name} account is linked to a different user"
            )

        try:
            if user is None:
                return self._create(identity, provider, requested_role, provider_access_token)
            return self._link_or_refresh(
                user, account, identity, provider, provider_access_token
            )
        except IntegrityError as exc:
            # Another request created the same user or link first.
            self._users.rollback()
            raise AccountConflict(
                "This account was modified concurrently. Please try signing in again."
            ) from exc

    def _create(
        self,
        identity: ExternalIdentity,
        provider: Provider,
        requested_role: Optional[Role],
        provider_access_token: str,
    ) -> LinkOutcome:
        now = self._clock()
        user = User(
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            profile_pic_url=identity.profile_pic_url,
            phone_number=identity.phone_number,
            role=requested_role or DEFAULT_ROLE,
            provider=provider,
            is_verified=identity.email_verified,
            last_login_at=now,
        )
        link = ProviderAccount(
            provider=provider,
            provider_id=identity.external_id,
            user_id=user.id,
            access_token=provider_access_token,
        )
        self._users.add(user, link)
        self._users.commit(user)
        logger.info(
            "Created account from provider identity",
            extra={"provider": provider.value, "user_id": str(user.id)},
        )
        return LinkOutcome(user=user, is_new=True, was_linked=False)

    def _link_or_refresh(
        self,
        user: User,
        account: Optional[ProviderAccount],
        identity: ExternalIdentity,
        provider: Provider,
        provider_access_token: str,
    ) -> LinkOutcome:
        if not user.is_active:
            raise AccountConflict("Account has been deactivated")

        now = self._clock()
        was_linked = account is None
        if account is None:
            self._users.add(
                ProviderAccount(
                    provider=provider,
                    provider_id=identity.external_id,
                    user_id=user.id,
                    access_token=provider_access_token,
                )
            )
            upgrade_primary_provider(user, provider)
            logger.info(
                "Linked provider identity to existing account",
                extra={"provider": provider.value, "user_id": str(user.id)},
            )
        else:
            account.access_token = provider_access_token
            account.updated_at = now
            self._users.add(account)

        merge_profile(user, identity)
        user.last_login_at = now
        self._users.add(user)
        self._users.commit(user)
        return LinkOutcome(user=user, is_new=False, was_linked=was_linked)


__all__ = ["AccountLinker", "LinkOutcome", "merge_profile", "upgrade_primary_provider"]
