"""Model exports."""

from .enums import DEFAULT_ROLE, Provider, Role
from .identity import ExternalIdentity, OAuthStateRecord, ProviderToken
from .provider_account import ProviderAccount
from .user import User

__all__ = [
    "DEFAULT_ROLE",
    "ExternalIdentity",
    "OAuthStateRecord",
    "Provider",
    "ProviderAccount",
    "ProviderToken",
    "Role",
    "User",
]
