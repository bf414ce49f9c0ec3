"""Enumerations shared by the models and the flow."""

from __future__ import annotations

from enum import Enum


class Provider(str, Enum):
    """Account origin. ``EMAIL`` is the password-based default."""

    GOOGLE = "GOOGLE"
    FACEBOOK = "FACEBOOK"
    LINKEDIN = "LINKEDIN"
    EMAIL = "EMAIL"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def slug(self) -> str:
        return self.value.lower()


_DISPLAY_NAMES = {
    Provider.GOOGLE: "Google",
    Provider.FACEBOOK: "Facebook",
    Provider.LINKEDIN: "LinkedIn",
    Provider.EMAIL: "Email",
}


class Role(str, Enum):
    RENTER = "RENTER"
    PROPERTY_OWNER = "PROPERTY_OWNER"
    ADMIN = "ADMIN"


DEFAULT_ROLE = Role.RENTER


__all__ = ["DEFAULT_ROLE", "Provider", "Role"]
