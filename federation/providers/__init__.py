"""Supported identity providers."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Type

from ..core.config import ProviderCredentials
from ..models import Provider
from .base import ProviderAdapter
from .facebook import FacebookAdapter
from .google import GoogleAdapter
from .linkedin import LinkedInAdapter

ADAPTER_TYPES: Dict[Provider, Type[ProviderAdapter]] = {
    Provider.GOOGLE: GoogleAdapter,
    Provider.FACEBOOK: FacebookAdapter,
    Provider.LINKEDIN: LinkedInAdapter,
}


def build_adapters(
    credentials: Optional[Mapping[Provider, ProviderCredentials]] = None,
) -> Dict[Provider, ProviderAdapter]:
    """Instantiate one adapter per supported provider.

    Providers missing from ``credentials`` read theirs from the environment on
    first use.
    """

    credentials = credentials or {}
    return {
        provider: adapter_type(credentials.get(provider))
        for provider, adapter_type in ADAPTER_TYPES.items()
    }


def parse_provider(value: object) -> Optional[Provider]:
    """Map user input (``"google"``, ``Provider.GOOGLE``) to a federated provider."""

    if isinstance(value, Provider):
        provider = value
    else:
        try:
            provider = Provider(str(value).strip().upper())
        except ValueError:
            return None
    return provider if provider in ADAPTER_TYPES else None


__all__ = [
    "ADAPTER_TYPES",
    "FacebookAdapter",
    "GoogleAdapter",
    "LinkedInAdapter",
    "ProviderAdapter",
    "build_adapters",
    "parse_provider",
]
