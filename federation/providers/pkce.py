"""
PKCE (Proof Key for Code Exchange) and state token generation.

The verifier is kept server side in the state store; only the challenge is
sent to the provider. At exchange time the provider checks
BASE64URL(SHA256(verifier)) against the challenge it saw during
authorization.
"""

from __future__ import annotations

import base64
import secrets
import uuid
from dataclasses import dataclass
from typing import Optional

from authlib.oauth2.rfc7636 import create_s256_code_challenge

VERIFIER_BYTES = 32
CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PkcePair:
    verifier: str
    challenge: str


def encode_verifier(random_bytes: bytes) -> str:
    """URL-safe base64 without padding (43 chars for 32 bytes)."""
    return base64.urlsafe_b64encode(random_bytes).decode("ascii").rstrip("=")


def generate_pkce_pair(random_bytes: Optional[bytes] = None) -> PkcePair:
    """
    Create a verifier/challenge pair.

    Args:
        random_bytes: Entropy to encode. Defaults to ``VERIFIER_BYTES`` bytes
            from :mod:`secrets`; pass explicit bytes for a deterministic pair.

    Returns:
        The pair, with ``challenge = BASE64URL(SHA256(verifier))``.
    """
    if random_bytes is None:
        random_bytes = secrets.token_bytes(VERIFIER_BYTES)
    verifier = encode_verifier(random_bytes)
    return PkcePair(verifier=verifier, challenge=create_s256_code_challenge(verifier))


def generate_state() -> str:
    """Opaque anti-CSRF token round-tripped through the provider."""
    return str(uuid.uuid4())


__all__ = [
    "CHALLENGE_METHOD",
    "PkcePair",
    "VERIFIER_BYTES",
    "encode_verifier",
    "generate_pkce_pair",
    "generate_state",
]
