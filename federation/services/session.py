"""Local session tokens for a resolved user."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from jose import JWTError, jwt
from pydantic import BaseModel

from ..core.config import (
    JWT_ACCESS_TTL_SECONDS,
    JWT_ALGORITHM,
    JWT_REFRESH_TTL_SECONDS,
    jwt_secrets,
)
from ..core.time import utcnow
from ..errors import ConfigurationError
from ..models import User


class SessionTokens(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: datetime


def _value(member: Any) -> Any:
    return getattr(member, "value", member)


class SessionIssuer:
    """Sign access and refresh tokens with separate secrets."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int = JWT_ACCESS_TTL_SECONDS,
        refresh_ttl_seconds: int = JWT_REFRESH_TTL_SECONDS,
        algorithm: str = JWT_ALGORITHM,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ConfigurationError("JWT signing secrets are not configured")
        if access_secret == refresh_secret:
            raise ConfigurationError(
                "Access and refresh tokens must be signed with distinct secrets"
            )
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._access_ttl = timedelta(seconds=access_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls) -> "SessionIssuer":
        access_secret, refresh_secret = jwt_secrets()
        return cls(access_secret, refresh_secret)

    def issue_tokens(self, user: User) -> SessionTokens:
        now = self._clock()
        issued_at = int(now.timestamp())
        access_token = jwt.encode(
            {
                "userId": str(user.id),
                "email": user.email,
                "role": _value(user.role),
                "permissions": list(user.permissions or []),
                "iat": issued_at,
                "exp": int((now + self._access_ttl).timestamp()),
            },
            self._access_secret,
            algorithm=self._algorithm,
        )
        refresh_token = jwt.encode(
            {
                "userId": str(user.id),
                "type": "refresh",
                "iat": issued_at,
                "exp": int((now + self._refresh_ttl).timestamp()),
            },
            self._refresh_secret,
            algorithm=self._algorithm,
        )
        claims = jwt.get_unverified_claims(access_token)
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        return jwt.decode(token, self._access_secret, algorithms=[self._algorithm])

    def decode_refresh_token(self, token: str) -> Dict[str, Any]:
        payload = jwt.decode(token, self._refresh_secret, algorithms=[self._algorithm])
        if payload.get("type") != "refresh":
            raise JWTError("Token is not a refresh token")
        return payload


__all__ = ["SessionIssuer", "SessionTokens"]
