"""Error codes and exceptions raised by the federation components."""

from __future__ import annotations

from enum import Enum
from http import HTTPStatus
from typing import Iterable, Tuple


class ErrorCode(str, Enum):
    """Stable identifiers returned to callers in failed flow results."""

    INVALID_OR_EXPIRED_STATE = "INVALID_OR_EXPIRED_STATE"
    PROVIDER_MISMATCH = "PROVIDER_MISMATCH"
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"
    IDENTITY_VERIFICATION_FAILED = "IDENTITY_VERIFICATION_FAILED"
    INCOMPLETE_PROVIDER_PROFILE = "INCOMPLETE_PROVIDER_PROFILE"
    ACCOUNT_CONFLICT = "ACCOUNT_CONFLICT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
    INVALID_ROLE = "INVALID_ROLE"
    INVALID_REDIRECT_URI = "INVALID_REDIRECT_URI"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status(self) -> HTTPStatus:
        return _STATUS_BY_CODE[self]

    @property
    def retriable(self) -> bool:
        return self in _RETRIABLE_CODES


_STATUS_BY_CODE = {
    ErrorCode.INVALID_OR_EXPIRED_STATE: HTTPStatus.BAD_REQUEST,
    ErrorCode.PROVIDER_MISMATCH: HTTPStatus.BAD_REQUEST,
    ErrorCode.TOKEN_EXCHANGE_FAILED: HTTPStatus.UNAUTHORIZED,
    ErrorCode.IDENTITY_VERIFICATION_FAILED: HTTPStatus.UNAUTHORIZED,
    ErrorCode.INCOMPLETE_PROVIDER_PROFILE: HTTPStatus.BAD_REQUEST,
    ErrorCode.ACCOUNT_CONFLICT: HTTPStatus.FORBIDDEN,
    ErrorCode.CONFIGURATION_ERROR: HTTPStatus.INTERNAL_SERVER_ERROR,
    ErrorCode.STORE_UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorCode.UNSUPPORTED_PROVIDER: HTTPStatus.BAD_REQUEST,
    ErrorCode.INVALID_ROLE: HTTPStatus.FORBIDDEN,
    ErrorCode.INVALID_REDIRECT_URI: HTTPStatus.BAD_REQUEST,
    ErrorCode.INTERNAL_ERROR: HTTPStatus.INTERNAL_SERVER_ERROR,
}

_RETRIABLE_CODES = frozenset(
    {ErrorCode.TOKEN_EXCHANGE_FAILED, ErrorCode.STORE_UNAVAILABLE}
)


class FederationError(Exception):
    """Base class for failures raised below the orchestrator boundary."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(FederationError):
    """Required configuration (client credentials, signing secrets) is missing."""

    code = ErrorCode.CONFIGURATION_ERROR


class StoreUnavailable(FederationError):
    """The shared state store could not be reached."""

    code = ErrorCode.STORE_UNAVAILABLE


class TokenExchangeFailed(FederationError):
    """The provider rejected the authorization code or could not be reached."""

    code = ErrorCode.TOKEN_EXCHANGE_FAILED


class IdentityVerificationFailed(FederationError):
    """The provider refused the access token when fetching the profile."""

    code = ErrorCode.IDENTITY_VERIFICATION_FAILED


class IncompleteProviderProfile(FederationError):
    """The profile lacks one of the fields needed to resolve an account."""

    code = ErrorCode.INCOMPLETE_PROVIDER_PROFILE

    def __init__(self, message: str, missing: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.missing: Tuple[str, ...] = tuple(missing)


class AccountConflict(FederationError):
    """The resolved local account cannot be signed into."""

    code = ErrorCode.ACCOUNT_CONFLICT


__all__ = [
    "AccountConflict",
    "ConfigurationError",
    "ErrorCode",
    "FederationError",
    "IdentityVerificationFailed",
    "IncompleteProviderProfile",
    "StoreUnavailable",
    "TokenExchangeFailed",
]
