"""OAuth authorization-code flow across the redirect and the callback.

``begin_flow`` stores the anti-CSRF state record (and the PKCE verifier) and
returns the provider URL. ``complete_flow`` runs the callback:

    RECEIVED -> STATE_VALIDATED -> TOKEN_EXCHANGED -> IDENTITY_VERIFIED
             -> ACCOUNT_RESOLVED -> SESSION_ISSUED -> COMMITTED

with a ``FAILED`` exit at every step. The state record is deleted only once
the code exchange has succeeded: a failed exchange may be retried with the
same state, a successful one can never be replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.config import (
    OAUTH_ALLOWED_REDIRECT_PATTERNS,
    OAUTH_MAX_EXCHANGE_ATTEMPTS,
    OAUTH_STATE_TTL_SECONDS,
)
from ..core.logging import flow_context
from ..core.time import utcnow
from ..errors import ErrorCode, FederationError, StoreUnavailable, TokenExchangeFailed
from ..models import OAuthStateRecord, Provider, ProviderToken, Role
from ..providers import ProviderAdapter, parse_provider
from ..providers.pkce import generate_pkce_pair, generate_state
from .identity import IdentityVerifier
from .linker import AccountLinker, LinkOutcome
from .redirects import is_allowed_redirect_uri, normalize_redirect_uri
from .results import BeginFlowData, FlowResult, SessionResult
from .session import SessionIssuer
from .state_store import StateStore, attempts_key, flow_keys, state_key, verifier_key
from .token_exchange import TokenExchangeClient

logger = logging.getLogger(__name__)

EXPIRED_STATE_MESSAGE = "Invalid or expired state parameter. Please try signing in again."
REPLAYED_STATE_MESSAGE = "This sign-in attempt has already been completed."
NEW_ACCOUNT_MESSAGE = "Welcome! Your account has been created successfully"
LOGIN_MESSAGE = "Login successful"


class FlowStage(str, Enum):
    RECEIVED = "RECEIVED"
    STATE_VALIDATED = "STATE_VALIDATED"
    TOKEN_EXCHANGED = "TOKEN_EXCHANGED"
    IDENTITY_VERIFIED = "IDENTITY_VERIFIED"
    ACCOUNT_RESOLVED = "ACCOUNT_RESOLVED"
    SESSION_ISSUED = "SESSION_ISSUED"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


@dataclass
class _FlowTrace:
    provider: Provider
    stage: FlowStage = FlowStage.RECEIVED

    def advance(self, stage: FlowStage) -> None:
        logger.debug(
            "OAuth flow %s -> %s",
            self.stage.value,
            stage.value,
            extra={"provider": self.provider.value},
        )
        self.stage = stage


def parse_requested_role(value: Union[Role, str, None]) -> Optional[Role]:
    """Validate the role a caller asks for; administrators are never self-assigned."""

    if value is None or value == "":
        return None
    try:
        role = value if isinstance(value, Role) else Role(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"Unknown role: {value}") from None
    if role is Role.ADMIN:
        raise ValueError("You do not have permission to perform this action!")
    return role


def outcome_message(provider: Provider, outcome: LinkOutcome) -> str:
    if outcome.is_new:
        return NEW_ACCOUNT_MESSAGE
    if outcome.was_linked:
        return f"Successfully linked your {provider.display_name} account"
    return LOGIN_MESSAGE


class OAuthOrchestrator:
    def __init__(
        self,
        state_store: StateStore,
        token_exchange: TokenExchangeClient,
        identity_verifier: IdentityVerifier,
        account_linker: AccountLinker,
        session_issuer: SessionIssuer,
        adapters: Mapping[Provider, ProviderAdapter],
        *,
        state_ttl_seconds: int = OAUTH_STATE_TTL_SECONDS,
        max_exchange_attempts: int = OAUTH_MAX_EXCHANGE_ATTEMPTS,
        allowed_redirect_patterns: Iterable[str] = OAUTH_ALLOWED_REDIRECT_PATTERNS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = state_store
        self._token_exchange = token_exchange
        self._verifier = identity_verifier
        self._linker = account_linker
        self._issuer = session_issuer
        self._adapters = adapters
        self._state_ttl = state_ttl_seconds
        self._max_attempts = max(1, max_exchange_attempts)
        self._allowed_redirects = tuple(allowed_redirect_patterns)
        self._clock = clock

    # ------------------------------------------------------------------
    # Authorization redirect
    # ------------------------------------------------------------------
    async def begin_flow(
        self,
        provider: Union[Provider, str],
        redirect_uri: str,
        role: Union[Role, str, None] = None,
    ) -> FlowResult[BeginFlowData]:
        adapter = self._adapter_for(provider)
        if adapter is None:
            return FlowResult.fail(
                ErrorCode.UNSUPPORTED_PROVIDER, f"Unsupported OAuth provider: {provider}"
            )
        provider = adapter.provider

        try:
            requested_role = parse_requested_role(role)
        except ValueError as exc:
            return FlowResult.fail(ErrorCode.INVALID_ROLE, str(exc))

        if not is_allowed_redirect_uri(redirect_uri, self._allowed_redirects):
            logger.warning(
                "Rejected redirect URI",
                extra={"provider": provider.value, "redirect_uri": redirect_uri},
            )
            return FlowResult.fail(
                ErrorCode.INVALID_REDIRECT_URI,
                "Invalid redirect URI. Please use a valid callback URL.",
            )

        state = generate_state()
        pkce = generate_pkce_pair() if adapter.supports_pkce else None
        record = OAuthStateRecord(
            state=state, provider=provider, role=requested_role, issued_at=self._clock()
        )

        with flow_context(state):
            try:
                auth_url = adapter.build_auth_url(
                    normalize_redirect_uri(provider, redirect_uri),
                    state,
                    pkce.challenge if pkce else None,
                )
                await self._store.put(
                    state_key(state), record.model_dump_json(), self._state_ttl
                )
                if pkce is not None:
                    await self._store.put(
                        verifier_key(state), pkce.verifier, self._state_ttl
                    )
            except FederationError as exc:
                await self._discard_state(state)
                return self._failed(_FlowTrace(provider), exc)

            logger.info(
                "OAuth flow started",
                extra={"provider": provider.value, "pkce": pkce is not None},
            )
        return FlowResult.ok(
            BeginFlowData(auth_url=auth_url, state=state), "Authorization URL generated"
        )

    # ------------------------------------------------------------------
    # Provider callback
    # ------------------------------------------------------------------
    async def complete_flow(
        self,
        provider: Union[Provider, str],
        code: str,
        redirect_uri: str,
        state: str,
    ) -> FlowResult[SessionResult]:
        adapter = self._adapter_for(provider)
        if adapter is None:
            return FlowResult.fail(
                ErrorCode.UNSUPPORTED_PROVIDER, f"Unsupported OAuth provider: {provider}"
            )
        if not code or not state:
            return FlowResult.fail(ErrorCode.INVALID_OR_EXPIRED_STATE, "Missing code or state")

        with flow_context(state):
            return await self._complete(adapter, code, redirect_uri, state)

    async def _complete(
        self, adapter: ProviderAdapter, code: str, redirect_uri: str, state: str
    ) -> FlowResult[SessionResult]:
        trace = _FlowTrace(adapter.provider)

        try:
            validation = await self._validate_state(adapter.provider, state)
        except FederationError as exc:
            return self._failed(trace, exc)
        if not validation.success or validation.data is None:
            return self._rejected(trace, validation.code, validation.message)
        record = validation.data
        trace.advance(FlowStage.STATE_VALIDATED)

        try:
            try:
                token = await self._exchange_code(adapter, record, code, redirect_uri)
            except TokenExchangeFailed as exc:
                await self._register_failed_exchange(record)
                return self._failed(trace, exc)
            trace.advance(FlowStage.TOKEN_EXCHANGED)

            if not await self._consume_state(state):
                return self._rejected(
                    trace, ErrorCode.INVALID_OR_EXPIRED_STATE, REPLAYED_STATE_MESSAGE
                )

            session = await self._sign_in(trace, token.access_token, record.role)
        except FederationError as exc:
            await self._discard_state(state)
            return self._failed(trace, exc)
        except Exception:
            logger.exception(
                "OAuth flow failed",
                extra={"provider": trace.provider.value, "stage": trace.stage.value},
            )
            trace.advance(FlowStage.FAILED)
            await self._discard_state(state)
            return FlowResult.fail(
                ErrorCode.INTERNAL_ERROR,
                f"Failed to complete {trace.provider.display_name} OAuth flow",
            )

        trace.advance(FlowStage.COMMITTED)
        logger.info(
            "OAuth flow committed",
            extra={
                "provider": trace.provider.value,
                "user_id": session.user_id,
                "is_new_account": session.is_new_account,
                "was_linked": session.was_linked,
            },
        )
        return FlowResult.ok(session, session.message)

    # ------------------------------------------------------------------
    # Native sign-in with a provider token obtained by the client
    # ------------------------------------------------------------------
    async def login_with_provider_token(
        self,
        provider: Union[Provider, str],
        access_token: str,
        role: Union[Role, str, None] = None,
    ) -> FlowResult[SessionResult]:
        """Sign in with an access token the client got from a provider SDK.

        Skips the state and code exchange steps; identity verification,
        account resolution and session issuance are the same as for
        :meth:`complete_flow`.
        """

        adapter = self._adapter_for(provider)
        if adapter is None:
            return FlowResult.fail(
                ErrorCode.UNSUPPORTED_PROVIDER, f"Unsupported OAuth provider: {provider}"
            )
        try:
            requested_role = parse_requested_role(role)
        except ValueError as exc:
            return FlowResult.fail(ErrorCode.INVALID_ROLE, str(exc))
        if not access_token:
            return FlowResult.fail(
                ErrorCode.IDENTITY_VERIFICATION_FAILED, "Missing provider access token"
            )

        trace = _FlowTrace(adapter.provider, FlowStage.TOKEN_EXCHANGED)
        try:
            session = await self._sign_in(trace, access_token, requested_role)
        except FederationError as exc:
            return self._failed(trace, exc)
        except Exception:
            logger.exception(
                "Provider token sign-in failed",
                extra={"provider": trace.provider.value, "stage": trace.stage.value},
            )
            trace.advance(FlowStage.FAILED)
            return FlowResult.fail(
                ErrorCode.INTERNAL_ERROR,
                f"Failed to sign in with {trace.provider.display_name}",
            )
        return FlowResult.ok(session, session.message)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _adapter_for(self, provider: Union[Provider, str]) -> Optional[ProviderAdapter]:
        parsed = parse_provider(provider)
        if parsed is None:
            return None
        return self._adapters.get(parsed)

    async def _validate_state(
        self, provider: Provider, state: str
    ) -> FlowResult[OAuthStateRecord]:
        raw = await self._store.get(state_key(state))
        if raw is None:
            return FlowResult.fail(ErrorCode.INVALID_OR_EXPIRED_STATE, EXPIRED_STATE_MESSAGE)

        try:
            record = OAuthStateRecord.model_validate_json(raw)
        except ValidationError:
            await self._discard_state(state)
            return FlowResult.fail(
                ErrorCode.INVALID_OR_EXPIRED_STATE, "Invalid state data format"
            )

        if record.state != state:
            await self._discard_state(state)
            return FlowResult.fail(ErrorCode.INVALID_OR_EXPIRED_STATE, "Invalid state parameter")

        if record.provider != provider:
            logger.warning(
                "OAuth provider mismatch",
                extra={"expected": record.provider.value, "received": provider.value},
            )
            await self._discard_state(state)
            return FlowResult.fail(
                ErrorCode.PROVIDER_MISMATCH,
                "Invalid OAuth provider. Please try again with the correct provider.",
            )

        # Checked here as well: the store may not have evicted the record yet.
        if record.is_expired(self._clock(), self._state_ttl):
            await self._discard_state(state)
            return FlowResult.fail(
                ErrorCode.INVALID_OR_EXPIRED_STATE,
                "Your session has expired. Please try signing in again.",
            )

        return FlowResult.ok(record, "State validated")

    async def _exchange_code(
        self,
        adapter: ProviderAdapter,
        record: OAuthStateRecord,
        code: str,
        redirect_uri: str,
    ) -> ProviderToken:
        code_verifier: Optional[str] = None
        if adapter.supports_pkce:
            code_verifier = await self._store.get(verifier_key(record.state))
            if code_verifier is not None:
                await self._store.delete(verifier_key(record.state))

        return await self._token_exchange.exchange(
            adapter.provider,
            code,
            normalize_redirect_uri(adapter.provider, redirect_uri),
            code_verifier,
        )

    async def _register_failed_exchange(self, record: OAuthStateRecord) -> None:
        """Count a failed exchange; give up on the state once retries run out."""

        key = attempts_key(record.state)
        try:
            raw = await self._store.get(key)
            attempts = (int(raw) if raw and raw.isdigit() else 0) + 1
            if attempts >= self._max_attempts:
                logger.warning(
                    "Code exchange retries exhausted",
                    extra={"provider": record.provider.value, "attempts": attempts},
                )
                await self._discard_state(record.state)
                return
            await self._store.put(
                key, str(attempts), record.remaining_ttl(self._clock(), self._state_ttl)
            )
        except StoreUnavailable:
            logger.warning(
                "Could not record failed code exchange",
                extra={"provider": record.provider.value},
            )

    async def _consume_state(self, state: str) -> bool:
        """Delete the flow entries; ``False`` when another call consumed them first."""

        record_key, verifier, attempts = flow_keys(state)
        consumed = await self._store.delete(record_key)
        await self._store.delete(verifier)
        await self._store.delete(attempts)
        return consumed

    async def _discard_state(self, state: str) -> None:
        """Best-effort removal of every entry for ``state``."""

        for key in flow_keys(state):
            try:
                await self._store.delete(key)
            except Exception as exc:
                logger.warning(
                    "Failed to clean up OAuth state",
                    extra={"key": key.split(":", 1)[0], "error": type(exc).__name__},
                )

    async def _sign_in(
        self, trace: _FlowTrace, access_token: str, role: Optional[Role]
    ) -> SessionResult:
        provider = trace.provider
        identity = await self._verifier.verify(provider, access_token)
        trace.advance(FlowStage.IDENTITY_VERIFIED)

        outcome = self._linker.resolve(identity, provider, role, access_token)
        trace.advance(FlowStage.ACCOUNT_RESOLVED)

        tokens = self._issuer.issue_tokens(outcome.user)
        trace.advance(FlowStage.SESSION_ISSUED)

        return SessionResult(
            identity=identity,
            tokens=tokens,
            user_id=str(outcome.user.id),
            is_new_account=outcome.is_new,
            was_linked=outcome.was_linked,
            message=outcome_message(provider, outcome),
        )

    # ------------------------------------------------------------------
    # Failure reporting
    # ------------------------------------------------------------------
    def _rejected(
        self, trace: _FlowTrace, code: Optional[ErrorCode], message: str
    ) -> FlowResult:
        code = code or ErrorCode.INTERNAL_ERROR
        logger.warning(
            "OAuth flow rejected",
            extra={
                "provider": trace.provider.value,
                "stage": trace.stage.value,
                "code": code.value,
            },
        )
        trace.advance(FlowStage.FAILED)
        return FlowResult.fail(code, message)

    def _failed(self, trace: _FlowTrace, exc: FederationError) -> FlowResult:
        message = exc.message
        if exc.code is ErrorCode.CONFIGURATION_ERROR:
            logger.error(
                "OAuth provider is misconfigured",
                extra={"provider": trace.provider.value, "detail": exc.message},
            )
            message = f"{trace.provider.display_name} sign-in is not configured"
        return self._rejected(trace, exc.code, message)


__all__ = [
    "FlowStage",
    "OAuthOrchestrator",
    "outcome_message",
    "parse_requested_role",
]
