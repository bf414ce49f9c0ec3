import asyncio
import uuid
from http import HTTPStatus
from urllib.parse import parse_qs, urlsplit

from authlib.oauth2.rfc7636 import create_s256_code_challenge

from federation.errors import ErrorCode, StoreUnavailable
from federation.models import Provider, Role, User
from federation.providers import build_adapters
from federation.services import (
    AccountLinker,
    IdentityVerifier,
    MemoryStateStore,
    OAuthOrchestrator,
    TokenExchangeClient,
)
from federation.services.state_store import attempts_key, state_key, verifier_key

GOOGLE_CALLBACK = "http://localhost:4000/api/oauth/google/callback"
FACEBOOK_CALLBACK = "http://localhost:4000/api/oauth/facebook/callback"


def _query(url):
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


def _build(state_store, http_client, adapters, linker, issuer, clock):
    return OAuthOrchestrator(
        state_store=state_store,
        token_exchange=TokenExchangeClient(adapters, http_client),
        identity_verifier=IdentityVerifier(adapters, http_client),
        account_linker=linker,
        session_issuer=issuer,
        adapters=adapters,
        clock=clock,
    )


def _sign_in(orchestrator, provider="google", callback=GOOGLE_CALLBACK, role=None):
    async def run():
        begin = await orchestrator.begin_flow(provider, callback, role)
        assert begin.success, begin.message
        result = await orchestrator.complete_flow(
            provider, "auth-code", callback, begin.data.state
        )
        return begin, result

    return asyncio.run(run())


class _UnavailableStore(MemoryStateStore):
    async def put(self, key, value, ttl_seconds):
        raise StoreUnavailable("Sign-in is temporarily unavailable. Please try again.")


class _BrokenLinker:
    def resolve(self, identity, provider, requested_role, provider_access_token):
        raise RuntimeError("database is gone")


def test_google_sign_in_creates_account(orchestrator, provider_stub, issuer, state_store):
    begin, result = _sign_in(orchestrator)

    query = _query(begin.data.auth_url)
    assert uuid.UUID(query["state"]).version == 4
    assert query["state"] == begin.data.state
    assert len(query["code_challenge"]) == 43
    assert query["code_challenge_method"] == "S256"

    form = provider_stub.last_token_form()
    assert create_s256_code_challenge(form["code_verifier"]) == query["code_challenge"]
    assert form["redirect_uri"] == query["redirect_uri"] == GOOGLE_CALLBACK

    assert result.success
    assert result.status == HTTPStatus.OK
    assert result.data.is_new_account
    assert result.message == "Welcome! Your account has been created successfully"
    claims = issuer.decode_access_token(result.data.tokens.access_token)
    assert claims["email"] == "ada@example.com"
    assert claims["userId"] == result.data.user_id
    assert claims["role"] == "RENTER"
    assert len(state_store) == 0


def test_state_is_single_use(orchestrator, provider_stub):
    begin, first = _sign_in(orchestrator)

    replay = asyncio.run(
        orchestrator.complete_flow("google", "auth-code", GOOGLE_CALLBACK, begin.data.state)
    )

    assert first.success
    assert not replay.success
    assert replay.code is ErrorCode.INVALID_OR_EXPIRED_STATE
    assert len(provider_stub.token_requests()) == 1


def test_state_expires_after_ttl(orchestrator, provider_stub, clock):
    async def run():
        begin = await orchestrator.begin_flow("google", GOOGLE_CALLBACK)
        clock.advance(601)
        return await orchestrator.complete_flow(
            "google", "auth-code", GOOGLE_CALLBACK, begin.data.state
        )

    result = asyncio.run(run())

    assert result.code is ErrorCode.INVALID_OR_EXPIRED_STATE
    assert provider_stub.token_requests() == []


def test_stale_record_is_rejected_even_if_store_kept_it(
    http_client, adapters, users, issuer, clock, provider_stub
):
    store = MemoryStateStore(clock=lambda: 0.0)
    orchestrator = _build(
        store, http_client, adapters, AccountLinker(users, clock=clock), issuer, clock
    )

    async def run():
        begin = await orchestrator.begin_flow("google", GOOGLE_CALLBACK)
        clock.advance(601)
        return await orchestrator.complete_flow(
            "google", "auth-code", GOOGLE_CALLBACK, begin.data.state
        )

    result = asyncio.run(run())

    assert result.code is ErrorCode.INVALID_OR_EXPIRED_STATE
    assert result.message == "Your session has expired. Please try signing in again."
    assert len(store) == 0
    assert provider_stub.token_requests() == []


def test_provider_mismatch_discards_state(orchestrator, state_store, provider_stub):
    async def run():
        begin = await orchestrator.begin_flow("google", GOOGLE_CALLBACK)
        mismatch = await orchestrator.complete_flow(
            "facebook", "auth-code", FACEBOOK_CALLBACK, begin.data.state
        )
        retry = await orchestrator.complete_flow(
            "google", "auth-code", GOOGLE_CALLBACK, begin.data.state
        )
        return mismatch, retry

    mismatch, retry = asyncio.run(run())

    assert mismatch.code is ErrorCode.PROVIDER_MISMATCH
    assert mismatch.status == HTTPStatus.BAD_REQUEST
    assert retry.code is ErrorCode.INVALID_OR_EXPIRED_STATE
    assert len(state_store) == 0
    assert provider_stub.token_requests() == []


def test_failed_exchange_keeps_state_for_retry(orchestrator, provider_stub, state_store):
    provider_stub.token_failures = 1

    async def run():
        begin = await orchestrator.begin_flow("google", GOOGLE_CALLBACK)
        state = begin.data.state
        failed = await orchestrator.complete_flow("google", "bad-code", GOOGLE_CALLBACK, state)
        kept = await state_store.get(state_key(state))
        attempts = await state_store.get(attempts_key(state))
        retried = await orchestrator.complete_flow("google", "auth-code", GOOGLE_CALLBACK, state)
        return failed, kept, attempts, retried

    failed, kept, attempts, retried = asyncio.run(run())

    assert failed.code is ErrorCode.TOKEN_EXCHANGE_FAILED
    assert failed.message == "Failed to exchange Google authorization code"
    assert failed.status == HTTPStatus.UNAUTHORIZED
    assert kept is not None
    assert attempts == "1"
    assert retried.success
    # The verifier is single use, so only the first exchange carried it.
    first_request, retry_request = provider_stub.token_requests()
    assert b"code_verifier=" in first_request.content
    assert "code_verifier" not in provider_stub.last_token_form()
    assert retry_request.method == "POST"
    assert len(state_store) == 0


def test_exchange_retries_are_bounded(orchestrator, provider_stub, state_store):
    provider_stub.token_failures = 10

    async def run():
        begin = await orchestrator.begin_flow("google", GOOGLE_CALLBACK)
        return [
            await orchestrator.complete_flow(
                "google", "bad-code", GOOGLE_CALLBACK, begin.data.state
            )
            for _ in range(4)
        ]

    results = asyncio.run(run())

    assert [r.code for r in results[:3]] == [ErrorCode.TOKEN_EXCHANGE_FAILED] * 3
    assert results[3].code is ErrorCode.INVALID_OR_EXPIRED_STATE
    assert len(provider_stub.token_requests()) == 3
    assert len(state_store) == 0


def test_facebook_flow_runs_without_pkce(orchestrator, provider_stub, state_store):
    async def run():
        begin = await orchestrator.begin_flow("facebook", FACEBOOK_CALLBACK)
        verifier = await state_store.get(verifier_key(begin.data.state))
        result = await orchestrator.complete_flow(
            "facebook", "auth-code", FACEBOOK_CALLBACK, begin.data.state
        )
        return begin, verifier, result

    begin, verifier, result = asyncio.run(run())

    query = _query(begin.data.auth_url)
    assert "code_challenge" not in query
    assert verifier is None
    assert "code_verifier" not in provider_stub.last_token_form()
    assert result.success
    assert result.data.identity.external_id == "fb-456"


def test_requested_role_is_carried_through_state(orchestrator, users):
    _, result = _sign_in(orchestrator, role="property_owner")

    assert users.get(uuid.UUID(result.data.user_id)).role == Role.PROPERTY_OWNER


def test_admin_role_cannot_be_requested(orchestrator, state_store):
    admin = asyncio.run(orchestrator.begin_flow("google", GOOGLE_CALLBACK, "ADMIN"))
    unknown = asyncio.run(orchestrator.begin_flow("google", GOOGLE_CALLBACK, "landlord"))

    assert admin.code is ErrorCode.INVALID_ROLE
    assert admin.status == HTTPStatus.FORBIDDEN
    assert unknown.code is ErrorCode.INVALID_ROLE
    assert len(state_store) == 0


def test_redirect_uri_must_be_allowed(orchestrator, state_store):
    result = asyncio.run(
        orchestrator.begin_flow("google", "https://evil.example.net/api/oauth/google/callback")
    )

    assert result.code is ErrorCode.INVALID_REDIRECT_URI
    assert len(state_store) == 0


def test_unsupported_provider(orchestrator):
    github = asyncio.run(orchestrator.begin_flow("github", GOOGLE_CALLBACK))
    email = asyncio.run(orchestrator.complete_flow("email", "code", GOOGLE_CALLBACK, "state"))

    assert github.code is ErrorCode.UNSUPPORTED_PROVIDER
    assert email.code is ErrorCode.UNSUPPORTED_PROVIDER


def test_generic_callback_is_normalized_on_both_legs(orchestrator, provider_stub):
    callback = "http://abc-123.ngrok-free.app/api/oauth/callback"

    begin, result = _sign_in(orchestrator, callback=callback)

    expected = "https://abc-123.ngrok-free.app/api/oauth/google/callback"
    assert _query(begin.data.auth_url)["redirect_uri"] == expected
    assert provider_stub.last_token_form()["redirect_uri"] == expected
    assert result.success


def test_existing_email_account_is_linked(orchestrator, users):
    user = User(email="ada@example.com", first_name="Ada")
    users.add(user)
    users.commit(user)

    _, result = _sign_in(orchestrator)

    assert result.success
    assert result.data.was_linked
    assert result.data.user_id == str(user.id)
    assert result.message == "Successfully linked your Google account"


def test_identity_failure_after_exchange_discards_state(
    orchestrator, provider_stub, state_store
):
    provider_stub.profile_status = 401

    _, result = _sign_in(orchestrator)

    assert result.code is ErrorCode.IDENTITY_VERIFICATION_FAILED
    assert result.message == "Invalid Google access token"
    assert len(state_store) == 0


def test_unexpected_errors_become_internal_error(
    state_store, http_client, adapters, issuer, clock
):
    orchestrator = _build(state_store, http_client, adapters, _BrokenLinker(), issuer, clock)

    _, result = _sign_in(orchestrator)

    assert result.code is ErrorCode.INTERNAL_ERROR
    assert result.message == "Failed to complete Google OAuth flow"
    assert "database" not in result.message
    assert len(state_store) == 0


def test_store_outage_is_reported(http_client, adapters, users, issuer, clock):
    orchestrator = _build(
        _UnavailableStore(clock=clock.monotonic),
        http_client,
        adapters,
        AccountLinker(users, clock=clock),
        issuer,
        clock,
    )

    result = asyncio.run(orchestrator.begin_flow("google", GOOGLE_CALLBACK))

    assert result.code is ErrorCode.STORE_UNAVAILABLE
    assert result.status == HTTPStatus.SERVICE_UNAVAILABLE


def test_missing_client_credentials(
    monkeypatch, state_store, http_client, users, issuer, clock
):
    monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
    orchestrator = _build(
        state_store,
        http_client,
        build_adapters(),
        AccountLinker(users, clock=clock),
        issuer,
        clock,
    )

    result = asyncio.run(orchestrator.begin_flow("google", GOOGLE_CALLBACK))

    assert result.code is ErrorCode.CONFIGURATION_ERROR
    assert result.message == "Google sign-in is not configured"
    assert len(state_store) == 0


def test_login_with_provider_token(orchestrator, provider_stub):
    async def run():
        first = await orchestrator.login_with_provider_token(Provider.LINKEDIN, "sdk-token")
        second = await orchestrator.login_with_provider_token("linkedin", "sdk-token")
        return first, second

    first, second = asyncio.run(run())

    assert first.data.is_new_account
    assert second.message == "Login successful"
    assert second.data.user_id == first.data.user_id
    assert provider_stub.token_requests() == []


def test_login_with_provider_token_requires_token(orchestrator):
    result = asyncio.run(orchestrator.login_with_provider_token("google", ""))

    assert result.code is ErrorCode.IDENTITY_VERIFICATION_FAILED


def test_sign_in_through_a_configured_app_callback(
    state_store, http_client, adapters, users, issuer, clock, provider_stub
):
    provider_stub.google_profile = {
        "id": "g1",
        "email": "a@x.com",
        "given_name": "Ada",
        "verified_email": True,
    }
    orchestrator = OAuthOrchestrator(
        state_store=state_store,
        token_exchange=TokenExchangeClient(adapters, http_client),
        identity_verifier=IdentityVerifier(adapters, http_client),
        account_linker=AccountLinker(users, clock=clock),
        session_issuer=issuer,
        adapters=adapters,
        allowed_redirect_patterns=[r"^https://app/cb$"],
        clock=clock,
    )

    async def run():
        begin = await orchestrator.begin_flow("google", "https://app/cb", "RENTER")
        assert begin.success, begin.message
        result = await orchestrator.complete_flow(
            "google", "authcode123", "https://app/cb", begin.data.state
        )
        return begin, result

    begin, result = asyncio.run(run())

    query = _query(begin.data.auth_url)
    assert uuid.UUID(query["state"]).version == 4
    assert len(query["code_challenge"]) == 43
    form = provider_stub.last_token_form()
    assert form["code"] == "authcode123"
    assert form["redirect_uri"] == "https://app/cb"
    assert result.success
    assert result.data.is_new_account
    assert issuer.decode_access_token(result.data.tokens.access_token)["email"] == "a@x.com"


def test_app_deep_link_is_allowed_by_default(orchestrator):
    result = asyncio.run(orchestrator.begin_flow("google", "glubon://oauth"))

    assert result.success
    assert _query(result.data.auth_url)["redirect_uri"] == "glubon://oauth"
