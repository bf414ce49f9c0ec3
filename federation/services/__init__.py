"""Service layer for the federated sign-in flow."""

from ..providers.pkce import PkcePair, generate_pkce_pair, generate_state
from .identity import IdentityVerifier
from .linker import AccountLinker, LinkOutcome, merge_profile, upgrade_primary_provider
from .orchestrator import FlowStage, OAuthOrchestrator, parse_requested_role
from .redirects import is_allowed_redirect_uri, normalize_redirect_uri
from .results import BeginFlowData, FlowResult, SessionResult
from .session import SessionIssuer, SessionTokens
from .state_store import (
    MemoryStateStore,
    RedisStateStore,
    StateStore,
    build_state_store,
)
from .token_exchange import TokenExchangeClient
from .users import UserRepository

__all__ = [
    "AccountLinker",
    "BeginFlowData",
    "FlowResult",
    "FlowStage",
    "IdentityVerifier",
    "LinkOutcome",
    "MemoryStateStore",
    "OAuthOrchestrator",
    "PkcePair",
    "RedisStateStore",
    "SessionIssuer",
    "SessionResult",
    "SessionTokens",
    "StateStore",
    "TokenExchangeClient",
    "UserRepository",
    "build_state_store",
    "generate_pkce_pair",
    "generate_state",
    "is_allowed_redirect_uri",
    "merge_profile",
    "normalize_redirect_uri",
    "parse_requested_role",
    "upgrade_primary_provider",
]
