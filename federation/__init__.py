"""Federated sign-in with Google, Facebook and LinkedIn."""

from .errors import ErrorCode, FederationError
from .factory import build_orchestrator, open_orchestrator
from .models import ExternalIdentity, Provider, Role, User
from .services import (
    BeginFlowData,
    FlowResult,
    MemoryStateStore,
    OAuthOrchestrator,
    SessionResult,
)

__all__ = [
    "BeginFlowData",
    "ErrorCode",
    "ExternalIdentity",
    "FederationError",
    "FlowResult",
    "MemoryStateStore",
    "OAuthOrchestrator",
    "Provider",
    "Role",
    "SessionResult",
    "User",
    "build_orchestrator",
    "open_orchestrator",
]
