"""Uniform result shape returned by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Dict, Generic, Optional, TypeVar

from ..errors import ErrorCode
from ..models import ExternalIdentity
from .session import SessionTokens

T = TypeVar("T")


@dataclass
class FlowResult(Generic[T]):
    success: bool
    message: str
    code: Optional[ErrorCode] = None
    data: Optional[T] = None

    @classmethod
    def ok(cls, data: T, message: str) -> "FlowResult[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, code: ErrorCode, message: str) -> "FlowResult[T]":
        return cls(success=False, message=message, code=code)

    @property
    def status(self) -> HTTPStatus:
        if self.success or self.code is None:
            return HTTPStatus.OK
        return self.code.status

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.code is not None:
            payload["code"] = self.code.value
        return payload


@dataclass
class BeginFlowData:
    auth_url: str
    state: str


@dataclass
class SessionResult:
    identity: ExternalIdentity
    tokens: SessionTokens
    user_id: str
    is_new_account: bool
    was_linked: bool
    message: str


__all__ = ["BeginFlowData", "FlowResult", "SessionResult"]
