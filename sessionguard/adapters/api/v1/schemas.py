from __future__ import annotations

"""Request and response Pydantic models for the v1 API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Request
from pydantic import BaseModel, Field

from sessionguard.core.exceptions import ValidationError
from sessionguard.domain.value_objects.device import DeviceDescriptor
from sessionguard.domain.value_objects.jwt_token import IssuedTokens, TokenClaims
from sessionguard.domain.value_objects.session_info import SessionInfo

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Payload expected by ``POST /auth/login``.

    ``device`` accepts a flat descriptor (``type``, ``browser``, ``os``,
    ``name``, ``screen``) or the same fields nested under ``deviceInfo``.
    """

    username: str = Field(..., min_length=1, max_length=50, examples=["john_doe"])
    password: str = Field(..., min_length=1, max_length=128, examples=["Str0ngP@ssw0rd"])
    device: Optional[Dict[str, Any]] = Field(
        default=None, examples=[{"type": "desktop", "browser": "Firefox", "os": "Linux"}]
    )


class RefreshRequest(BaseModel):
    """Optional body of ``POST /auth/refresh`` for clients without cookies."""

    refresh_token: Optional[str] = None


class PreLoginTerminateRequest(BaseModel):
    """Payload expected by ``POST /sessions/pre-login/terminate``.

    The credentials are resubmitted by the client; the server keeps no
    pending-login state between the blocked login and this call.
    """

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)
    session_id: str = Field(..., min_length=1, max_length=36)
    device: Optional[Dict[str, Any]] = None


def device_from_request(raw: Optional[Dict[str, Any]], request: Request) -> DeviceDescriptor:
    """Validate the client's device payload once, at the boundary."""
    ip = request.client.host if request.client else None
    try:
        return DeviceDescriptor.from_mapping(raw, ip=ip)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """JWT access & refresh tokens with the session they are bound to."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: str
    token_id: str

    @classmethod
    def from_tokens(cls, tokens: IssuedTokens) -> "TokenResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            session_id=tokens.session_id,
            token_id=tokens.token_id,
        )


class ClaimsResponse(BaseModel):
    user_id: int
    token_id: str
    role: str

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "ClaimsResponse":
        return cls(user_id=claims.user_id, token_id=claims.token_id, role=claims.role.value)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class SessionResponse(BaseModel):
    id: str
    device_name: str
    device_type: str
    browser: str
    os: str
    last_active: datetime
    created_at: datetime
    is_current: bool

    @classmethod
    def from_info(cls, info: SessionInfo) -> "SessionResponse":
        return cls(**info.__dict__)


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int
    max_sessions: int


class TerminationResponse(BaseModel):
    success: bool = True
    message: str
    session_id: str
    remaining_sessions: int


class CleanupResponse(BaseModel):
    expired_tokens: int
    expired_sessions: int
    marked_sessions: int
    evicted_sessions: int
    purged_tokens: int
