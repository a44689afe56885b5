from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from sessionguard.adapters.api.v1.schemas import SessionListResponse, SessionResponse
from sessionguard.core.config.settings import Settings
from sessionguard.core.dependencies.auth import CurrentClaims
from sessionguard.domain.services.auth.session import SessionLifecycleService
from sessionguard.infrastructure.dependency_injection.auth_dependencies import (
    get_lifecycle_service,
    get_settings,
)

router = APIRouter()


@router.get("", response_model=SessionListResponse, summary="List active sessions")
async def list_sessions(
    claims: CurrentClaims,
    lifecycle_service: Annotated[SessionLifecycleService, Depends(get_lifecycle_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionListResponse:
    """Active sessions of the caller, most recently active first.

    The session behind the bearer token is flagged with ``is_current``.
    """
    sessions = await lifecycle_service.get_user_sessions(claims.user_id, claims.token_id)
    return SessionListResponse(
        sessions=[SessionResponse.from_info(info) for info in sessions],
        total=len(sessions),
        max_sessions=settings.MAX_SESSIONS_PER_USER,
    )
