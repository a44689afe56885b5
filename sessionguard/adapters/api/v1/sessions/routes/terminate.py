from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from sessionguard.adapters.api.v1.schemas import TerminationResponse
from sessionguard.core.dependencies.auth import CurrentClaims
from sessionguard.domain.services.auth.session import SessionLifecycleService
from sessionguard.infrastructure.dependency_injection.auth_dependencies import get_lifecycle_service

router = APIRouter()


@router.delete(
    "/{session_id}",
    response_model=TerminationResponse,
    summary="Terminate one of the caller's sessions",
    responses={404: {"description": "No such active session for this user"}},
)
async def terminate_session(
    claims: CurrentClaims,
    lifecycle_service: Annotated[SessionLifecycleService, Depends(get_lifecycle_service)],
    session_id: Annotated[str, Path(min_length=1, max_length=36)],
) -> TerminationResponse:
    """Mark the session for deletion; cleanup removes it later.

    Terminating the session behind the bearer token is allowed and logs the
    caller out on their next request.
    """
    result = await lifecycle_service.terminate_session(claims.user_id, session_id)
    return TerminationResponse(
        success=True,
        message="Session terminated",
        session_id=result.session_id,
        remaining_sessions=result.remaining_sessions,
    )
