from __future__ import annotations

"""Pre-login termination route.

Second step of a login refused with ``409 max_sessions_reached``: the client
resubmits its credentials together with the id of the session to remove, then
retries ``POST /auth/login``.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from sessionguard.adapters.api.v1.schemas import (
    PreLoginTerminateRequest,
    TerminationResponse,
    device_from_request,
)
from sessionguard.domain.services.auth.pre_login import PreLoginTerminationService
from sessionguard.domain.services.auth.user_authentication import UserAuthenticationService
from sessionguard.infrastructure.dependency_injection.auth_dependencies import (
    get_pre_login_service,
    get_user_authentication_service,
)

router = APIRouter()


@router.post(
    "/pre-login/terminate",
    response_model=TerminationResponse,
    summary="Terminate a session before logging in",
    responses={
        401: {"description": "Invalid credentials"},
        404: {"description": "Session already gone"},
        409: {"description": "Session is locked by another request; retry"},
    },
)
async def terminate_before_login(
    request: Request,
    payload: PreLoginTerminateRequest,
    auth_service: Annotated[UserAuthenticationService, Depends(get_user_authentication_service)],
    pre_login_service: Annotated[PreLoginTerminationService, Depends(get_pre_login_service)],
) -> TerminationResponse:
    device = device_from_request(payload.device, request)
    user = await auth_service.authenticate_user(payload.username, payload.password)
    result = await pre_login_service.terminate(user.id, payload.session_id, device)
    return TerminationResponse(
        success=True,
        message="Session terminated, retry login",
        session_id=result.session_id,
        remaining_sessions=result.remaining_sessions,
    )
