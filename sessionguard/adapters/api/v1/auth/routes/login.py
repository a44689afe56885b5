from __future__ import annotations

"""Login route: credentials in, token pair (or the session list) out."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from structlog import get_logger

from sessionguard.adapters.api.v1.auth.cookies import set_refresh_cookie
from sessionguard.adapters.api.v1.schemas import LoginRequest, TokenResponse, device_from_request
from sessionguard.core.config.settings import Settings
from sessionguard.domain.services.auth.user_authentication import UserAuthenticationService
from sessionguard.infrastructure.dependency_injection.auth_dependencies import (
    get_settings,
    get_user_authentication_service,
)

logger = get_logger(__name__)
router = APIRouter()


@router.post(
    "",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Log in and open a session",
    responses={
        401: {"description": "Invalid credentials"},
        409: {"description": "Session limit reached; body lists the active sessions"},
    },
)
async def login_user(
    request: Request,
    response: Response,
    payload: LoginRequest,
    auth_service: Annotated[UserAuthenticationService, Depends(get_user_authentication_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenResponse:
    """Authenticate the user and issue a token pair bound to a new session.

    The refresh token is also set as an HTTP-only cookie scoped to the auth
    routes. When the user already holds the maximum number of sessions the
    `MaxSessionsReachedError` handler answers with ``409`` and the session
    list.
    """
    device = device_from_request(payload.device, request)
    result = await auth_service.login(payload.username, payload.password, device)
    set_refresh_cookie(response, result.tokens.refresh_token, settings)
    return TokenResponse.from_tokens(result.tokens)
