from __future__ import annotations

"""Logout route."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from sessionguard.adapters.api.v1.auth.cookies import clear_refresh_cookie
from sessionguard.adapters.api.v1.schemas import MessageResponse
from sessionguard.core.config.settings import Settings
from sessionguard.core.dependencies.auth import CurrentClaims
from sessionguard.domain.services.auth.token import TokenService
from sessionguard.infrastructure.dependency_injection.auth_dependencies import (
    get_settings,
    get_token_service,
)

router = APIRouter()


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Log out the current session",
)
async def logout_user(
    response: Response,
    claims: CurrentClaims,
    token_service: Annotated[TokenService, Depends(get_token_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Mark the caller's session and revoke its refresh token.

    The bearer token must still belong to a live session, so repeating a
    logout with the same token answers `401` with ``session_not_found``.
    Revocation itself is idempotent in `TokenService.revoke_for_logout`.
    """
    await token_service.revoke_for_logout(claims.user_id, claims.token_id)
    clear_refresh_cookie(response, settings)
    return MessageResponse(success=True, message="Logged out successfully")
