from __future__ import annotations

"""Refresh route: exchange a refresh token for a new pair, exactly once."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response

from sessionguard.adapters.api.v1.auth.cookies import read_refresh_cookie, set_refresh_cookie
from sessionguard.adapters.api.v1.schemas import RefreshRequest, TokenResponse
from sessionguard.core.config.settings import Settings
from sessionguard.core.exceptions import InvalidRefreshTokenError
from sessionguard.domain.services.auth.token import TokenService
from sessionguard.infrastructure.dependency_injection.auth_dependencies import (
    get_settings,
    get_token_service,
)

router = APIRouter()


@router.post("", response_model=TokenResponse, summary="Rotate the refresh token")
async def refresh_tokens(
    request: Request,
    response: Response,
    token_service: Annotated[TokenService, Depends(get_token_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    payload: Optional[RefreshRequest] = None,
) -> TokenResponse:
    """Rotate the refresh token taken from the cookie (or the body)."""
    refresh_token = read_refresh_cookie(request, settings) or (payload.refresh_token if payload else None)
    if not refresh_token:
        raise InvalidRefreshTokenError("Refresh token missing")

    tokens = await token_service.rotate(refresh_token)
    set_refresh_cookie(response, tokens.refresh_token, settings)
    return TokenResponse.from_tokens(tokens)
