from __future__ import annotations

from typing import Annotated, Callable

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from sessionguard.core.exceptions import AuthenticationError, PermissionError, SessionNotFoundError
from sessionguard.domain.entities.user import Role
from sessionguard.domain.services.auth.token import TokenService
from sessionguard.domain.value_objects.jwt_token import TokenClaims
from sessionguard.infrastructure.dependency_injection.auth_dependencies import get_token_service

__all__ = [
    "get_current_claims",
    "require_roles",
    "client_ip",
]


# ---------------------------------------------------------------------------
# Type-annotated dependency shortcuts
# ---------------------------------------------------------------------------


TokenStr = Annotated[str, Depends(OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login"))]
TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Public dependencies
# ---------------------------------------------------------------------------


async def get_current_claims(
    request: Request, token: TokenStr, token_service: TokenServiceDep
) -> TokenClaims:
    """Return the verified identity of the bearer token.

    Token errors propagate to the `AuthenticationError` handler, which answers
    `401` with the error code and a ``WWW-Authenticate`` header. A session
    terminated server-side is re-raised as a plain authentication failure so
    it does not reach the `404` handler of the termination routes.
    """
    try:
        return await token_service.verify(token, client_ip=client_ip(request))
    except SessionNotFoundError as exc:
        raise AuthenticationError(exc.message, exc.code) from exc


CurrentClaims = Annotated[TokenClaims, Depends(get_current_claims)]


def require_roles(*roles: Role) -> Callable:
    """Dependency factory allowing only the given roles."""

    async def _check(claims: CurrentClaims) -> TokenClaims:
        if claims.role not in roles:
            raise PermissionError()
        return claims

    return _check
