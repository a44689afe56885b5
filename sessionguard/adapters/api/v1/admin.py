from __future__ import annotations

"""Administrative session routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from sessionguard.adapters.api.v1.schemas import CleanupResponse
from sessionguard.core.dependencies.auth import require_roles
from sessionguard.domain.entities.user import Role
from sessionguard.domain.services.auth.session import SessionLifecycleService
from sessionguard.domain.value_objects.jwt_token import TokenClaims
from sessionguard.infrastructure.dependency_injection.auth_dependencies import get_lifecycle_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/sessions/cleanup", response_model=CleanupResponse, summary="Run a cleanup pass now")
async def run_cleanup(
    claims: Annotated[TokenClaims, Depends(require_roles(Role.ADMIN))],
    lifecycle_service: Annotated[SessionLifecycleService, Depends(get_lifecycle_service)],
) -> CleanupResponse:
    """Run one cleanup pass synchronously and return its row counts.

    Unlike the scheduled job, a failure here propagates to the caller.
    """
    result = await lifecycle_service.cleanup()
    return CleanupResponse(**result.to_dict())
