from __future__ import annotations

"""Token introspection route."""

from fastapi import APIRouter

from sessionguard.adapters.api.v1.schemas import ClaimsResponse
from sessionguard.core.dependencies.auth import CurrentClaims

router = APIRouter()


@router.get("", response_model=ClaimsResponse, summary="Verify the bearer token")
async def verify_token(claims: CurrentClaims) -> ClaimsResponse:
    return ClaimsResponse.from_claims(claims)
