from __future__ import annotations

"""Authentication router package: login, refresh, logout and verify endpoints."""

from fastapi import APIRouter

from .routes import login as login_route
from .routes import logout as logout_route
from .routes import refresh as refresh_route
from .routes import verify as verify_route

router = APIRouter(prefix="/auth", tags=["auth"])

# Delegate to sub-routers ----------------------------------------------------

router.include_router(login_route.router, prefix="/login")
router.include_router(refresh_route.router, prefix="/refresh")
router.include_router(logout_route.router, prefix="/logout")
router.include_router(verify_route.router, prefix="/verify")

__all__ = ["router"]
