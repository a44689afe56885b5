"""Session management router package: listing, termination and pre-login termination."""

from fastapi import APIRouter

from .routes import list_sessions, pre_login, terminate

router = APIRouter(tags=["sessions"])

# Delegate to sub-routers ----------------------------------------------------

router.include_router(list_sessions.router, prefix="/sessions")
router.include_router(terminate.router, prefix="/sessions")
router.include_router(pre_login.router, prefix="/sessions")

__all__ = ["router"]
