"""Version 1 of the HTTP API."""

from fastapi import APIRouter

from . import admin, health
from .auth import router as auth_router
from .sessions import router as sessions_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(sessions_router)
api_router.include_router(admin.router)
api_router.include_router(health.router)

__all__ = ["api_router"]
