"""Application factory for creating and configuring the FastAPI application.

This module provides a factory function to create a properly configured FastAPI application
with all necessary middleware, exception handlers, and routers registered.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from sessionguard.adapters.api.v1 import api_router
from sessionguard.core.config.settings import Settings, settings as default_settings
from sessionguard.core.handlers import register_exception_handlers
from sessionguard.core.lifecycle import create_lifespan_manager
from sessionguard.core.middleware import configure_middleware
from sessionguard.infrastructure.database import create_session_factory, engine as default_engine
from sessionguard.infrastructure.dependency_injection.auth_dependencies import build_auth_container


def create_application(
    app_settings: Optional[Settings] = None,
    db_engine: Optional[AsyncEngine] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The service container is built here rather than in the lifespan so the
    application is fully wired even when served without lifespan events.

    Args:
        app_settings: Settings to run with; the process settings by default.
        db_engine: Engine to bind the services to; the configured engine by default.

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    app_settings = app_settings or default_settings
    db_engine = db_engine or default_engine

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.VERSION,
        description="Session and token lifecycle service.",
        docs_url=None if app_settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if app_settings.is_production else "/openapi.json",
        lifespan=create_lifespan_manager(),
        default_response_class=JSONResponse,
    )

    app.state.engine = db_engine
    app.state.container = build_auth_container(create_session_factory(db_engine), app_settings)

    # Configure middleware
    configure_middleware(app, app_settings)

    # Register exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(api_router, prefix="/api/v1")

    return app
