"""Application lifecycle management.

This module handles application startup and shutdown events, ensuring proper
initialization and cleanup of application resources.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from sessionguard.core.logging import logger
from sessionguard.infrastructure.database import check_database_health, create_async_db_and_tables


def create_lifespan_manager():
    """Create the application lifespan manager.

    Returns:
        AsyncContextManager: The lifespan manager for the FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: check the database, create tables, start the cleanup job.

        Shutdown: stop the cleanup job and wait for pending activity updates.

        Raises:
            RuntimeError: If database is unavailable during startup
        """
        container = app.state.container
        engine = app.state.engine

        # Startup
        if not await check_database_health(engine):
            logger.error("database_unavailable_on_startup")
            raise RuntimeError("Database unavailable")
        await create_async_db_and_tables(engine)
        container.cleanup_job.start()
        logger.info(
            "application_startup",
            env=container.settings.APP_ENV,
            version=container.settings.VERSION,
            max_sessions_per_user=container.settings.MAX_SESSIONS_PER_USER,
        )

        yield

        # Shutdown
        await container.cleanup_job.stop()
        await container.token_service.drain_activity_updates()
        await engine.dispose()
        logger.info("application_shutdown", env=container.settings.APP_ENV)

    return lifespan
