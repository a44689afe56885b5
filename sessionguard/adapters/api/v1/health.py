from __future__ import annotations

"""
Health Check Module

Reports database connectivity together with the state of the session cleanup
job. Answers ``503`` when the database is unreachable or cleanup has failed
``CLEANUP_FAILURE_THRESHOLD`` times in a row.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from sessionguard.core.dependencies.auth import require_roles
from sessionguard.domain.entities.user import Role
from sessionguard.infrastructure.database import check_database_health
from sessionguard.infrastructure.dependency_injection.auth_dependencies import Container

router = APIRouter(tags=["health"])


@router.get("/health", summary="Service health")
async def health_check(request: Request, container: Container) -> JSONResponse:
    database_ok = await check_database_health(request.app.state.engine)
    sessions: Dict[str, Any] = container.lifecycle_service.check_health(
        job_running=container.cleanup_job.is_running
    )
    healthy = database_ok and sessions["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "env": container.settings.APP_ENV,
        "version": container.settings.VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "database": "healthy" if database_ok else "unhealthy",
            "sessions": sessions,
        },
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )


@router.get(
    "/metrics",
    summary="Session metrics",
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def session_metrics(container: Container) -> Dict[str, Any]:
    return await container.lifecycle_service.get_metrics()
