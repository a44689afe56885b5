from __future__ import annotations

"""
Global exception handlers for the FastAPI application.

This module contains centralized handlers for the application exceptions,
translating them into HTTP responses. Domain errors map to specific status
codes; storage errors are logged with context and answered with a generic
500 that exposes nothing about the database.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette import status
from structlog import get_logger

from sessionguard.core.exceptions import (
    AuthenticationError,
    DatabaseError,
    MaxSessionsReachedError,
    PermissionError,
    SessionGuardError,
    SessionLockTimeoutError,
    SessionNotFoundError,
    ValidationError,
)

__all__ = [
    "authentication_error_handler",
    "max_sessions_reached_error_handler",
    "session_not_found_error_handler",
    "session_lock_timeout_error_handler",
    "permission_error_handler",
    "validation_error_handler",
    "database_error_handler",
    "session_guard_error_handler",
    "register_exception_handlers",
]

logger = get_logger(__name__)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _error_body(exc: SessionGuardError, **extra) -> dict:
    return {"detail": exc.message, "code": exc.code, **extra}


async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """Handles `AuthenticationError`, returning a `401 Unauthorized`.

    Credential errors reach this handler with a generic message; the specific
    reason is only ever logged by the service that raised it.
    """
    logger.warning(
        "Authentication failure",
        error=exc.code,
        client_ip=_client_ip(request),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=_error_body(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def max_sessions_reached_error_handler(
    request: Request, exc: MaxSessionsReachedError
) -> JSONResponse:
    """Handles `MaxSessionsReachedError`, returning a `409 Conflict`.

    The body lists the user's active sessions so the client can offer the
    pre-login termination flow.
    """
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_error_body(
            exc,
            max_sessions=exc.max_sessions,
            sessions=[session.to_dict() for session in exc.sessions],
        ),
    )


async def session_not_found_error_handler(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    """Handles `SessionNotFoundError` raised by termination endpoints with a `404`."""
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))


async def session_lock_timeout_error_handler(
    request: Request, exc: SessionLockTimeoutError
) -> JSONResponse:
    """Handles `SessionLockTimeoutError` with a retriable `409 Conflict`."""
    logger.warning("Session lock contention", client_ip=_client_ip(request), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_error_body(exc, retriable=exc.retriable),
    )


async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
    """Handles `PermissionError`, returning a `403 Forbidden`."""
    logger.warning(
        "Permission denied",
        error=exc.code,
        client_ip=_client_ip(request),
        path=request.url.path,
    )
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=_error_body(exc))


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handles `ValidationError`, returning a `422 Unprocessable Entity`."""
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_body(exc))


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handles storage failures with a generic `500 Internal Server Error`.

    The driver error is logged with request context and never returned.
    """
    logger.error(
        "Database error",
        error=str(exc),
        error_type=type(exc).__name__,
        client_ip=_client_ip(request),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(DatabaseError()),
    )


async def session_guard_error_handler(request: Request, exc: SessionGuardError) -> JSONResponse:
    """Fallback for application errors without a dedicated handler."""
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Starlette resolves handlers along the exception's MRO, so the more
    specific handlers win over `AuthenticationError` and `SessionGuardError`.
    """
    app.add_exception_handler(SessionNotFoundError, session_not_found_error_handler)
    app.add_exception_handler(AuthenticationError, authentication_error_handler)
    app.add_exception_handler(MaxSessionsReachedError, max_sessions_reached_error_handler)
    app.add_exception_handler(SessionLockTimeoutError, session_lock_timeout_error_handler)
    app.add_exception_handler(PermissionError, permission_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(SessionGuardError, session_guard_error_handler)
