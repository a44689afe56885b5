"""Middleware configuration for the FastAPI application.

Registers CORS and a request-context middleware that binds a request id and
the client address to every structlog event emitted while serving a request.
"""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from sessionguard.core.config.settings import Settings

REQUEST_ID_HEADER = "X-Request-ID"


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure all middleware for the FastAPI application."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context_middleware)


async def request_context_middleware(request: Request, call_next):
    """Bind ``request_id``, ``method``, ``path`` and ``client_ip`` to the log context.

    An incoming ``X-Request-ID`` is reused; it is echoed on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
    )
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
