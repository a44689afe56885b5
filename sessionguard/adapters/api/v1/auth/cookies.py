"""Refresh-token cookie helpers."""

from fastapi import Request, Response

from sessionguard.core.config.settings import Settings


def set_refresh_cookie(response: Response, refresh_token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=settings.refresh_token_lifetime_seconds,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.APP_ENV not in ("development", "test"),
        samesite="strict",
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.APP_ENV not in ("development", "test"),
        samesite="strict",
    )


def read_refresh_cookie(request: Request, settings: Settings) -> str | None:
    return request.cookies.get(settings.REFRESH_COOKIE_NAME)
