"""Construction and injection of the authentication services.

`build_auth_container` wires every service explicitly from a session factory
and a `Settings` instance. The application stores the container on
``app.state``; the FastAPI dependency functions below hand out its members.
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sessionguard.core.config.settings import Settings
from sessionguard.domain.interfaces.repositories import IUserRepository
from sessionguard.domain.services.auth.pre_login import PreLoginTerminationService
from sessionguard.domain.services.auth.session import SessionLifecycleService
from sessionguard.domain.services.auth.session_limit import SessionLimitService
from sessionguard.domain.services.auth.token import TokenService
from sessionguard.domain.services.auth.user_authentication import UserAuthenticationService
from sessionguard.infrastructure.jobs.session_cleanup import SessionCleanupJob
from sessionguard.infrastructure.repositories.user_repository import UserRepository


@dataclass
class AuthContainer:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    user_repository: IUserRepository
    limit_service: SessionLimitService
    token_service: TokenService
    lifecycle_service: SessionLifecycleService
    pre_login_service: PreLoginTerminationService
    auth_service: UserAuthenticationService
    cleanup_job: SessionCleanupJob


def build_auth_container(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> AuthContainer:
    """Create every authentication service for one application instance."""
    user_repository = UserRepository(session_factory)
    limit_service = SessionLimitService(session_factory, settings)
    token_service = TokenService(session_factory, limit_service, settings)
    lifecycle_service = SessionLifecycleService(session_factory, limit_service, settings)
    return AuthContainer(
        settings=settings,
        session_factory=session_factory,
        user_repository=user_repository,
        limit_service=limit_service,
        token_service=token_service,
        lifecycle_service=lifecycle_service,
        pre_login_service=PreLoginTerminationService(session_factory, settings),
        auth_service=UserAuthenticationService(user_repository, token_service),
        cleanup_job=SessionCleanupJob(lifecycle_service, settings.SESSION_CLEANUP_INTERVAL_SECONDS),
    )


def get_container(request: Request) -> AuthContainer:
    return request.app.state.container


Container = Annotated[AuthContainer, Depends(get_container)]


def get_settings(container: Container) -> Settings:
    return container.settings


def get_token_service(container: Container) -> TokenService:
    return container.token_service


def get_lifecycle_service(container: Container) -> SessionLifecycleService:
    return container.lifecycle_service


def get_pre_login_service(container: Container) -> PreLoginTerminationService:
    return container.pre_login_service


def get_user_authentication_service(container: Container) -> UserAuthenticationService:
    return container.auth_service
