"""Login: credential verification followed by session issuance."""

import asyncio
from dataclasses import dataclass

from structlog import get_logger

from sessionguard.core.exceptions import (
    AccountInactiveError,
    InvalidCredentialsError,
    MaxSessionsReachedError,
)
from sessionguard.domain.entities.user import User
from sessionguard.domain.interfaces.repositories import IUserRepository
from sessionguard.domain.services.auth.token import TokenService
from sessionguard.domain.value_objects.device import DeviceDescriptor
from sessionguard.domain.value_objects.jwt_token import IssuedTokens
from sessionguard.utils.security import DUMMY_PASSWORD_HASH, verify_password

logger = get_logger(__name__)


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: IssuedTokens


class UserAuthenticationService:
    """Authenticates users and opens sessions for them.

    Every credential failure (unknown user, wrong password, inactive account)
    surfaces with the same generic message so accounts cannot be enumerated.
    Hitting the session cap is not a failure: `MaxSessionsReachedError`
    propagates with the user's sessions so the caller can start the
    pre-login termination flow.
    """

    def __init__(self, user_repository: IUserRepository, token_service: TokenService):
        self._users = user_repository
        self._tokens = token_service

    async def authenticate_user(self, username: str, password: str) -> User:
        """Verify credentials and return the active user.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password.
            AccountInactiveError: Correct credentials for a deactivated account.
        """
        user = await self._users.get_by_username(username)
        if user is None:
            # Keep the response time of unknown users in line with wrong passwords.
            await asyncio.to_thread(verify_password, password, DUMMY_PASSWORD_HASH)
            logger.info("Login failed", reason="unknown_user")
            raise InvalidCredentialsError()

        if not await asyncio.to_thread(verify_password, password, user.hashed_password):
            await self._users.record_failed_login(user.id)
            logger.info("Login failed", reason="invalid_password", user_id=user.id)
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.info("Login failed", reason=AccountInactiveError.reason, user_id=user.id)
            raise AccountInactiveError()

        return user

    async def login(self, username: str, password: str, device: DeviceDescriptor) -> LoginResult:
        """Authenticate and issue a token pair bound to a new session.

        Raises:
            InvalidCredentialsError: Credentials rejected (generic).
            MaxSessionsReachedError: The user is at the session cap; carries
                the sessions to choose from.
        """
        user = await self.authenticate_user(username, password)
        try:
            tokens = await self._tokens.issue(user, device)
        except MaxSessionsReachedError:
            logger.info("Login blocked by session limit", user_id=user.id, device=device.friendly_name)
            raise

        await self._users.record_successful_login(user.id)
        logger.info("Login succeeded", user_id=user.id, session_id=tokens.session_id)
        return LoginResult(user=user, tokens=tokens)
