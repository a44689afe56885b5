"""Recovery path for logins blocked by the session limit.

A user refused with `MaxSessionsReachedError` picks one of the listed
sessions; `PreLoginTerminationService` removes it under a bounded row lock and
the login is retried through the full login path. `LoginRecoveryFlow` drives
that sequence as an explicit state machine:

    ATTEMPTING_LOGIN --(limit exceeded)--> AWAITING_SESSION_CHOICE
    AWAITING_SESSION_CHOICE --(session picked)--> TERMINATING
    AWAITING_SESSION_CHOICE --(cancelled)--> ABORTED
    TERMINATING --(terminated)--> RETRYING_LOGIN
    TERMINATING --(locked or already gone)--> SESSION_NOT_FOUND
    RETRYING_LOGIN --(limit ok)--> ISSUED
    RETRYING_LOGIN --(limit exceeded)--> AWAITING_SESSION_CHOICE

Credentials are never stored server-side between steps: the flow keeps them
only in the caller's memory for the duration of `LoginRecoveryFlow.run`, and
HTTP clients resubmit them with the termination request.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from sessionguard.core.config.settings import Settings, settings as default_settings
from sessionguard.core.exceptions import (
    MaxSessionsReachedError,
    SessionGuardError,
    SessionLockTimeoutError,
    SessionNotFoundError,
)
from sessionguard.domain.entities.refresh_token import RefreshToken
from sessionguard.domain.entities.session import Session
from sessionguard.domain.services.auth.session_queries import active_session_clause, count_active_sessions
from sessionguard.domain.services.auth.user_authentication import UserAuthenticationService
from sessionguard.domain.value_objects.device import DeviceDescriptor
from sessionguard.domain.value_objects.jwt_token import IssuedTokens
from sessionguard.domain.value_objects.session_info import SessionInfo, TerminationResult
from sessionguard.infrastructure.database.async_db import apply_lock_timeout, is_lock_timeout_error

logger = get_logger(__name__)


class PreLoginTerminationService:
    """Hard-deletes one session for a credential-verified, not yet logged-in user."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or default_settings

    async def terminate(
        self, user_id: int, session_id: str, device: Optional[DeviceDescriptor] = None
    ) -> TerminationResult:
        """Remove ``session_id`` and its refresh token atomically.

        The session row is locked with a bounded wait
        (``TERMINATION_LOCK_TIMEOUT_SECONDS``) so two concurrent terminations
        of the same row cannot interleave with the refresh-token delete.

        Args:
            user_id: Owner whose credentials were just verified.
            session_id: Session chosen for eviction.
            device: Device requesting the eviction, logged for audit.

        Returns:
            TerminationResult: The removed id and the remaining active count.

        Raises:
            SessionNotFoundError: No active session with this id for the user.
            SessionLockTimeoutError: The row stayed locked past the timeout.
        """
        try:
            async with self._session_factory() as db, db.begin():
                await apply_lock_timeout(db, self._settings.TERMINATION_LOCK_TIMEOUT_SECONDS)
                locked = await db.execute(
                    select(Session)
                    .where(Session.id == session_id, Session.user_id == user_id, active_session_clause())
                    .with_for_update()
                )
                session = locked.scalars().first()
                if session is None:
                    raise SessionNotFoundError()

                await db.execute(
                    delete(RefreshToken)
                    .where(RefreshToken.token_id == session.token_id, RefreshToken.user_id == user_id)
                    .execution_options(synchronize_session=False)
                )
                await db.execute(
                    delete(Session)
                    .where(Session.id == session.id)
                    .execution_options(synchronize_session=False)
                )
                remaining = await count_active_sessions(db, user_id)
        except DBAPIError as exc:
            if is_lock_timeout_error(exc):
                logger.warning("Session termination lock timeout", user_id=user_id, session_id=session_id)
                raise SessionLockTimeoutError() from exc
            raise

        logger.info(
            "Session terminated before login",
            user_id=user_id,
            session_id=session_id,
            remaining_sessions=remaining,
            requested_from=device.friendly_name if device else None,
            client_ip=device.ip if device else None,
        )
        return TerminationResult(session_id=session_id, remaining_sessions=remaining)


class LoginFlowState(str, Enum):
    ATTEMPTING_LOGIN = "attempting_login"
    AWAITING_SESSION_CHOICE = "awaiting_session_choice"
    TERMINATING = "terminating"
    RETRYING_LOGIN = "retrying_login"
    ISSUED = "issued"
    ABORTED = "aborted"
    SESSION_NOT_FOUND = "session_not_found"


SessionChooser = Callable[[List[SessionInfo]], Awaitable[Optional[str]]]


@dataclass
class LoginFlowOutcome:
    """Terminal state of one recovery flow run.

    ``sessions`` holds the last list offered to the chooser so a
    ``SESSION_NOT_FOUND`` outcome can be surfaced back to the user's picker.
    """

    state: LoginFlowState
    tokens: Optional[IssuedTokens] = None
    sessions: List[SessionInfo] = field(default_factory=list)
    history: List[LoginFlowState] = field(default_factory=list)
    error: Optional[SessionGuardError] = None


class LoginRecoveryFlow:
    """Drives login → choose session → terminate → retry until a terminal state."""

    def __init__(
        self,
        auth_service: UserAuthenticationService,
        termination_service: PreLoginTerminationService,
        max_rounds: int = 5,
    ):
        self._auth = auth_service
        self._termination = termination_service
        self._max_rounds = max_rounds

    async def run(
        self,
        username: str,
        password: str,
        device: DeviceDescriptor,
        choose_session: SessionChooser,
    ) -> LoginFlowOutcome:
        """Run the flow for one login attempt.

        Args:
            username: Submitted username.
            password: Submitted password; re-verified on every retry.
            device: Validated descriptor of the requesting device.
            choose_session: Called with the current session list; returns the
                id of the session to terminate, or ``None`` to cancel.

        Returns:
            LoginFlowOutcome: ``ISSUED``, ``ABORTED`` or ``SESSION_NOT_FOUND``.

        Raises:
            InvalidCredentialsError: Credentials rejected on any attempt.
        """
        history = [LoginFlowState.ATTEMPTING_LOGIN]
        rounds = 0
        while True:
            try:
                result = await self._auth.login(username, password, device)
            except MaxSessionsReachedError as exc:
                blocked = exc
            else:
                history.append(LoginFlowState.ISSUED)
                return LoginFlowOutcome(LoginFlowState.ISSUED, tokens=result.tokens, history=history)

            sessions = list(blocked.sessions)
            history.append(LoginFlowState.AWAITING_SESSION_CHOICE)
            rounds += 1
            choice = await choose_session(sessions) if rounds <= self._max_rounds else None
            if choice is None:
                history.append(LoginFlowState.ABORTED)
                return LoginFlowOutcome(LoginFlowState.ABORTED, sessions=sessions, history=history, error=blocked)

            history.append(LoginFlowState.TERMINATING)
            try:
                await self._termination.terminate(blocked.user_id, choice, device)
            except (SessionNotFoundError, SessionLockTimeoutError) as exc:
                history.append(LoginFlowState.SESSION_NOT_FOUND)
                return LoginFlowOutcome(
                    LoginFlowState.SESSION_NOT_FOUND, sessions=sessions, history=history, error=exc
                )
            history.append(LoginFlowState.RETRYING_LOGIN)
