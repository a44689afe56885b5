"""Session limit enforcement.

Gates session creation on ``MAX_SESSIONS_PER_USER``. At the limit the login is
refused with a structured `MaxSessionsReachedError` carrying the user's current
sessions so the caller can choose one to terminate; sessions are never evicted
silently on the login path.

Race safety: `reserve_within` runs inside the issuing transaction and first
locks the owner's ``users`` row (``SELECT ... FOR UPDATE``), so two concurrent
logins for the same user serialize on the count-then-insert sequence. SQLite
ignores ``FOR UPDATE`` but every SQLite transaction starts with
``BEGIN IMMEDIATE`` (see `sessionguard.infrastructure.database.async_db`).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from sessionguard.core.config.settings import Settings, settings as default_settings
from sessionguard.core.exceptions import InvalidCredentialsError, MaxSessionsReachedError
from sessionguard.domain.entities.session import Session
from sessionguard.domain.entities.user import User
from sessionguard.domain.services.auth.session_queries import (
    active_session_clause,
    list_active_sessions,
    mark_sessions_statement,
)
from sessionguard.domain.value_objects.session_info import SessionInfo, SessionLimitResult

logger = get_logger(__name__)


class SessionLimitService:
    """Counts a user's active sessions against the configured maximum."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or default_settings

    @property
    def max_sessions(self) -> int:
        return self._settings.MAX_SESSIONS_PER_USER

    async def check_and_reserve(
        self, user_id: int, current_token_id: Optional[str] = None
    ) -> SessionLimitResult:
        """Report whether ``user_id`` may open another session.

        Read-only: nothing is reserved or mutated here. Issuance repeats the
        check under the per-user lock through `reserve_within`.

        Args:
            user_id: Owner of the sessions.
            current_token_id: Token id of the requesting session, if any, used
                to flag it in the returned list.

        Returns:
            SessionLimitResult: ``allowed`` plus, when refused, the sessions.
        """
        async with self._session_factory() as db:
            sessions = await list_active_sessions(db, user_id)

        if len(sessions) < self.max_sessions:
            return SessionLimitResult(
                allowed=True, active_count=len(sessions), max_sessions=self.max_sessions
            )
        return SessionLimitResult(
            allowed=False,
            active_count=len(sessions),
            max_sessions=self.max_sessions,
            sessions=tuple(SessionInfo.from_entity(s, current_token_id) for s in sessions),
        )

    async def reserve_within(self, db: AsyncSession, user_id: int) -> int:
        """Enforce the limit inside the caller's issuance transaction.

        Must be called before the new Session row is inserted, in the same
        transaction.

        Returns:
            int: The active-session count before the new session.

        Raises:
            MaxSessionsReachedError: If the user is at or over the limit.
            InvalidCredentialsError: If the user row no longer exists.
        """
        owner = await db.execute(select(User.id).where(User.id == user_id).with_for_update())
        if owner.scalar_one_or_none() is None:
            raise InvalidCredentialsError()

        sessions = await list_active_sessions(db, user_id)
        if len(sessions) >= self.max_sessions:
            logger.info(
                "Session limit reached",
                user_id=user_id,
                active_sessions=len(sessions),
                max_sessions=self.max_sessions,
            )
            raise MaxSessionsReachedError(
                sessions=[SessionInfo.from_entity(s) for s in sessions],
                max_sessions=self.max_sessions,
                user_id=user_id,
            )
        return len(sessions)

    async def evict_surplus(self, db: AsyncSession, now: datetime) -> int:
        """Mark the least recently active sessions of users above the limit.

        This is the cleanup-time safety valve for a transiently exceeded cap
        and is never used on the login path. Every eviction is logged.

        Returns:
            int: Number of sessions marked.
        """
        over_limit = await db.execute(
            select(Session.user_id)
            .where(active_session_clause())
            .group_by(Session.user_id)
            .having(func.count() > self.max_sessions)
        )
        evicted = 0
        for user_id in over_limit.scalars().all():
            sessions = await list_active_sessions(db, user_id)
            for surplus in sessions[self.max_sessions:]:
                result = await db.execute(
                    mark_sessions_statement(now, user_id=user_id, session_id=surplus.id)
                )
                evicted += result.rowcount
                logger.warning(
                    "Session evicted by limit safety valve",
                    user_id=user_id,
                    session_id=surplus.id,
                    max_sessions=self.max_sessions,
                )
        return evicted
