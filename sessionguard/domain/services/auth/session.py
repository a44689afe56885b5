import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, false, func, or_, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from sessionguard.core.config.settings import Settings, settings as default_settings
from sessionguard.core.exceptions import SessionNotFoundError
from sessionguard.domain.entities.refresh_token import RefreshToken
from sessionguard.domain.entities.session import Session
from sessionguard.domain.services.auth.session_limit import SessionLimitService
from sessionguard.domain.services.auth.session_queries import (
    active_session_clause,
    count_active_sessions,
    list_active_sessions,
    mark_sessions_statement,
)
from sessionguard.domain.value_objects.session_info import CleanupResult, SessionInfo, TerminationResult
from sessionguard.utils.time import utcnow

logger = get_logger(__name__)

RECENT_ACTIVITY_WINDOW = timedelta(hours=1)


class SessionLifecycleService:
    """Soft deletion, listing and periodic reconciliation of sessions.

    Sessions are terminated in two steps: `mark_for_deletion` tags the row so
    it immediately stops counting toward the limit and disappears from
    listings, and `cleanup` hard-deletes tagged rows later together with
    sessions whose refresh token is revoked or expired. This service is the
    only component that hard-deletes Session rows outside of the creation and
    pre-login termination paths.

    The service also keeps the cleanup metrics behind the health endpoint.
    Metrics live on the instance, so each application (or test) owns its own.

    Attributes:
        error_count (int): Cleanup failures since startup.
        consecutive_failures (int): Failures since the last successful pass.

    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        limit_service: SessionLimitService,
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._limits = limit_service
        self._settings = settings or default_settings
        self.error_count = 0
        self.consecutive_failures = 0
        self.cleanup_runs = 0
        self.last_cleanup_at: Optional[datetime] = None
        self.last_cleanup_duration_ms: Optional[float] = None
        self.last_cleanup_result: Optional[CleanupResult] = None

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def mark_for_deletion(
        self, session_id: str, user_id: int, require_existing: bool = False
    ) -> bool:
        """Tag one session of ``user_id`` as marked for deletion.

        Ownership is enforced by the UPDATE itself: only a row matching both
        ``session_id`` and ``user_id`` can be tagged.

        Args:
            session_id: The session to mark.
            user_id: The owner requesting the change.
            require_existing: Raise instead of returning ``False`` when no
                active session matches.

        Returns:
            bool: Whether a row was marked.

        Raises:
            SessionNotFoundError: If ``require_existing`` and nothing matched.
        """
        async with self._session_factory() as db, db.begin():
            marked = await self._mark(db, session_id, user_id, require_existing)
        return marked

    async def terminate_session(self, user_id: int, session_id: str) -> TerminationResult:
        """Terminate one of the caller's own sessions.

        Returns:
            TerminationResult: The session id and the remaining active count.

        Raises:
            SessionNotFoundError: If the session does not exist, is already
                terminated, or belongs to another user.
        """
        async with self._session_factory() as db, db.begin():
            await self._mark(db, session_id, user_id, require_existing=True)
            remaining = await count_active_sessions(db, user_id)

        await logger.ainfo(
            "Session terminated", user_id=user_id, session_id=session_id, remaining_sessions=remaining
        )
        return TerminationResult(session_id=session_id, remaining_sessions=remaining)

    async def _mark(self, db: AsyncSession, session_id: str, user_id: int, require_existing: bool) -> bool:
        result = await db.execute(mark_sessions_statement(utcnow(), user_id=user_id, session_id=session_id))
        if result.rowcount == 0:
            await logger.adebug("No active session to mark", user_id=user_id, session_id=session_id)
            if require_existing:
                raise SessionNotFoundError()
            return False
        await logger.ainfo("Session marked for deletion", user_id=user_id, session_id=session_id)
        return True

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def get_user_sessions(
        self, user_id: int, current_token_id: Optional[str] = None
    ) -> List[SessionInfo]:
        """Active sessions of a user, most recently active first.

        Args:
            user_id: Owner of the sessions.
            current_token_id: Token id of the requesting session, flagged as
                ``is_current`` in the result.
        """
        async with self._session_factory() as db:
            sessions = await list_active_sessions(db, user_id)
        return [SessionInfo.from_entity(s, current_token_id) for s in sessions]

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self) -> CleanupResult:
        """Run one reconciliation pass in a single transaction.

        Phases, in order:

        1. sessions above a user's limit are marked, least recently active
           first (safety valve, logged);
        2. marked sessions are hard-deleted;
        3. refresh tokens past ``expires_at`` are revoked;
        4. sessions without a usable refresh token are hard-deleted;
        5. revoked or expired refresh tokens older than the retention window
           are purged.

        A second call with no intervening writes deletes nothing.

        Returns:
            CleanupResult: Row counts per category.

        Raises:
            SQLAlchemyError: If the pass fails; nothing from it is applied.
        """
        started = time.perf_counter()
        now = utcnow()
        retention_cutoff = now - timedelta(days=self._settings.REFRESH_TOKEN_RETENTION_DAYS)
        try:
            async with self._session_factory() as db, db.begin():
                evicted = await self._limits.evict_surplus(db, now)

                marked = await db.execute(
                    delete(Session)
                    .where(Session.is_marked_for_deletion == true())
                    .execution_options(synchronize_session=False)
                )

                expired_tokens = await db.execute(
                    update(RefreshToken)
                    .where(RefreshToken.is_revoked == false(), RefreshToken.expires_at <= now)
                    .values(is_revoked=True)
                    .execution_options(synchronize_session=False)
                )

                usable_tokens = select(RefreshToken.token_id).where(
                    RefreshToken.is_revoked == false(), RefreshToken.expires_at > now
                )
                expired_sessions = await db.execute(
                    delete(Session)
                    .where(Session.token_id.not_in(usable_tokens))
                    .execution_options(synchronize_session=False)
                )

                purged = await db.execute(
                    delete(RefreshToken)
                    .where(
                        or_(RefreshToken.is_revoked == true(), RefreshToken.expires_at <= now),
                        RefreshToken.created_at < retention_cutoff,
                    )
                    .execution_options(synchronize_session=False)
                )
        except Exception as exc:
            self.error_count += 1
            self.consecutive_failures += 1
            await logger.aerror(
                "Session cleanup failed",
                error=str(exc),
                error_count=self.error_count,
                consecutive_failures=self.consecutive_failures,
            )
            raise

        result = CleanupResult(
            expired_tokens=expired_tokens.rowcount,
            expired_sessions=expired_sessions.rowcount,
            marked_sessions=marked.rowcount,
            evicted_sessions=evicted,
            purged_tokens=purged.rowcount,
        )
        self.cleanup_runs += 1
        self.consecutive_failures = 0
        self.last_cleanup_at = now
        self.last_cleanup_duration_ms = round((time.perf_counter() - started) * 1000, 3)
        self.last_cleanup_result = result
        await logger.ainfo(
            "Session cleanup completed",
            duration_ms=self.last_cleanup_duration_ms,
            **result.to_dict(),
        )
        return result

    async def run_scheduled_cleanup(self) -> Optional[CleanupResult]:
        """Cleanup entry point for the scheduler; never raises.

        Failures are already logged and counted by `cleanup`; the next tick
        retries.
        """
        try:
            return await self.cleanup()
        except Exception:
            return None

    # ------------------------------------------------------------------
    # Health & metrics
    # ------------------------------------------------------------------

    @property
    def is_healthy(self) -> bool:
        return self.consecutive_failures < self._settings.CLEANUP_FAILURE_THRESHOLD

    async def get_metrics(self) -> Dict[str, Any]:
        """Session counts plus the bookkeeping of the last cleanup pass."""
        since = utcnow() - RECENT_ACTIVITY_WINDOW
        async with self._session_factory() as db:
            active = await db.execute(
                select(func.count()).select_from(Session).where(active_session_clause())
            )
            recent = await db.execute(
                select(func.count())
                .select_from(Session)
                .where(active_session_clause(), Session.last_active >= since)
            )
            active_sessions, recently_active = active.scalar_one(), recent.scalar_one()

        return {
            "active_sessions": int(active_sessions),
            "recently_active_sessions": int(recently_active),
            "cleanup_runs": self.cleanup_runs,
            "last_cleanup_at": self.last_cleanup_at.isoformat() if self.last_cleanup_at else None,
            "last_cleanup_duration_ms": self.last_cleanup_duration_ms,
            "last_cleanup_result": self.last_cleanup_result.to_dict() if self.last_cleanup_result else None,
            "error_count": self.error_count,
            "consecutive_failures": self.consecutive_failures,
        }

    def check_health(self, job_running: Optional[bool] = None) -> Dict[str, Any]:
        """Report ``unhealthy`` after too many consecutive cleanup failures."""
        return {
            "status": "healthy" if self.is_healthy else "unhealthy",
            "last_cleanup_at": self.last_cleanup_at.isoformat() if self.last_cleanup_at else None,
            "error_count": self.error_count,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self._settings.CLEANUP_FAILURE_THRESHOLD,
            "cleanup_job_running": job_running,
        }
