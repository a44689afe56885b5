"""Token issuance, verification, rotation and logout revocation.

`TokenService` is the only writer of refresh-token rows (apart from expiry
bookkeeping in cleanup and the pre-login termination delete). Each token pair
is bound 1:1 to a Session through the ``tid`` claim:

- access token: ``sub`` (user id), ``tid``, ``role``, ``type="access"``;
- refresh token: ``sub``, ``tid``, ``jti`` (= refresh row id), ``type="refresh"``.

Every state change runs in a single transaction owned by the method making it.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Set
from uuid import uuid4

import jwt
from sqlalchemy import false, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from sessionguard.core.config.settings import Settings, settings as default_settings
from sessionguard.core.exceptions import (
    InvalidRefreshTokenError,
    InvalidTokenError,
    SessionNotFoundError,
    TokenExpiredError,
)
from sessionguard.domain.entities.refresh_token import RefreshToken
from sessionguard.domain.entities.session import Session
from sessionguard.domain.entities.user import Role, User
from sessionguard.domain.services.auth.session_limit import SessionLimitService
from sessionguard.domain.services.auth.session_queries import (
    active_session_clause,
    mark_sessions_statement,
)
from sessionguard.domain.value_objects.device import DeviceDescriptor
from sessionguard.domain.value_objects.jwt_token import IssuedTokens, TokenClaims, TokenId
from sessionguard.utils.security import mask_identifier
from sessionguard.utils.time import utcnow

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenService:
    """Creates, verifies and rotates token pairs bound to sessions.

    Args:
        session_factory: Factory for the transactions this service owns.
        limit_service: Enforces the session cap inside `issue`.
        settings: Signing keys and lifetimes.
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
        self._pending_activity: Set[asyncio.Task] = set()
        self.logout_verification_failures = 0

    # ------------------------------------------------------------------
    # Signing helpers
    # ------------------------------------------------------------------

    @property
    def _secret(self) -> str:
        return self._settings.JWT_SECRET_KEY.get_secret_value()

    def _encode(self, payload: Dict[str, Any]) -> str:
        return jwt.encode(payload, self._secret, algorithm=self._settings.JWT_ALGORITHM)

    def _decode(self, token: str, expected_type: str, verify_exp: bool = True) -> Dict[str, Any]:
        payload = jwt.decode(
            token,
            self._secret,
            algorithms=[self._settings.JWT_ALGORITHM],
            audience=self._settings.JWT_AUDIENCE,
            issuer=self._settings.JWT_ISSUER,
            options={"require": ["exp", "iat", "sub", "tid", "type"], "verify_exp": verify_exp},
        )
        if payload.get("type") != expected_type:
            raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
        return payload

    def create_access_token(
        self,
        user_id: int,
        token_id: str,
        role: Role,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Sign an access token for an existing session.

        Args:
            user_id: Owner of the session.
            token_id: Correlation id of the session.
            role: Role embedded for authorization checks.
            expires_delta: Lifetime override; defaults to
                ``ACCESS_TOKEN_EXPIRE_MINUTES``.

        Returns:
            str: The encoded JWT.
        """
        now = utcnow()
        lifetime = expires_delta or timedelta(minutes=self._settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        payload = {
            "sub": str(user_id),
            "tid": token_id,
            "role": Role(role).value,
            "type": ACCESS_TOKEN_TYPE,
            "jti": str(uuid4()),
            "iss": self._settings.JWT_ISSUER,
            "aud": self._settings.JWT_AUDIENCE,
            "iat": now,
            "exp": now + lifetime,
        }
        token = self._encode(payload)
        logger.debug("Access token created", user_id=user_id, token_id=mask_identifier(token_id))
        return token

    def create_refresh_token(
        self, user_id: int, token_id: str, refresh_id: str, expires_at: datetime
    ) -> str:
        payload = {
            "sub": str(user_id),
            "tid": token_id,
            "type": REFRESH_TOKEN_TYPE,
            "jti": refresh_id,
            "iss": self._settings.JWT_ISSUER,
            "aud": self._settings.JWT_AUDIENCE,
            "iat": utcnow(),
            "exp": expires_at,
        }
        return self._encode(payload)

    def _sign_pair(
        self,
        user_id: int,
        role: Role,
        token_id: str,
        session_id: str,
        refresh_id: str,
        refresh_expires_at: datetime,
    ) -> IssuedTokens:
        return IssuedTokens(
            access_token=self.create_access_token(user_id, token_id, role),
            refresh_token=self.create_refresh_token(user_id, token_id, refresh_id, refresh_expires_at),
            token_id=token_id,
            session_id=session_id,
            expires_in=self._settings.access_token_lifetime_seconds,
            refresh_expires_at=refresh_expires_at,
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    async def issue(self, user: User, device: DeviceDescriptor) -> IssuedTokens:
        """Create a session and its token pair for an authenticated user.

        The session-limit check, the Session insert and the RefreshToken
        insert share one transaction, serialized per user.

        Args:
            user: The authenticated, active user.
            device: Validated descriptor of the requesting device.

        Returns:
            IssuedTokens: The signed pair with ``token_id`` and ``session_id``.

        Raises:
            MaxSessionsReachedError: If the user is at the session cap.
        """
        token_id = str(TokenId.generate())
        now = utcnow()
        refresh_expires_at = now + timedelta(days=self._settings.REFRESH_TOKEN_EXPIRE_DAYS)

        async with self._session_factory() as db, db.begin():
            await self._limits.reserve_within(db, user.id)
            session = Session(
                user_id=user.id,
                token_id=token_id,
                device_type=device.type,
                device_name=device.friendly_name,
                browser=device.browser,
                os=device.os,
                last_ip=device.ip,
                created_at=now,
                last_active=now,
            )
            refresh = RefreshToken(
                token_id=token_id,
                user_id=user.id,
                expires_at=refresh_expires_at,
                created_at=now,
            )
            db.add_all([session, refresh])

        logger.info(
            "Session created",
            user_id=user.id,
            session_id=session.id,
            token_id=mask_identifier(token_id),
            device=device.friendly_name,
        )
        return self._sign_pair(user.id, user.role, token_id, session.id, refresh.id, refresh_expires_at)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    async def verify(self, access_token: str, client_ip: Optional[str] = None) -> TokenClaims:
        """Verify an access token and confirm its session is still live.

        On success an activity update for the session is scheduled in the
        background; it never delays or fails this call.

        Args:
            access_token: Encoded bearer token.
            client_ip: Address of the requesting client, recorded as ``last_ip``.

        Returns:
            TokenClaims: ``user_id``, ``token_id`` and ``role``.

        Raises:
            InvalidTokenError: Bad signature, format or token type.
            TokenExpiredError: Token is past its expiry; its session is marked
                for deletion before this is raised.
            SessionNotFoundError: The session was terminated server-side.
        """
        try:
            payload = self._decode(access_token, ACCESS_TOKEN_TYPE)
            claims = TokenClaims.from_payload(payload)
        except jwt.ExpiredSignatureError as exc:
            await self._expire_session_for(access_token)
            raise TokenExpiredError() from exc
        except (jwt.PyJWTError, ValueError) as exc:
            logger.warning("Access token rejected", reason=str(exc))
            raise InvalidTokenError() from exc

        async with self._session_factory() as db:
            result = await db.execute(
                select(Session.id).where(
                    Session.token_id == claims.token_id,
                    Session.user_id == claims.user_id,
                    active_session_clause(),
                )
            )
            session_id = result.scalar_one_or_none()

        if session_id is None:
            logger.info(
                "Access token for terminated session",
                user_id=claims.user_id,
                token_id=mask_identifier(claims.token_id),
            )
            raise SessionNotFoundError()

        self._schedule_activity_update(session_id, client_ip)
        return claims

    async def _expire_session_for(self, access_token: str) -> None:
        """Mark the session of an expired access token and revoke its refresh token.

        Best effort: failures are logged and never replace the expiry error.
        """
        try:
            payload = self._decode(access_token, ACCESS_TOKEN_TYPE, verify_exp=False)
            claims = TokenClaims.from_payload(payload)
        except (jwt.PyJWTError, ValueError):
            return

        now = utcnow()
        try:
            async with self._session_factory() as db, db.begin():
                marked = await db.execute(
                    mark_sessions_statement(now, user_id=claims.user_id, token_id=claims.token_id)
                )
                await db.execute(self._revoke_statement(claims.user_id, claims.token_id))
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to expire session for expired access token",
                user_id=claims.user_id,
                error=str(exc),
            )
            return
        logger.info(
            "Session marked after access token expiry",
            user_id=claims.user_id,
            token_id=mask_identifier(claims.token_id),
            marked=marked.rowcount,
        )

    def _schedule_activity_update(self, session_id: str, client_ip: Optional[str]) -> None:
        task = asyncio.create_task(self._record_activity(session_id, client_ip))
        self._pending_activity.add(task)
        task.add_done_callback(self._pending_activity.discard)

    async def _record_activity(self, session_id: str, client_ip: Optional[str]) -> None:
        now = utcnow()
        values: Dict[str, Any] = {"activity_count": Session.activity_count + 1}
        if client_ip:
            values["last_ip"] = client_ip
        try:
            async with self._session_factory() as db, db.begin():
                await db.execute(
                    update(Session)
                    .where(Session.id == session_id, active_session_clause())
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                # Only ever move last_active forward.
                await db.execute(
                    update(Session)
                    .where(Session.id == session_id, Session.last_active < now)
                    .values(last_active=now)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            logger.warning("Session activity update failed", session_id=session_id, error=str(exc))

    async def drain_activity_updates(self) -> None:
        """Wait for scheduled activity updates; used on shutdown and in tests."""
        while True:
            pending = [task for task in self._pending_activity if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Rotate
    # ------------------------------------------------------------------

    async def rotate(self, refresh_token: str) -> IssuedTokens:
        """Exchange a refresh token for a new pair, at most once.

        The stored row is locked, checked for ``NOT is_revoked AND
        expires_at > now`` and revoked with a conditional update; the new row
        is inserted and the session moved to a new token id, all in one
        transaction. A concurrent rotation of the same token observes the
        revocation and fails.

        Raises:
            InvalidRefreshTokenError: Token invalid, expired, revoked, already
                rotated, or its session/user is no longer active.
        """
        try:
            payload = self._decode(refresh_token, REFRESH_TOKEN_TYPE)
            user_id = int(payload["sub"])
            old_token_id = str(payload["tid"])
            refresh_id = str(payload["jti"])
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Refresh token rejected", reason=str(exc))
            raise InvalidRefreshTokenError() from exc

        now = utcnow()
        new_token_id = str(TokenId.generate())
        refresh_expires_at = now + timedelta(days=self._settings.REFRESH_TOKEN_EXPIRE_DAYS)

        async with self._session_factory() as db, db.begin():
            stored = await db.execute(
                select(RefreshToken.id)
                .where(
                    RefreshToken.id == refresh_id,
                    RefreshToken.token_id == old_token_id,
                    RefreshToken.user_id == user_id,
                    RefreshToken.is_revoked == false(),
                    RefreshToken.expires_at > now,
                )
                .with_for_update()
            )
            if stored.scalar_one_or_none() is None:
                logger.warning(
                    "Refresh token reuse or expiry detected",
                    user_id=user_id,
                    token_id=mask_identifier(old_token_id),
                )
                raise InvalidRefreshTokenError()

            session_row = await db.execute(
                select(Session)
                .where(
                    Session.token_id == old_token_id,
                    Session.user_id == user_id,
                    active_session_clause(),
                )
                .with_for_update()
            )
            session = session_row.scalars().first()
            user = await db.get(User, user_id)
            if session is None or user is None or not user.is_active:
                logger.warning("Refresh token for inactive session or user", user_id=user_id)
                raise InvalidRefreshTokenError()

            revoked = await db.execute(
                update(RefreshToken)
                .where(RefreshToken.id == refresh_id, RefreshToken.is_revoked == false())
                .values(is_revoked=True)
                .execution_options(synchronize_session=False)
            )
            if revoked.rowcount != 1:
                raise InvalidRefreshTokenError()

            replacement = RefreshToken(
                token_id=new_token_id,
                user_id=user_id,
                expires_at=refresh_expires_at,
                created_at=now,
            )
            db.add(replacement)
            session.token_id = new_token_id
            role = user.role
            session_id = session.id

        logger.info(
            "Refresh token rotated",
            user_id=user_id,
            session_id=session_id,
            token_id=mask_identifier(new_token_id),
        )
        return self._sign_pair(user_id, role, new_token_id, session_id, replacement.id, refresh_expires_at)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    @staticmethod
    def _revoke_statement(user_id: int, token_id: str):
        return (
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.token_id == token_id,
                RefreshToken.is_revoked == false(),
            )
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )

    async def revoke_for_logout(self, user_id: int, token_id: str) -> bool:
        """Mark the session and revoke its refresh token in one transaction.

        Idempotent: logging out an already logged-out session succeeds. After
        the commit both effects are re-read; a missing effect is reported as
        an error-level log event but does not fail the logout.

        Returns:
            bool: Always ``True`` once the transaction committed.
        """
        now = utcnow()
        async with self._session_factory() as db, db.begin():
            marked = await db.execute(mark_sessions_statement(now, user_id=user_id, token_id=token_id))
            revoked = await db.execute(self._revoke_statement(user_id, token_id))

        logger.info(
            "User logged out",
            user_id=user_id,
            token_id=mask_identifier(token_id),
            sessions_marked=marked.rowcount,
            tokens_revoked=revoked.rowcount,
        )
        await self._verify_logout(user_id, token_id)
        return True

    async def _verify_logout(self, user_id: int, token_id: str) -> None:
        try:
            async with self._session_factory() as db:
                live_sessions = await db.execute(
                    select(func.count())
                    .select_from(Session)
                    .where(Session.user_id == user_id, Session.token_id == token_id, active_session_clause())
                )
                live_tokens = await db.execute(
                    select(func.count())
                    .select_from(RefreshToken)
                    .where(
                        RefreshToken.user_id == user_id,
                        RefreshToken.token_id == token_id,
                        RefreshToken.is_revoked == false(),
                    )
                )
                remaining = (live_sessions.scalar_one(), live_tokens.scalar_one())
        except SQLAlchemyError as exc:
            self.logout_verification_failures += 1
            logger.error("Logout verification failed", user_id=user_id, error=str(exc))
            return

        if any(remaining):
            self.logout_verification_failures += 1
            logger.error(
                "Logout verification failed",
                user_id=user_id,
                token_id=mask_identifier(token_id),
                live_sessions=remaining[0],
                live_refresh_tokens=remaining[1],
            )
