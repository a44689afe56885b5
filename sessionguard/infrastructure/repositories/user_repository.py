"""User Repository implementation using SQLAlchemy.

Implements the Credential Store port on top of the `users` table. Every method
opens and commits its own transaction through the injected session factory.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from sessionguard.domain.entities.user import User
from sessionguard.domain.interfaces.repositories import IUserRepository
from sessionguard.utils.time import utcnow

logger = get_logger(__name__)


def normalize_username(username: str) -> str:
    """Usernames are stored and compared trimmed and lower-case."""
    return username.strip().lower()


class UserRepository(IUserRepository):
    """SQLAlchemy implementation of `IUserRepository`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by primary key.

        Raises:
            ValueError: If user_id is not a positive integer.
        """
        if user_id <= 0:
            logger.warning("Invalid user ID provided", user_id=user_id)
            raise ValueError("User ID must be a positive integer")

        async with self._session_factory() as db:
            result = await db.execute(select(User).where(User.id == user_id))
            user = result.scalars().first()
        logger.debug("User lookup by ID completed", user_id=user_id, found=user is not None)
        return user

    async def get_by_username(self, username: str) -> Optional[User]:
        normalized = normalize_username(username)
        if not normalized:
            return None

        async with self._session_factory() as db:
            result = await db.execute(select(User).where(func.lower(User.username) == normalized))
            user = result.scalars().first()
        logger.debug("User lookup by username completed", found=user is not None)
        return user

    async def save(self, user: User) -> User:
        user.username = normalize_username(user.username)
        async with self._session_factory() as db, db.begin():
            merged = await db.merge(user)
            await db.flush()
            await db.refresh(merged)
        logger.info("User saved", user_id=merged.id)
        return merged

    async def record_failed_login(self, user_id: int) -> None:
        async with self._session_factory() as db, db.begin():
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(failed_login_attempts=User.failed_login_attempts + 1, updated_at=utcnow())
            )
        logger.debug("Failed login recorded", user_id=user_id)

    async def record_successful_login(self, user_id: int) -> None:
        now = utcnow()
        async with self._session_factory() as db, db.begin():
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(failed_login_attempts=0, last_login_at=now, updated_at=now)
            )
