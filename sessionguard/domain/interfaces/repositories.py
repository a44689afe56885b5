"""Repository interfaces for abstracting data persistence in the domain layer.

The Credential Store is consumed by the login path through this port; the
concrete SQL implementation lives in `sessionguard.infrastructure`.
"""

from abc import ABC, abstractmethod
from typing import Optional

from sessionguard.domain.entities.user import User


class IUserRepository(ABC):
    """An interface defining the contract for user persistence operations.

    Each method runs in its own transaction.
    """

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Retrieves a user by their unique identifier.

        Args:
            user_id: The unique integer ID of the user.

        Returns:
            An optional `User` entity. Returns `None` if no user is found.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[User]:
        """Retrieves a user by their username (case-insensitively).

        Args:
            username: The username to search for.

        Returns:
            An optional `User` entity. Returns `None` if no user is found.
        """
        raise NotImplementedError

    @abstractmethod
    async def save(self, user: User) -> User:
        """Inserts or updates a user and returns the persisted entity."""
        raise NotImplementedError

    @abstractmethod
    async def record_failed_login(self, user_id: int) -> None:
        """Increments the user's consecutive failed-login counter."""
        raise NotImplementedError

    @abstractmethod
    async def record_successful_login(self, user_id: int) -> None:
        """Resets the failed-login counter and stamps the last login time."""
        raise NotImplementedError
