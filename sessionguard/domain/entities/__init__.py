"""Persistence entities; importing this package registers every table on ``SQLModel.metadata``."""

from .refresh_token import RefreshToken
from .session import Session
from .user import Role, User

__all__ = ["RefreshToken", "Role", "Session", "User"]
