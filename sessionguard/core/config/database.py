"""
Database connection settings.
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class DatabaseSettings(BaseSettings):
    """
    Defines settings for connecting to the session/token store.

    PostgreSQL (``postgresql+asyncpg://``) is the production target; SQLite
    (``sqlite+aiosqlite://``) is supported for development and tests.

    Performance Note:
        - Tune DATABASE_POOL_SIZE and DATABASE_MAX_OVERFLOW based on request
          concurrency. Pool settings are ignored for SQLite.
    """
    DATABASE_URL: str = "sqlite+aiosqlite:///./sessionguard.db"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = Field(ge=1, default=5)
    DATABASE_MAX_OVERFLOW: int = Field(ge=0, default=10)
    DATABASE_POOL_TIMEOUT: float = Field(ge=1.0, default=5.0)

    @field_validator("DATABASE_URL")
    @classmethod
    def require_async_driver(cls, v: str) -> str:
        """
        Rejects URLs that point at a synchronous driver.

        Args:
            v: Configured database URL.

        Returns:
            The unchanged URL.
        """
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must use an async driver (postgresql+asyncpg or sqlite+aiosqlite)"
            )
        return v
