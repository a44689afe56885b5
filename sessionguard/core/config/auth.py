"""Authentication, token and session-limit settings.
"""

import logging

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class AuthSettings(BaseSettings):
    """Defines settings for JWT signing, token lifetimes and session management.

    All values are validated when the settings object is built so that an
    impossible configuration fails at startup rather than on the first login.

    Security Note:
        - JWT_SECRET_KEY must be a cryptographically random string of at least
          32 characters and must never be logged or committed.
        - Keep ACCESS_TOKEN_EXPIRE_MINUTES short; revocation of access tokens
          relies on the session lookup performed on every verification.
    """

    # JWT settings
    JWT_SECRET_KEY: SecretStr
    JWT_ALGORITHM: str = Field(default="HS256", pattern="^HS(256|384|512)$")
    JWT_ISSUER: str = "sessionguard"
    JWT_AUDIENCE: str = "sessionguard:api"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(ge=1, default=60)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(ge=1, default=7)
    REFRESH_TOKEN_RETENTION_DAYS: int = Field(ge=1, default=30)

    # Refresh token cookie
    REFRESH_COOKIE_NAME: str = "refresh_token"
    REFRESH_COOKIE_PATH: str = "/api/v1/auth"

    # Session management
    MAX_SESSIONS_PER_USER: int = Field(ge=1, default=3)
    TERMINATION_LOCK_TIMEOUT_SECONDS: float = Field(gt=0, default=5.0)
    SESSION_CLEANUP_INTERVAL_SECONDS: int = Field(ge=1, default=3600)
    CLEANUP_FAILURE_THRESHOLD: int = Field(ge=1, default=5)

    # Password hashing
    BCRYPT_WORK_FACTOR: int = Field(ge=4, le=20, default=12)

    @field_validator("JWT_SECRET_KEY")
    @classmethod
    def _validate_secret_length(cls, v: SecretStr) -> SecretStr:
        """Rejects signing secrets shorter than 32 characters."""
        if len(v.get_secret_value()) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long")
        return v

    @model_validator(mode="after")
    def _validate_token_lifetimes(self) -> "AuthSettings":
        """Ensures refresh tokens outlive the access tokens they renew.

        Returns:
            Self instance once lifetimes are consistent.

        """
        if self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 <= self.ACCESS_TOKEN_EXPIRE_MINUTES:
            error_msg = "REFRESH_TOKEN_EXPIRE_DAYS must be longer than ACCESS_TOKEN_EXPIRE_MINUTES"
            logger.error(error_msg)
            raise ValueError(error_msg)
        return self
