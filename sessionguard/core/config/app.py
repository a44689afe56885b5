"""
Application-specific settings.
"""
from typing import List, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """
    Defines application-wide settings like project name, environment and logging.

    Security Note:
        - DEBUG must stay disabled in production.
        - Ensure ALLOWED_ORIGINS is explicitly set to trusted domains in production,
          since the refresh cookie is sent with credentialed requests.
    """
    PROJECT_NAME: str = "sessionguard"
    VERSION: str = "0.1.0"
    APP_ENV: str = Field(default="development", pattern="^(development|staging|production|test)$")
    DEBUG: bool = False

    API_HOST: str = "0.0.0.0"
    API_PORT: int = Field(ge=1, le=65535, default=8000)

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    ALLOWED_ORIGINS: Union[str, List[str]] = Field(default="http://0.0.0.0:8000")

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """
        Upper-cases the log level and rejects unknown level names.

        Args:
            v: Raw level name from the environment.

        Returns:
            Normalized level name.
        """
        level = str(v).strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {v}")
        return level

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """
        Splits a comma-separated string of origins into a list.
        """
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v
