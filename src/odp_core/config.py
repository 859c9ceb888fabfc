"""Application settings loaded from environment variables.

All configuration should be accessed through this module:
    from odp_core.config import get_settings
    settings = get_settings()
"""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ODP Core settings.

    Values are read from the process environment or a local .env file.
    Variable names are case-insensitive and prefixed with ``ODP_``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ODP_",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Database ====================
    database_url: str = Field(
        default="sqlite:///./odp.db",
        description="SQLAlchemy database URL"
    )
    sql_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )

    # ==================== API ====================
    host: str = Field(
        default="0.0.0.0",
        description="Interface the API server binds to"
    )
    port: int = Field(
        default=8000,
        description="Port the API server listens on"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level for the API process"
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins (JSON list in the environment)"
    )


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
