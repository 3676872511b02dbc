"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for the scheduling service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./studio.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether the service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="30/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    log_dir: str = Field(default="logs", description="Directory (relative to the project root) for audit logs")

    defaults_cache_ttl: int = Field(
        default=0,
        ge=0,
        description="TTL (s) for cached studio defaults on the defaults endpoint. 0 reads the row every time.",
    )
    default_session_length_hours: int = Field(
        default=2,
        gt=0,
        description="Session length seeded for studios without a defaults row.",
    )
    default_buffer_minutes: int = Field(
        default=0,
        ge=0,
        description="Buffer minutes seeded for studios without a defaults row.",
    )
    default_timezone: Optional[str] = Field(
        default=None,
        description="IANA zone used when a studio has none. Unset means the server's local zone.",
    )

    recently_finished_window_days: int = Field(default=14, description="Trailing days shown as recently finished")
    listing_window_past_days: int = Field(default=30, description="Days before today loaded for bucketing")
    listing_window_future_days: int = Field(default=180, description="Days after today loaded for bucketing")
    active_bucket_limit: int = 5
    upcoming_bucket_limit: int = 10
    recent_bucket_limit: int = 12
    expanded_bucket_limit: int = 60

    sessions_service_port: int = 8003


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
