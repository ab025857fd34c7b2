"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"


class Settings(BaseSettings):
    """Application configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        description="Database connection URL used by SQLAlchemy to connect to the DB",
        min_length=1,
    )
    secret_key: str = Field(
        default="change-me",
        description="Key used to verify bearer tokens issued by the identity provider",
        min_length=1,
    )
    jwt_algorithm: str = Field(default="HS256", description="Bearer token algorithm")
    app_timezone: str | None = Field(
        default=None,
        description="IANA timezone name or UTC offset used for persisted timestamps",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to call the API from a browser",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    realtime_ttl_seconds: float = Field(
        default=90.0,
        description="Seconds without a heartbeat after which a live connection is offline",
        gt=0,
    )
    realtime_sweep_interval_seconds: float = Field(
        default=30.0,
        description="Seconds between registry sweeps of stale connections",
        gt=0,
    )
    fetch_max_retries: int = Field(
        default=3, description="Automatic retries after a store outage", ge=0
    )
    fetch_retry_delay_seconds: float = Field(
        default=5.0, description="Delay before an automatic retry", ge=0
    )
    cache_freshness_seconds: float = Field(
        default=600.0, description="Lifetime of cached fetch snapshots", gt=0
    )
    notification_log_buffer_size: int = Field(
        default=500,
        description="Number of recent notification pipeline log records kept in memory",
        gt=0,
    )

    @model_validator(mode="after")
    def _validate_sweep_interval(self) -> "Settings":
        if self.realtime_sweep_interval_seconds > self.realtime_ttl_seconds:
            raise ValueError(
                "REALTIME_SWEEP_INTERVAL_SECONDS must not exceed REALTIME_TTL_SECONDS"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
