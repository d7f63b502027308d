"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.datetime_utils import resolve_timezone
from ..domain.shared.messages import ErrorMessages
from ..domain.shared.types import BusyTimeoutMs, ConnectionTimeoutS, ObserverBufferSize, RetryAttempts


class DatabaseSettings(BaseModel):
    """Database configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(
        default="sqlite:///data/song_requests.db",
        validation_alias=AliasChoices("url", "database_url", "db_url"),
    )
    busy_timeout_ms: BusyTimeoutMs = Field(
        default=5000,
        validation_alias=AliasChoices("busy_timeout_ms", "busy_timeout"),
    )
    connection_timeout_s: ConnectionTimeoutS = Field(
        default=10,
        validation_alias=AliasChoices("connection_timeout_s", "connection_timeout"),
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if v != ":memory:" and not v.startswith("sqlite://"):
            raise ValueError(ErrorMessages.INVALID_DATABASE_URL)
        return v


class QueueSettings(BaseModel):
    """Queue engine behaviour."""

    model_config = SettingsConfigDict(frozen=True)

    history_window: int = Field(default=50, ge=1, le=1000)
    persist_retry_attempts: RetryAttempts = 3
    persist_retry_delay_s: float = Field(default=0.05, ge=0.0, le=5.0)
    duplicate_cooldown_minutes: int = Field(default=0, ge=0)


class LimitSettings(BaseModel):
    """Per request type admission limits."""

    model_config = SettingsConfigDict(frozen=True)

    donation_max_duration_s: int = Field(default=600, ge=1)
    channel_points_max_duration_s: int = Field(default=300, ge=1)
    channel_points_one_in_queue: bool = True


class BroadcastSettings(BaseModel):
    """Push channel configuration."""

    model_config = SettingsConfigDict(frozen=True)

    observer_buffer_size: ObserverBufferSize = 100
    stats_interval_s: float = Field(default=30.0, gt=0.0)


class ServerSettings(BaseModel):
    """HTTP/WebSocket server configuration."""

    model_config = SettingsConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = Field(default=3002, ge=1, le=65535)
    cors_origins: tuple[str, ...] = ("*",)
    resolve_metadata: bool = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v: str | list[str] | tuple[str, ...]) -> tuple[str, ...]:
        """Accept a comma-separated string as well as a JSON array."""
        if isinstance(v, str):
            return tuple(o.strip() for o in v.split(",") if o.strip())
        return tuple(v)


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL, TIMEZONE (top-level)
    - DATABASE__URL, QUEUE__HISTORY_WINDOW, BROADCAST__OBSERVER_BUFFER_SIZE, ...
      (nested, double underscore)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    timezone: str = "UTC"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    limits: LimitSettings = Field(default_factory=LimitSettings)
    broadcast: BroadcastSettings = Field(default_factory=BroadcastSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels))
        return v_upper

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the timezone is a known IANA name."""
        resolve_timezone(v)
        return v

    @property
    def zone(self) -> ZoneInfo:
        return resolve_timezone(self.timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
