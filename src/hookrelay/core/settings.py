# src/hookrelay/core/settings.py
"""Application settings and configuration.

This module defines all configuration options for the Hook Relay service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Hook Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Session token signing
    jwt_secret: str = Field(alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    session_ttl_days: int = Field(default=7, alias="SESSION_TTL_DAYS")
    session_cookie_name: str = Field(default="token", alias="SESSION_COOKIE_NAME")

    # Database configuration
    database_url: str = Field(default="sqlite:///./data/relay.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Upstream (Discord) credentials for the primary bot
    discord_token: str | None = Field(default=None, alias="DISCORD_TOKEN")
    discord_client_id: str | None = Field(default=None, alias="DISCORD_CLIENT_ID")
    admin_user_id: str | None = Field(default=None, alias="ADMIN_USER_ID")

    # Member lookup cache (seconds)
    member_cache_ttl_seconds: float = Field(default=300.0, alias="MEMBER_CACHE_TTL_SECONDS")
    member_fail_ttl_seconds: float = Field(default=60.0, alias="MEMBER_FAIL_TTL_SECONDS")
    member_cache_max_entries: int = Field(default=10_000, alias="MEMBER_CACHE_MAX_ENTRIES")

    # Outbound delivery pacing
    send_spacing_seconds: float = Field(default=0.2, alias="SEND_SPACING_SECONDS")
    queue_idle_seconds: float = Field(default=10.0, alias="QUEUE_IDLE_SECONDS")

    # Per-subscriber send throttle
    send_rate_limit: int = Field(default=5, alias="SEND_RATE_LIMIT")
    send_rate_window_seconds: float = Field(default=10.0, alias="SEND_RATE_WINDOW_SECONDS")

    reply_lookup_timeout_seconds: float = Field(
        default=2.0,
        alias="REPLY_LOOKUP_TIMEOUT_SECONDS",
    )
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")
    webhook_name: str = Field(default="Relay Hook", alias="WEBHOOK_NAME")
    message_page_limit: int = Field(default=100, alias="MESSAGE_PAGE_LIMIT")

    # CORS configuration for the browser client
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:5173"],
        alias="ALLOWED_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Accept a comma separated list as well as JSON."""
        if isinstance(value, str) and not value.lstrip().startswith("["):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def session_ttl_seconds(self) -> int:
        """Return the lifetime of an issued session token in seconds."""
        return self.session_ttl_days * 24 * 60 * 60


settings = Settings()  # type: ignore[call-arg]
