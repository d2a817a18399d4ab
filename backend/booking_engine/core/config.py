"""Application configuration via pydantic settings."""

from functools import lru_cache
from pathlib import Path

from typing import Any

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = Field("Booking Capacity Engine", alias="APP_NAME")
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int | None = Field(default=None, alias="SMTP_PORT")
    smtp_username: str | None = Field(default=None, alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_from: str | None = Field(default=None, alias="SMTP_FROM")
    notification_email: str | None = Field(default=None, alias="NOTIFICATION_EMAIL")

    whatsapp_webhook_url: str | None = Field(default=None, alias="WHATSAPP_WEBHOOK_URL")
    whatsapp_timeout_seconds: float = Field(5.0, alias="WHATSAPP_TIMEOUT_SECONDS")
    notification_breaker_threshold: int = Field(
        3, alias="NOTIFICATION_BREAKER_THRESHOLD"
    )
    notification_breaker_ttl_seconds: int = Field(
        300, alias="NOTIFICATION_BREAKER_TTL_SECONDS"
    )

    depot_latitude: float = Field(40.337478, alias="DEPOT_LATITUDE")
    depot_longitude: float = Field(-74.756138, alias="DEPOT_LONGITUDE")
    service_radius_miles: float = Field(25.0, alias="SERVICE_RADIUS_MILES")
    zone_ring_miles: float = Field(10.0, alias="ZONE_RING_MILES")

    schedule_timezone: str = Field("UTC", alias="SCHEDULE_TIMEZONE")
    slot_length_minutes: int = Field(120, alias="SLOT_LENGTH_MINUTES")
    max_advance_days: int = Field(30, alias="MAX_ADVANCE_DAYS")

    precheck_timeout_seconds: float = Field(5.0, alias="PRECHECK_TIMEOUT_SECONDS")
    commit_timeout_seconds: float = Field(10.0, alias="COMMIT_TIMEOUT_SECONDS")

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")

    rate_limit_default: str = Field("100/minute", alias="RATE_LIMIT_DEFAULT")
    rate_limit_booking: str = Field("20/minute", alias="RATE_LIMIT_BOOKING")

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
    )

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("slot_length_minutes")
    @classmethod
    def _positive_slot_length(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("SLOT_LENGTH_MINUTES must be positive")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
