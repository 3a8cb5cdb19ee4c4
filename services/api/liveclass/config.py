"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APNS_PRODUCTION_URL = "https://api.push.apple.com"
APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App
    app_name: str = "LiveClass"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    allowed_origins: str = "http://localhost:3000"

    # Operational endpoints (start/update/end, stats, cleanup). Empty = open.
    admin_api_key: SecretStr = SecretStr("")

    # Token storage
    token_store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "liveclass"
    token_ttl_days: int = 30

    # APNs provider credentials
    apns_key_path: str = ""  # Path to the .p8 signing key
    apns_private_key: SecretStr = SecretStr("")  # Inline PEM, wins over apns_key_path
    apns_key_id: str = ""
    apns_team_id: str = ""
    apns_bundle_id: str = "com.helgisnw.yangcheonlife"
    apns_gateway_url: str = ""  # Empty = derived from app_env

    # Fan-out
    push_concurrency_limit: int = 50
    push_request_timeout_seconds: float = 10.0
    push_batch_deadline_seconds: float | None = None

    # School
    school_id: str = "yangcheon"
    school_timezone: str = "Asia/Seoul"

    # Timetable API
    schedule_api_url: str = "https://comsi.helgisnw.me"
    schedule_cache_ttl_seconds: int = 600

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"
    live_activity_update_minutes: int = 10

    # Sentry
    sentry_dsn: SecretStr = SecretStr("")
    sentry_traces_sample_rate: float = 0.0

    @field_validator("push_concurrency_limit")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("push_concurrency_limit must be at least 1")
        return v

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def apns_base_url(self) -> str:
        if self.apns_gateway_url:
            return self.apns_gateway_url.rstrip("/")
        return APNS_PRODUCTION_URL if self.app_env == "production" else APNS_SANDBOX_URL


@lru_cache
def get_settings() -> Settings:
    return Settings()
