from functools import lru_cache
from typing import ClassVar, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Required secrets (validated at startup)
    REQUIRED_SECRETS: ClassVar[list[str]] = [
        "supabase_url",
        "supabase_service_role_key",
        "jwt_secret",
    ]

    # Environment (development, staging, production)
    environment: str = "development"

    # App
    app_name: str = "Lease Reputation API"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Redis (Celery broker, scheduler locks, rate limit storage)
    redis_url: str = "redis://localhost:6379"

    # JWT issued by the platform auth service
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    # Rate limiting (slowapi limit strings)
    rate_limit_enabled: bool = True
    rate_limit_default: str = "60/minute"
    rate_limit_review_writes: str = "10/minute"
    rate_limit_reports: str = "5/minute"
    rate_limit_admin: str = "300/minute"

    # Review lifecycle
    review_publish_delay_days: int = 14
    review_edit_window_hours: int = 24
    reply_edit_window_hours: int = 24
    review_retention_months: int = 36

    # Scheduler
    publisher_run_deadline_seconds: int = 240  # below celery soft time limit
    scheduler_lock_timeout_seconds: int = 600

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @model_validator(mode="after")
    def validate_required_secrets(self) -> "Settings":
        """Validate that all required secrets are set (non-empty)."""
        missing = []
        for secret_name in self.REQUIRED_SECRETS:
            value = getattr(self, secret_name, "")
            if not value or not value.strip():
                # Convert to uppercase env var name for error message
                env_name = secret_name.upper()
                missing.append(env_name)

        if missing:
            raise ValueError(
                f"Missing required secrets: {', '.join(missing)}. "
                "Set these environment variables before starting the application."
            )

        return self

    @model_validator(mode="after")
    def validate_cors_origins_in_production(self) -> "Settings":
        """Validate CORS origins are safe in production."""
        from urllib.parse import urlparse

        if self.environment != "production":
            return self

        unsafe_hostnames = {"localhost", "127.0.0.1", "0.0.0.0"}

        for origin in self.cors_origins:
            if origin == "*":
                raise ValueError(
                    "Wildcard (*) CORS origin is not allowed in production. "
                    "Specify exact origins instead."
                )

            try:
                parsed = urlparse(origin)
                hostname = parsed.hostname or ""
            except ValueError:
                hostname = origin

            if hostname in unsafe_hostnames:
                raise ValueError(
                    f"CORS origin '{origin}' uses hostname '{hostname}' which is not "
                    f"allowed in production. Use HTTPS production URLs instead."
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
