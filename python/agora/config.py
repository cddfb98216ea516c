"""Application settings loaded from environment variables.

Environment Configuration:
    AGORA_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)
    API_PREFIX: Mount point for resource routes (default /api)

Auth Configuration (required in all environments):
    SUPABASE_JWKS_URL: Full URL to Supabase JWKS endpoint
    SUPABASE_ISSUER: Expected JWT issuer (trailing slash stripped)
    SUPABASE_AUDIENCES: Comma-separated list of allowed audiences

Identity Admin Configuration (required in staging/prod):
    SUPABASE_URL: Supabase project URL (admin API base)
    SUPABASE_SERVICE_KEY: Service role key for admin operations

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (shared rate-limit counters, broker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Note: All environments use Supabase JWKS for JWT verification.
Local/test environments use Supabase local, staging/prod use cloud.
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL is always required
    - SUPABASE_JWKS_URL, SUPABASE_ISSUER, SUPABASE_AUDIENCES are required in all environments
    - SUPABASE_URL and SUPABASE_SERVICE_KEY are required in staging and prod only
    """

    agora_env: Environment = Field(default=Environment.LOCAL, alias="AGORA_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    api_prefix: str = Field(default="/api", alias="API_PREFIX")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Supabase auth settings (required in all environments)
    supabase_jwks_url: str | None = Field(default=None, alias="SUPABASE_JWKS_URL")
    supabase_issuer: str | None = Field(default=None, alias="SUPABASE_ISSUER")
    supabase_audiences: str | None = Field(default=None, alias="SUPABASE_AUDIENCES")

    # Supabase admin API (account purge)
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")

    # Push the caller identity into Postgres so row-level policies see it
    apply_rls_claims: bool = Field(default=False, alias="APPLY_RLS_CLAIMS")

    # Rate limiting (per caller id, or per client IP when anonymous)
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS")
    rate_limit_window_s: int = Field(default=900, alias="RATE_LIMIT_WINDOW_S")  # 15 minutes

    # Content rules
    message_edit_window_s: int = Field(default=900, alias="MESSAGE_EDIT_WINDOW_S")  # 15 minutes
    notification_retention_days: int = Field(default=30, alias="NOTIFICATION_RETENTION_DAYS")
    story_default_duration_hours: int = Field(default=24, alias="STORY_DEFAULT_DURATION_HOURS")
    story_max_duration_hours: int = Field(default=168, alias="STORY_MAX_DURATION_HOURS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for all environments."""
        # Supabase auth settings are required in all environments
        missing_auth = []
        if not self.supabase_jwks_url:
            missing_auth.append("SUPABASE_JWKS_URL")
        if not self.supabase_issuer:
            missing_auth.append("SUPABASE_ISSUER")
        if not self.supabase_audiences:
            missing_auth.append("SUPABASE_AUDIENCES")

        if missing_auth:
            raise ValueError(
                f"Missing required Supabase auth settings: {', '.join(missing_auth)}. "
                "Start Supabase local and export its settings, or set these environment variables."
            )

        # Admin credentials are required only in staging/prod
        if self.agora_env in (Environment.STAGING, Environment.PROD):
            missing_admin = []
            if not self.supabase_url:
                missing_admin.append("SUPABASE_URL")
            if not self.supabase_service_key:
                missing_admin.append("SUPABASE_SERVICE_KEY")
            if missing_admin:
                raise ValueError(
                    f"{', '.join(missing_admin)} required for AGORA_ENV={self.agora_env.value}"
                )

        if self.rate_limit_requests < 1 or self.rate_limit_window_s < 1:
            raise ValueError("RATE_LIMIT_REQUESTS and RATE_LIMIT_WINDOW_S must be >= 1")

        if not 1 <= self.story_default_duration_hours <= self.story_max_duration_hours:
            raise ValueError(
                "STORY_DEFAULT_DURATION_HOURS must be between 1 and STORY_MAX_DURATION_HOURS"
            )

        return self

    @property
    def is_development(self) -> bool:
        """Whether internal error detail may be returned to clients."""
        return self.agora_env == Environment.LOCAL

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.supabase_audiences:
            return [a.strip() for a in self.supabase_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.supabase_issuer:
            return self.supabase_issuer.rstrip("/")
        return None

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
