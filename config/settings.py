"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. All keys use
the ``TRAVAULT_`` prefix (``TRAVAULT_REDIS_URL``, ``TRAVAULT_AUTH_SECRET``
and so on) and may also be supplied through a ``.env`` file.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEVELOPMENT_AUTH_SECRET = "travault-development-secret"


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the Travault API.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRAVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000"

    # ── Redis (document store + failover to memory) ────────────────────
    # Empty string keeps everything in process memory.
    redis_url: str = ""

    # ── Auth ───────────────────────────────────────────────────────────
    auth_secret: str = DEVELOPMENT_AUTH_SECRET
    auth_token_ttl_seconds: int = Field(default=7 * 24 * 3600, gt=0)
    max_login_attempts: int = Field(default=5, ge=1)
    login_lock_seconds: int = Field(default=2 * 3600, ge=0)
    verification_ttl_seconds: int = Field(default=24 * 3600, gt=0)

    # ── Rate Limiting ──────────────────────────────────────────────────
    rate_limit_per_minute: int = 120
    trusted_proxy_count: int = Field(default=1, ge=0)

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    # ── Emergency services channel ─────────────────────────────────────
    emergency_services_email: str = "emergency@travault.com"
    # Empty URL selects the log-only channel.
    emergency_services_webhook_url: str = ""
    estimated_response: str = "5-15 minutes"

    # ── SMS channel ────────────────────────────────────────────────────
    sms_provider: Literal["twilio", "mock"] = "mock"
    sms_account_sid: str = ""
    sms_auth_token: str = ""
    sms_from_number: str = ""

    # ── Reference data ─────────────────────────────────────────────────
    seed_reference_data: bool = True

    # ── Validation ─────────────────────────────────────────────────────

    @model_validator(mode="after")
    def _require_real_secret_in_production(self) -> Settings:
        # Tokens signed with a public secret can be forged for any user.
        if self.is_production and self.auth_secret.strip() in ("", DEVELOPMENT_AUTH_SECRET):
            raise ValueError("TRAVAULT_AUTH_SECRET must be set to a private value in production")
        return self

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton: import ``settings`` everywhere.
settings = Settings()
