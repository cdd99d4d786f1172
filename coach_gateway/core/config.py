"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Static type checkers treat required fields as constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_supabase_settings() -> "SupabaseSettings":
    return SupabaseSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "openai",
        description="LLM provider name (only openai is supported)",
    )
    model: str = Field(
        "gpt-4o",
        description="Primary model, used for complex consultations and analyses",
    )
    light_model: str = Field(
        "gpt-4o-mini",
        description="Cheaper model used for short consultations and advanced analytics",
    )
    api_key: str | None = Field(
        None,
        description="API key for the provider",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint",
    )
    timeout_seconds: float = Field(
        30.0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    max_payload_bytes: int = Field(
        100_000,
        description="Maximum accepted request body size in bytes",
        ge=1,
    )
    max_message_chars: int = Field(
        2000,
        description="Maximum ai-consultant message length in characters",
        ge=1,
    )
    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-function, per-caller sliding window rate limiting",
    )
    rate_limit_sweep_probability: float = Field(
        0.01,
        description="Probability that a rate limit check sweeps all tracked keys",
        ge=0.0,
        le=1.0,
    )
    rate_limit_shards: int = Field(
        16,
        description="Number of lock-guarded shards in the in-memory rate limit store",
        ge=1,
    )
    consultation_cache_ttl_seconds: int = Field(
        300,
        description="TTL of cached ai-consultant answers",
        ge=1,
    )
    consultation_cache_max_entries: int = Field(
        1000,
        description="Maximum number of cached ai-consultant answers",
        ge=1,
    )
    cors_allowed_origins: str = Field(
        "https://*.lovable.app,https://*.salesforce.com",
        description="Comma-separated origin patterns allowed by CORS (shell-style wildcards)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate file logs at this size (0 disables)")
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation id header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class SupabaseSettings(BaseSettings):
    """Hosted platform credentials used by the audit sink."""

    url: str | None = Field(None, description="Supabase project URL")
    service_role_key: str | None = Field(None, description="Service role key for RPC calls")
    audit_rpc: str = Field("log_user_action", description="Audit logging procedure name")

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    supabase: SupabaseSettings = Field(default_factory=_build_supabase_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
