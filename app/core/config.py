"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) populates values from environment variables, which
    static type checkers do not model for BaseSettings constructors.
    """

    return AppSettings()  # type: ignore[call-arg]


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log format: 'json' or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on protected routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    rate_limit_max_age_seconds: int = Field(
        3600,
        description="Retention horizon for idle client windows during sweeps",
        ge=1,
    )
    rate_limit_sweep_interval_seconds: int = Field(
        3600,
        description="Interval between background rate limiter sweeps",
        ge=1,
    )

    rate_limit_general_requests: int = Field(100, ge=1)
    rate_limit_general_window_seconds: int = Field(15 * 60, ge=1)
    rate_limit_general_message: str = Field(
        "Too many requests from this IP, please try again later.",
    )

    rate_limit_auth_requests: int = Field(30, ge=1)
    rate_limit_auth_window_seconds: int = Field(15 * 60, ge=1)
    rate_limit_auth_message: str = Field(
        "Too many authentication attempts. Please try again later.",
    )

    rate_limit_upload_requests: int = Field(20, ge=1)
    rate_limit_upload_window_seconds: int = Field(60 * 60, ge=1)
    rate_limit_upload_message: str = Field(
        "Upload limit exceeded. Please try again later.",
    )

    rate_limit_payment_requests: int = Field(10, ge=1)
    rate_limit_payment_window_seconds: int = Field(15 * 60, ge=1)
    rate_limit_payment_message: str = Field(
        "Too many payment requests. Please try again later.",
    )

    cache_default_ttl_seconds: int = Field(
        5 * 60,
        description="Default time-to-live for cached entries",
        ge=1,
    )
    cache_max_entries: int | None = Field(
        None,
        description="Upper bound on cached entries (LRU eviction); unset for unbounded",
        ge=1,
    )
    cache_sweep_interval_seconds: int = Field(
        5 * 60,
        description="Interval between background expired-entry sweeps",
        ge=1,
    )

    maintenance_enabled: bool = Field(
        True,
        description="Run periodic rate limiter and cache sweeps in the background",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_retention_horizon(self) -> "AppSettings":
        longest_window = max(
            self.rate_limit_general_window_seconds,
            self.rate_limit_auth_window_seconds,
            self.rate_limit_upload_window_seconds,
            self.rate_limit_payment_window_seconds,
        )
        if self.rate_limit_max_age_seconds < longest_window:
            raise ValueError(
                "rate_limit_max_age_seconds must be >= the longest rate limit window"
            )
        return self


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()


def get_request_settings(request) -> Settings:
    """Settings of the application serving ``request``.

    Apps built with ``create_app(settings=...)`` keep their own instance on
    ``app.state``; anything else falls back to the global settings.
    """
    return getattr(request.app.state, "settings", None) or settings
