"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

This is the only place that reads the environment. Components such as the
rate limiter receive plain config objects derived from these settings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
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

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None

# Tests control the environment themselves
if os.getenv("TESTING", "").lower() == "true":
    _env_file = None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate file logs at this size (0 disables rotation)")
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class LLMSettings(BaseSettings):
    """AI completion provider configuration.

    Defaults target OpenRouter, which speaks the OpenAI chat completions API.
    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "openrouter",
        description="LLM provider name (openrouter or openai)",
    )
    model: str = Field(
        "anthropic/claude-3.7-sonnet",
        description="Model used for ingredient zoning",
    )
    vision_model: str = Field(
        "openai/gpt-4o",
        description="Vision-capable model used for meal image analysis",
    )
    api_key: str | None = Field(
        None,
        description="API key for the provider",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint (defaults to the provider's public URL)",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Admission control for the AI-backed routes."""

    remote_url: str | None = Field(
        None,
        validation_alias=AliasChoices("KV_REST_API_URL", "RATE_LIMIT_REMOTE_URL"),
        description="Upstash Redis REST URL; with the token, selects the remote backend",
    )
    remote_token: str | None = Field(
        None,
        validation_alias=AliasChoices("KV_REST_API_TOKEN", "RATE_LIMIT_REMOTE_TOKEN"),
        description="Upstash Redis REST token; with the URL, selects the remote backend",
    )
    image_analysis_requests: int = Field(
        10,
        validation_alias=AliasChoices(
            "IMAGE_ANALYSIS_RATE_LIMIT", "RATE_LIMIT_IMAGE_ANALYSIS_REQUESTS"
        ),
        description="Image analysis requests allowed per window",
    )
    zoning_requests: int = Field(
        50,
        validation_alias=AliasChoices("ZONING_RATE_LIMIT", "RATE_LIMIT_ZONING_REQUESTS"),
        description="Ingredient zoning requests allowed per window",
    )
    window_seconds: int = Field(
        60,
        ge=1,
        description="Window length for the named buckets",
    )
    remote_timeout_seconds: float = Field(
        2.0,
        gt=0,
        description="Give up on the remote store after this long and count locally",
    )
    sweep_interval_seconds: float = Field(
        60.0,
        gt=0,
        description="Interval between in-memory cleanup passes",
    )
    key_prefix: str = Field(
        "ratelimit",
        description="Namespace for keys written to the remote store",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if values are malformed.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
