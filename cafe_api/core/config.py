"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STORE_BACKENDS: tuple[str, ...] = ("memory", "redis")

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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Static type checkers treat required fields as required constructor
    arguments, which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_cache_settings() -> "CacheSettings":
    return CacheSettings()  # type: ignore[call-arg]


def _build_social_settings() -> "SocialSettings":
    return SocialSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        ...,
        description="LLM provider name (e.g., openai)",
    )
    model: str = Field(
        ...,
        description="Model used for text/JSON generation (e.g., gpt-4o-mini)",
    )
    vision_model: str | None = Field(
        None,
        description="Model used for image description; falls back to `model`",
    )
    api_key: str | None = Field(
        None,
        description="API key for cloud providers (required for OpenAI)",
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
    """Application-wide configuration: identity and rate limiting."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    ip_hash_salt: str = Field(
        "cafe-match-salt",
        description="Salt mixed into network addresses before hashing them into identities",
    )
    token_secret: str | None = Field(
        None,
        description=(
            "Secret/public key used to verify bearer token signatures. When unset, "
            "claims are decoded without signature verification."
        ),
    )
    token_algorithms: str = Field(
        "HS256,RS256",
        description="Comma-separated list of accepted token signing algorithms",
    )
    token_expiry_grace_seconds: int = Field(
        24 * 60 * 60,
        description="How long after `exp` an expired token is still accepted",
        ge=0,
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enforce the search quota on /rate-limit/check",
    )
    rate_limit_max_requests: int = Field(
        10,
        description="Maximum number of searches per window (per identity and per address)",
        ge=1,
    )
    rate_limit_window_hours: float = Field(
        12,
        description="Rate limit window length in hours",
        gt=0,
    )
    rate_limit_backend: str = Field(
        "memory",
        description="Counter store backend: memory or redis",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    storage_backend: str = Field(
        "memory",
        description="Search state / interaction store backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (used by the redis backends)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )

    @field_validator("rate_limit_backend", "storage_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(f"unknown backend '{value}', expected one of {STORE_BACKENDS}")
        return backend

    @property
    def rate_limit_window_seconds(self) -> int:
        return int(self.rate_limit_window_hours * 3600)

    @property
    def token_algorithm_list(self) -> list[str]:
        return [alg.strip() for alg in self.token_algorithms.split(",") if alg.strip()]


class CacheSettings(BaseSettings):
    """TTLs and sweep thresholds for the per-handler response caches."""

    image_ttl_seconds: int = Field(3600, ge=1)
    image_sweep_threshold: int = Field(200, ge=1)
    social_ttl_seconds: int = Field(30 * 60, ge=1)
    social_sweep_threshold: int = Field(100, ge=1)
    reasoning_ttl_seconds: int = Field(5 * 60, ge=1)
    reasoning_sweep_threshold: int = Field(100, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class SocialSettings(BaseSettings):
    """Social-content search (Reddit) configuration."""

    base_url: str = Field(
        "https://www.reddit.com",
        description="Base URL of the social search JSON API",
    )
    user_agent: str = Field(
        "CafeMatch/1.0",
        description="User-Agent sent with search requests",
    )
    timeout_seconds: float = Field(
        8.0,
        description="Per-subrequest timeout in seconds",
    )
    subreddits: str = Field(
        "Coffee,cafe,espresso,specialty_coffee",
        description="Comma-separated communities searched for café mentions",
    )

    model_config = SettingsConfigDict(
        env_prefix="SOCIAL_",
        case_sensitive=False,
    )

    @property
    def subreddit_list(self) -> list[str]:
        return [name.strip() for name in self.subreddits.split(",") if name.strip()]


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate the log file at this size (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    cache: CacheSettings = Field(default_factory=_build_cache_settings)
    social: SocialSettings = Field(default_factory=_build_social_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
