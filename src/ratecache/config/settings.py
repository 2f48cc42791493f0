# src/ratecache/config/settings.py
"""
Settings - Pydantic-based Configuration Management

Provides centralized configuration management using Pydantic Settings.
Supports environment variables and a .env file with validation.

Files that USE this module:
- ratecache.app (builds the client, store and cache from settings)
- ratecache.adapters.providers.fastforex (API key, URL, HTTP timeout)
- ratecache.application.rate_cache (default freshness policy and worker count)

Files that this module USES:
- ratecache.shared.validators (validation functions for settings)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from datetime import timedelta  # Freshness windows exposed as durations
from typing import Optional  # Type hints for optional values

from pydantic import Field, field_validator, model_validator  # Data validation and field configuration
from pydantic_settings import BaseSettings, SettingsConfigDict  # Settings management with Pydantic

from ratecache.shared.validators import validate_api_key  # Validate API key format


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Rate provider ---
    rate_provider: str = Field(default="fastforex", alias="RATE_PROVIDER")
    fastforex_key: str = Field(default="", alias="FASTFOREX_API_KEY")
    fastforex_base_url: str = Field(default="https://api.fastforex.io", alias="FASTFOREX_BASE_URL")

    # --- HTTP Settings ---
    http_timeout_seconds: int = Field(default=10, alias="HTTP_TIMEOUT_SECONDS", ge=1, le=60)

    # --- Freshness policy (in seconds) ---
    max_age_seconds: int = Field(default=300, alias="RATES_MAX_AGE_SECONDS", ge=0)
    max_stale_age_seconds: int = Field(default=3600, alias="RATES_MAX_STALE_AGE_SECONDS", ge=0)

    # --- Cache workers / caller timeout ---
    refresh_workers: int = Field(default=4, alias="RATE_CACHE_WORKERS", ge=1, le=64)
    lookup_timeout_seconds: Optional[float] = Field(default=None, alias="LOOKUP_TIMEOUT_SECONDS", gt=0)

    # --- Persistence ---
    # SQLAlchemy URL, or a path ending in .json for the file store
    store_url: str = Field(default="sqlite:///./data/rates.db", alias="RATES_STORE_URL")

    # --- Logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_stdout: bool = Field(default=True, alias="RATECACHE_LOG_STDOUT")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")  # 10MB
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    @property
    def max_age(self) -> timedelta:
        return timedelta(seconds=self.max_age_seconds)

    @property
    def max_stale_age(self) -> timedelta:
        return timedelta(seconds=self.max_stale_age_seconds)

    @field_validator("rate_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider kind."""
        v = v.strip().lower()
        if v not in ("fastforex", "static"):
            raise ValueError("RATE_PROVIDER must be 'fastforex' or 'static'")
        return v

    @field_validator("fastforex_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate API key format (empty means not configured)."""
        if v and not validate_api_key(v):
            raise ValueError("Invalid FASTFOREX_API_KEY format")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return v

    @model_validator(mode="after")
    def validate_stale_window(self) -> "Settings":
        """The hard staleness ceiling can never be tighter than the freshness window."""
        if self.max_stale_age_seconds < self.max_age_seconds:
            raise ValueError("RATES_MAX_STALE_AGE_SECONDS must be >= RATES_MAX_AGE_SECONDS")
        return self


# Global settings instance
settings = Settings()
