"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Polymarket sports catalog sync, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL connection string")
        return v


class GammaSettings(BaseSettings):
    """Upstream catalog (Gamma API) settings."""

    model_config = SettingsConfigDict(env_prefix="GAMMA_", extra="ignore")

    base_url: str = Field(
        default="https://gamma-api.polymarket.com",
        alias="GAMMA_BASE_URL",
        description="Gamma catalog API base URL",
    )
    timeout_seconds: float = Field(
        default=30.0,
        alias="GAMMA_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="HTTP timeout for catalog requests",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("GAMMA_BASE_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class PolymarketSettings(BaseSettings):
    """Polymarket CLOB (order-book API) settings."""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    clob_host: str = Field(
        default="https://clob.polymarket.com",
        alias="POLYMARKET_CLOB_HOST",
        description="CLOB HTTP API host",
    )
    clob_chain_id: int = Field(
        default=137,
        alias="POLYMARKET_CLOB_CHAIN_ID",
        description="Chain ID (Polygon=137)",
    )
    clob_requests_per_second: float = Field(
        default=10.0,
        alias="POLYMARKET_CLOB_REQUESTS_PER_SECOND",
        gt=0.0,
        le=100.0,
        description="Client-side rate limit for CLOB requests",
    )
    live_lookup_concurrency: int = Field(
        default=10,
        alias="POLYMARKET_LIVE_LOOKUP_CONCURRENCY",
        ge=1,
        le=100,
        description="Maximum concurrent per-token price/orderbook lookups",
    )

    @field_validator("clob_host")
    @classmethod
    def validate_clob_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("POLYMARKET_CLOB_HOST must be an HTTP(S) endpoint")
        return v.rstrip("/")


class SyncSettings(BaseSettings):
    """Catalog reconciliation settings."""

    model_config = SettingsConfigDict(env_prefix="SYNC_", extra="ignore")

    sport_code: str = Field(
        default="nba",
        alias="SYNC_SPORT_CODE",
        min_length=1,
        description="Sport code used to resolve the upstream series id",
    )
    page_size: int = Field(
        default=50,
        alias="SYNC_PAGE_SIZE",
        ge=1,
        le=500,
        description="Events requested per upstream page",
    )
    max_pages: int = Field(
        default=5,
        alias="SYNC_MAX_PAGES",
        ge=1,
        le=1000,
        description="Maximum upstream pages fetched per run",
    )
    active: bool | None = Field(
        default=None,
        alias="SYNC_ACTIVE",
        description="Optional upstream active filter",
    )
    closed: bool | None = Field(
        default=None,
        alias="SYNC_CLOSED",
        description="Optional upstream closed filter",
    )
    tag_id: str | None = Field(
        default=None,
        alias="SYNC_TAG_ID",
        description="Optional upstream tag filter",
    )
    upcoming_days: int = Field(
        default=7,
        alias="SYNC_UPCOMING_DAYS",
        ge=0,
        le=365,
        description="Days after today (UTC) included in the upcoming window; 0 disables it",
    )
    interval_seconds: int = Field(
        default=300,
        alias="SYNC_INTERVAL_SECONDS",
        ge=10,
        le=86_400,
        description="How often the run loop triggers a reconciliation",
    )
    upsert_chunk_size: int = Field(
        default=200,
        alias="SYNC_UPSERT_CHUNK_SIZE",
        ge=1,
        le=5000,
        description="Rows per upsert statement",
    )
    atomic_writes: bool = Field(
        default=False,
        alias="SYNC_ATOMIC_WRITES",
        description="Wrap all write phases of a run in a single transaction",
    )
    state_key: str | None = Field(
        default=None,
        alias="SYNC_STATE_KEY",
        description="Ingestion-state key (defaults to polymarket_<sport>_last_sync)",
    )

    @field_validator("sport_code")
    @classmethod
    def normalize_sport_code(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("tag_id")
    @classmethod
    def normalize_tag_id(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip() or None

    @property
    def resolved_state_key(self) -> str:
        return self.state_key or f"polymarket_{self.sport_code}_last_sync"


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_sports_sync.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.sync.page_size)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    gamma: GammaSettings = Field(
        default_factory=lambda: GammaSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polymarket: PolymarketSettings = Field(
        default_factory=lambda: PolymarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    sync: SyncSettings = Field(
        default_factory=lambda: SyncSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "gamma": {
                "base_url": self.gamma.base_url,
                "timeout_seconds": str(self.gamma.timeout_seconds),
            },
            "polymarket": {
                "clob_host": self.polymarket.clob_host,
                "clob_chain_id": str(self.polymarket.clob_chain_id),
                "live_lookup_concurrency": str(self.polymarket.live_lookup_concurrency),
            },
            "sync": {
                "sport_code": self.sync.sport_code,
                "page_size": str(self.sync.page_size),
                "max_pages": str(self.sync.max_pages),
                "active": str(self.sync.active),
                "closed": str(self.sync.closed),
                "tag_id": self.sync.tag_id or "(not set)",
                "upcoming_days": str(self.sync.upcoming_days),
                "interval_seconds": str(self.sync.interval_seconds),
                "atomic_writes": str(self.sync.atomic_writes),
                "state_key": self.sync.resolved_state_key,
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            # URL has credentials - redact the password
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
