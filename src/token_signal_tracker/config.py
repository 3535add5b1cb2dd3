"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Token Signal Tracker, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_THRESHOLD_MULTIPLIERS = (2.0, 3.0, 4.0, 5.0, 10.0, 15.0, 20.0, 30.0, 50.0, 100.0)


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings (optional threshold hit cache)."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )
    enabled: bool = Field(
        default=False,
        alias="REDIS_ENABLED",
        description="Cache recorded thresholds in Redis to skip repeated table lookups",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class ProviderSettings(BaseSettings):
    """Market data provider settings (DexScreener quotes, GeckoTerminal candles)."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_", extra="ignore")

    geckoterminal_base_url: str = Field(
        default="https://api.geckoterminal.com/api/v2",
        alias="PROVIDER_GECKOTERMINAL_BASE_URL",
        description="GeckoTerminal public API base URL",
    )
    dexscreener_base_url: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        alias="PROVIDER_DEXSCREENER_BASE_URL",
        description="DexScreener public API base URL",
    )
    network: str = Field(
        default="solana",
        alias="PROVIDER_NETWORK",
        description="GeckoTerminal network identifier",
    )
    timeout_seconds: float = Field(
        default=15.0,
        alias="PROVIDER_TIMEOUT_SECONDS",
        ge=1.0,
        le=120.0,
        description="Total per-request timeout",
    )
    requests_per_second: float = Field(
        default=0.5,
        alias="PROVIDER_REQUESTS_PER_SECOND",
        gt=0.0,
        le=50.0,
        description="Client-side request rate for GeckoTerminal (30 req/min public limit)",
    )
    dexscreener_requests_per_second: float = Field(
        default=4.0,
        alias="PROVIDER_DEXSCREENER_REQUESTS_PER_SECOND",
        gt=0.0,
        le=50.0,
        description="Client-side request rate for DexScreener",
    )
    max_retries: int = Field(
        default=3,
        alias="PROVIDER_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries for rate-limited or transient provider errors",
    )
    max_ohlcv_limit: int = Field(
        default=1000,
        alias="PROVIDER_MAX_OHLCV_LIMIT",
        ge=1,
        le=1000,
        description="Maximum candles per OHLCV request",
    )

    @field_validator("geckoterminal_base_url", "dexscreener_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Provider base URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class RecomputeSettings(BaseSettings):
    """Recompute gate thresholds for the hourly ATH refresh."""

    model_config = SettingsConfigDict(env_prefix="RECOMPUTE_", extra="ignore")

    freshness_minutes: float = Field(
        default=10.0,
        alias="RECOMPUTE_FRESHNESS_MINUTES",
        ge=0.0,
        description="Skip signals whose metrics were updated more recently than this",
    )
    very_stale_minutes: float = Field(
        default=60.0,
        alias="RECOMPUTE_VERY_STALE_MINUTES",
        ge=0.0,
        description="Inactive signals are skipped until their metrics are older than this",
    )
    force_after_minutes: float = Field(
        default=60.0,
        alias="RECOMPUTE_FORCE_AFTER_MINUTES",
        ge=0.0,
        description="Recompute regardless of price action once metrics are older than this",
    )
    dead_collapse_ratio: float = Field(
        default=0.5,
        alias="RECOMPUTE_DEAD_COLLAPSE_RATIO",
        gt=0.0,
        le=1.0,
        description="Current/ATH ratio below which a pumped token counts as collapsed",
    )
    dead_multiple: float = Field(
        default=0.5,
        alias="RECOMPUTE_DEAD_MULTIPLE",
        gt=0.0,
        description="Current multiple below which a collapsed token counts as dead",
    )
    dead_ath_floor: float = Field(
        default=1.0,
        alias="RECOMPUTE_DEAD_ATH_FLOOR",
        gt=0.0,
        description="ATH multiple above which the collapse rule applies",
    )
    deep_down_multiple: float = Field(
        default=0.1,
        alias="RECOMPUTE_DEEP_DOWN_MULTIPLE",
        gt=0.0,
        description="Current multiple below which a never-pumped token counts as dead",
    )
    never_pumped_ath: float = Field(
        default=1.5,
        alias="RECOMPUTE_NEVER_PUMPED_ATH",
        gt=0.0,
        description="ATH multiple below which a token never pumped",
    )
    new_peak_ratio: float = Field(
        default=1.05,
        alias="RECOMPUTE_NEW_PEAK_RATIO",
        gt=1.0,
        description="Current/ATH ratio above which a new peak is likely",
    )
    near_peak_ratio: float = Field(
        default=0.9,
        alias="RECOMPUTE_NEAR_PEAK_RATIO",
        gt=0.0,
        le=1.0,
        description="Current/ATH ratio above which the token trades near its peak",
    )


class ThresholdSettings(BaseSettings):
    """Performance multiplier thresholds."""

    model_config = SettingsConfigDict(env_prefix="THRESHOLD_", extra="ignore")

    multipliers: Annotated[tuple[float, ...], NoDecode] = Field(
        default=DEFAULT_THRESHOLD_MULTIPLIERS,
        alias="THRESHOLD_MULTIPLIERS",
        description="Multipliers to record crossings for (comma-separated)",
    )

    @field_validator("multipliers", mode="before")
    @classmethod
    def _parse_multipliers(cls, v: object) -> tuple[float, ...]:
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            values = tuple(float(p) for p in parts)
        elif isinstance(v, (list, tuple)):
            values = tuple(float(x) for x in v)
        else:
            raise TypeError("Invalid THRESHOLD_MULTIPLIERS type")
        if not values:
            raise ValueError("THRESHOLD_MULTIPLIERS must not be empty")
        if any(x <= 1.0 for x in values):
            raise ValueError("THRESHOLD_MULTIPLIERS must all be > 1")
        return tuple(sorted(set(values)))


class SchedulerSettings(BaseSettings):
    """Sampling and ATH refresh cadence."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    sampling_interval_seconds: int = Field(
        default=60,
        alias="SCHEDULER_SAMPLING_INTERVAL_SECONDS",
        ge=5,
        le=3600,
        description="How often to look for signals due for a price sample",
    )
    ath_interval_seconds: int = Field(
        default=3600,
        alias="SCHEDULER_ATH_INTERVAL_SECONDS",
        ge=60,
        le=86_400,
        description="How often to run the candle-based ATH refresh",
    )
    batch_size: int = Field(
        default=3,
        alias="SCHEDULER_BATCH_SIZE",
        ge=1,
        le=100,
        description="Signals processed per ATH refresh batch",
    )
    item_delay_seconds: float = Field(
        default=1.0,
        alias="SCHEDULER_ITEM_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Delay between signals within a batch",
    )
    batch_delay_seconds: float = Field(
        default=3.0,
        alias="SCHEDULER_BATCH_DELAY_SECONDS",
        ge=0.0,
        le=300.0,
        description="Delay between batches",
    )
    sampling_batch_size: int = Field(
        default=5,
        alias="SCHEDULER_SAMPLING_BATCH_SIZE",
        ge=1,
        le=100,
        description="Signals sampled per batch",
    )
    sampling_batch_delay_seconds: float = Field(
        default=0.5,
        alias="SCHEDULER_SAMPLING_BATCH_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Delay between sampling batches",
    )
    run_on_start: bool = Field(
        default=True,
        alias="SCHEDULER_RUN_ON_START",
        description="Run one sampling cycle immediately on start",
    )


class TelegramSettings(BaseSettings):
    """Telegram notification settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_", extra="ignore")

    bot_token: SecretStr | None = Field(
        default=None,
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    chat_id: str | None = Field(
        default=None,
        alias="TELEGRAM_CHAT_ID",
        description="Telegram chat ID for notifications",
    )
    notify_metrics_updates: bool = Field(
        default=False,
        alias="TELEGRAM_NOTIFY_METRICS_UPDATES",
        description="Also deliver metrics-updated notifications (threshold crossings are always sent)",
    )

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None and self.chat_id is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from token_signal_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.thresholds.multipliers)
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
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    provider: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    recompute: RecomputeSettings = Field(
        default_factory=lambda: RecomputeSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    thresholds: ThresholdSettings = Field(
        default_factory=lambda: ThresholdSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    telegram: TelegramSettings = Field(
        default_factory=lambda: TelegramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without sending actual notifications",
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
            "redis_url": self._redact_url(self.redis.url),
            "redis_enabled": str(self.redis.enabled),
            "provider": {
                "geckoterminal_base_url": self.provider.geckoterminal_base_url,
                "dexscreener_base_url": self.provider.dexscreener_base_url,
                "network": self.provider.network,
                "requests_per_second": str(self.provider.requests_per_second),
            },
            "scheduler": {
                "sampling_interval_seconds": str(self.scheduler.sampling_interval_seconds),
                "ath_interval_seconds": str(self.scheduler.ath_interval_seconds),
                "batch_size": str(self.scheduler.batch_size),
            },
            "thresholds": ",".join(f"{m:g}" for m in self.thresholds.multipliers),
            "telegram_enabled": str(self.telegram.enabled),
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
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
