"""Typed settings loader for the weather wager engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AnyUrl, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError
from .redaction import sanitize_text


class Settings(BaseSettings):
    """Application settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = Field(default="dev", alias="APP_ENV")

    database_url: str = Field(
        default="sqlite:///./data/wagers.db",
        alias="DATABASE_URL",
        repr=False,
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    nws_api_base_url: AnyUrl = Field(
        default=AnyUrl("https://api.weather.gov"),
        alias="NWS_API_BASE_URL",
    )
    nws_user_agent: str = Field(
        default="weather-wager/0.1 (contact: ops@example.com)",
        alias="NWS_USER_AGENT",
    )
    weather_timeout_seconds: float = Field(default=15.0, alias="WEATHER_TIMEOUT_SECONDS")
    weather_max_retries: int = Field(default=1, alias="WEATHER_MAX_RETRIES")

    observation_cache_dir: Path = Field(
        default=Path("./data/cache/observations"),
        alias="OBSERVATION_CACHE_DIR",
    )
    observation_cache_ttl_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        alias="OBSERVATION_CACHE_TTL_SECONDS",
    )
    observation_min_readings: int = Field(default=4, alias="OBSERVATION_MIN_READINGS")

    grading_window_days: int = Field(default=3, alias="GRADING_WINDOW_DAYS")
    void_after_hours: float = Field(default=48.0, alias="VOID_AFTER_HOURS")
    settlement_max_workers: int = Field(default=4, alias="SETTLEMENT_MAX_WORKERS")
    settlement_reconcile_indices: bool = Field(
        default=False,
        alias="SETTLEMENT_RECONCILE_INDICES",
    )

    wager_list_default_limit: int = Field(default=20, alias="WAGER_LIST_DEFAULT_LIMIT")
    wager_list_max_limit: int = Field(default=50, alias="WAGER_LIST_MAX_LIMIT")

    journal_dir: Path = Field(default=Path("./data/journal"), alias="JOURNAL_DIR")
    settle_max_print: int = Field(default=20, alias="SETTLE_MAX_PRINT")

    @model_validator(mode="after")
    def validate_settings(self) -> Settings:
        """Reject inconsistent or out-of-range values."""
        if not self.database_url.strip():
            raise ValueError("DATABASE_URL must not be empty.")
        if not self.nws_user_agent.strip():
            raise ValueError("NWS_USER_AGENT must not be empty.")
        if self.weather_timeout_seconds <= 0:
            raise ValueError("WEATHER_TIMEOUT_SECONDS must be > 0.")
        if self.weather_max_retries < 0:
            raise ValueError("WEATHER_MAX_RETRIES must be >= 0.")
        if self.observation_cache_ttl_seconds <= 0:
            raise ValueError("OBSERVATION_CACHE_TTL_SECONDS must be > 0.")
        if self.observation_min_readings <= 0:
            raise ValueError("OBSERVATION_MIN_READINGS must be > 0.")
        if self.grading_window_days <= 0:
            raise ValueError("GRADING_WINDOW_DAYS must be > 0.")
        if self.void_after_hours <= 0:
            raise ValueError("VOID_AFTER_HOURS must be > 0.")
        if self.settlement_max_workers <= 0:
            raise ValueError("SETTLEMENT_MAX_WORKERS must be > 0.")
        if self.wager_list_default_limit <= 0:
            raise ValueError("WAGER_LIST_DEFAULT_LIMIT must be > 0.")
        if self.wager_list_max_limit < self.wager_list_default_limit:
            raise ValueError(
                "WAGER_LIST_MAX_LIMIT cannot be smaller than WAGER_LIST_DEFAULT_LIMIT."
            )
        if self.settle_max_print <= 0:
            raise ValueError("SETTLE_MAX_PRINT must be > 0.")
        return self

    @property
    def void_reason(self) -> str:
        """Reason recorded on wagers voided by the settlement timeout."""
        return f"insufficient observation data after {self.void_after_hours:g}h"

    def safe_summary(self) -> dict[str, Any]:
        """Return config summary safe for journaling (no credentials)."""
        return {
            "app_env": self.app_env,
            "database_url": sanitize_text(self.database_url),
            "nws_api_base_url": str(self.nws_api_base_url),
            "weather_timeout_seconds": self.weather_timeout_seconds,
            "weather_max_retries": self.weather_max_retries,
            "observation_cache_dir": str(self.observation_cache_dir),
            "observation_cache_ttl_seconds": self.observation_cache_ttl_seconds,
            "observation_min_readings": self.observation_min_readings,
            "grading_window_days": self.grading_window_days,
            "void_after_hours": self.void_after_hours,
            "settlement_max_workers": self.settlement_max_workers,
            "settlement_reconcile_indices": self.settlement_reconcile_indices,
        }


def load_settings() -> Settings:
    """Load and validate settings, raising ConfigError on failure."""
    try:
        settings = Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed reading environment/.env: {exc}") from exc

    settings.journal_dir.mkdir(parents=True, exist_ok=True)
    settings.observation_cache_dir.mkdir(parents=True, exist_ok=True)
    sqlite_prefix = "sqlite:///"
    if settings.database_url.startswith(sqlite_prefix):
        db_path = settings.database_url[len(sqlite_prefix):]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return settings
