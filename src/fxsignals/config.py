from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PAIRS = [
    "EUR/USD",
    "GBP/USD",
    "USD/JPY",
    "AUD/USD",
    "GBP/JPY",
    "EUR/GBP",
    "USD/CHF",
    "NZD/USD",
]


class Settings(BaseSettings):
    """Environment-backed runtime settings."""

    app_name: str = "FX Signals"
    env: str = "dev"
    log_level: str = "INFO"
    database_url: str | None = "sqlite:///data/fxsignals.db"

    pairs: list[str] = Field(default_factory=lambda: list(DEFAULT_PAIRS), min_length=1)
    history_hours: int = Field(default=100, gt=0)
    history_interval: str = "1h"
    max_workers: int = Field(default=4, gt=0)
    io_timeout_seconds: float = Field(default=5.0, gt=0)
    io_retries: int = Field(default=2, ge=0)
    io_retry_backoff_seconds: float = Field(default=0.5, ge=0)

    scheduler_enabled: bool = False
    schedule_interval_seconds: float = Field(default=4 * 60 * 60, gt=0)
    schedule_initial_delay_seconds: float = Field(default=5.0, ge=0)
    mock_seed: int | None = None

    api_key: str | None = None
    admin_api_key: str | None = None

    @field_validator("api_key", "admin_api_key", "database_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("pairs")
    @classmethod
    def _normalize_pairs(cls, value: list[str]) -> list[str]:
        normalized = [pair.strip().upper() for pair in value if pair.strip()]
        if not normalized:
            raise ValueError("pairs must contain at least one pair")
        if len(set(normalized)) != len(normalized):
            raise ValueError("pairs must be unique")
        return normalized

    model_config = SettingsConfigDict(
        env_prefix="FXSIG_",
        env_file=".env",
        env_file_encoding="utf-8-sig",
        extra="ignore",
    )
