"""Environment-driven configuration for the supplier portal.

Every tunable lives on ``AppSettings`` so the repository, the pricing rules and
the HTTP layer read the same values. Settings are read once and cached by
``get_settings``; tests that need different values construct their services
with explicit arguments instead of touching the environment.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Supplier Portal"
    APP_ENV: str = "dev"

    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    TZ: str = "UTC"

    # Empty means "SQLite file under DATA_DIR", resolved in ``get_settings``.
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    # Storage keys; the defaults match the layout written by earlier builds.
    DEVICES_KEY: str = "tortoise_devices"
    ORDERS_KEY: str = "tortoise_orders"

    POLL_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    SIMULATED_LATENCY_MS: int = Field(default=0, ge=0)
    STORE_WRITE_ATTEMPTS: int = Field(default=3, ge=1)

    LOW_STOCK_THRESHOLD: int = Field(default=10, ge=0)
    TREND_DAYS: int = Field(default=7, ge=1)
    OFFER_ENFORCE_VALID_FROM: bool = False

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @field_validator("TZ", mode="before")
    @classmethod
    def default_timezone(cls, value: object) -> object:
        if value in (None, ""):
            return "UTC"
        return value

    @property
    def simulated_latency(self) -> float:
        return self.SIMULATED_LATENCY_MS / 1000


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR / 'portal.db'}"
    return settings


settings = get_settings()
