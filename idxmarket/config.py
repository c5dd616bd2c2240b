"""Centralized configuration via pydantic-settings, loaded from the environment / .env."""

from __future__ import annotations

import functools
from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="IDX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Service ────────────────────────────────────────────────────────
    app_name: str = "idxmarket"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None

    # ── Cache ──────────────────────────────────────────────────────────
    cache_type: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_market_overview: int = 60
    cache_ttl_stock_info: int = 300
    cache_ttl_historical: int = 86400
    cache_ttl_sector: int = 300
    cache_ttl_static: int = 604800

    # ── Data sources ───────────────────────────────────────────────────
    yahoo_timeout_ms: int = 10000
    web_timeout_ms: int = 15000
    dataset_timeout_ms: int = 15000
    max_retries: int = 3
    retry_delay_ms: int = 1000
    requests_per_minute: int = 60

    # ── Historical dataset ─────────────────────────────────────────────
    dataset_api_url: str = "https://api.github.com/repos/wildangunawan/Dataset-Saham-IDX"
    dataset_raw_url: str = "https://raw.githubusercontent.com/wildangunawan/Dataset-Saham-IDX/master"
    data_dir: Path = Path("data")
    historical_cache_hours: int = 24
    fetch_batch_size: int = 5

    # ── Computed helpers ───────────────────────────────────────────────
    @property
    def historical_cache_ttl(self) -> timedelta:
        return timedelta(hours=self.historical_cache_hours)

    def cache_ttl(
        self, category: Literal["market_overview", "stock_info", "historical", "sector", "static"]
    ) -> int:
        """TTL in seconds for a cache category."""
        return int(getattr(self, f"cache_ttl_{category}"))


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Environment-backed settings, read once by the outermost initialization routine."""
    return Settings()
