"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Record store
    store_backend: str = Field(default="memory", description="Record store backend (memory|duckdb)")
    db_path: str = Field(default="./data/bizpulse.duckdb", description="DuckDB file path")

    # Redis cache
    cache_enabled: bool = Field(default=True, description="Enable the report cache")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    redis_socket_timeout: float = Field(default=2.0, gt=0, description="Redis socket timeout (seconds)")
    cache_prefix: str = Field(default="analytics", description="Namespace prefix for report cache keys")
    cache_ttl_seconds: int = Field(default=300, ge=1, description="Default report TTL")
    cache_freshness_seconds: int = Field(
        default=300, ge=1, description="Entries older than this are treated as misses"
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Engine Configuration
    fanout_max_workers: int = Field(default=6, ge=1, le=32, description="Concurrent sub-aggregations per report")
    forecast_lookback_months: int = Field(default=6, ge=1, description="Months of revenue history for forecasting")
    forecast_band: float = Field(default=0.2, gt=0.0, lt=1.0, description="Advanced forecast band (fraction)")
    basket_lookback_months: int = Field(default=6, ge=1, description="Market basket lookback window")
    basket_min_support: int = Field(default=2, ge=1, description="Minimum pair co-occurrence count")
    basket_top_k: int = Field(default=10, ge=1, description="Number of product pairs returned")
    cohort_months_back: int = Field(default=6, ge=1, description="Cohort matrix lookback")
    dead_stock_days: int = Field(default=90, ge=1, description="Days without sales before stock is dead")
    run_rate_window_days: int = Field(default=30, ge=1, description="Sales velocity window")
    stockout_horizon_days: int = Field(default=14, ge=1, description="Surface items running out within this horizon")
    churn_threshold_days: int = Field(default=90, ge=1, description="Days since last purchase before churn risk")

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Only the in-memory and DuckDB record stores are supported."""
        v = v.strip().lower()
        if v not in ("memory", "duckdb"):
            raise ValueError(f"Unsupported store backend: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("json", "console"):
            raise ValueError(f"Unsupported log format: {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
