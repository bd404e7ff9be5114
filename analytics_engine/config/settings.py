"""
E-Commerce Analytics Engine
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety. Every window length and policy constant used by the analyzers lives
here so a deployment can tune them without code changes.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsSettings(BaseSettings):
    """Analyzer windows, thresholds and policy constants"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    # Cohort retention
    cohort_lookback_days: int = Field(default=365, ge=1, description="Signup lookback for cohorting")

    # Product performance
    product_window_days: int = Field(default=90, ge=1, description="Trailing window for product stats")
    moving_average_rows: int = Field(default=7, ge=1, description="Rows in the product moving average")

    # RFM segmentation
    rfm_window_days: int = Field(default=365, ge=1, description="Trailing window for RFM")
    rfm_bins: int = Field(default=5, ge=1, description="Quantile bins per RFM metric")

    # Market basket
    basket_window_days: int = Field(default=90, ge=1, description="Trailing window for basket mining")
    basket_min_support: int = Field(default=10, ge=1, description="Minimum co-occurrences per pair")
    basket_top_n: int = Field(default=20, ge=1, description="Pairs reported")

    # Category hierarchy
    rollup_window_months: int = Field(default=12, ge=1, description="Trailing months of category sales")

    # Journey, attribution and funnel
    journey_window_days: int = Field(default=30, ge=1, description="Trailing window for event analysis")
    journey_min_path_count: int = Field(default=5, ge=1, description="Minimum journeys per reported path")
    journey_top_n: int = Field(default=20, ge=1, description="Paths reported")
    attribution_window_minutes: int = Field(default=10, ge=0, description="Purchase event to order proximity")

    # Anomaly detection
    anomaly_window_days: int = Field(default=90, ge=1, description="Days of daily sales computed")
    anomaly_baseline_rows: int = Field(default=30, ge=2, description="Rolling baseline length in days")
    anomaly_report_days: int = Field(default=60, ge=1, description="Trailing days reported")
    anomaly_z_threshold: float = Field(default=2.0, gt=0, description="Absolute z-score flag threshold")

    # Pivot and dashboard
    pivot_months: int = Field(default=12, ge=1, le=12, description="Calendar months in the pivot")
    dashboard_window_days: int = Field(default=30, ge=1, description="Dashboard headline window")
    active_user_days: int = Field(default=90, ge=1, description="Activity window for active users")

    # Driver
    max_workers: int = Field(default=4, ge=1, description="Analyzer fan-out workers")


class DataLakeSettings(BaseSettings):
    """Snapshot location and file format"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    snapshot_path: str = Field(default="./data/snapshot", description="Snapshot directory")
    default_format: str = Field(default="parquet", description="Snapshot file format")

    @field_validator("default_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate snapshot format"""
        allowed = ["parquet", "csv", "jsonl"]
        if v.lower() not in allowed:
            raise ValueError(f"Format must be one of: {allowed}")
        return v.lower()


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, description="Log file path")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="ecommerce-analytics-engine", description="Application name")
    app_env: str = Field(default="development", description="Environment")

    # Subsystem configurations
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
