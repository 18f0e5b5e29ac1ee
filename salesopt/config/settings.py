"""
Sales Optimization Analytics
Centralized Configuration Management

Configuration for the batch run using Pydantic settings with environment
variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store for published extracts"""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(
        default="sqlite+aiosqlite:///./data/sales_optimization.db",
        description="Async SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL queries")
    insert_chunk_size: int = Field(default=5000, description="Rows per insert batch")


class DataLakeSettings(BaseSettings):
    """Data Lake Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    raw_path: str = Field(default="./data/raw", description="Raw data zone path")
    staging_path: str = Field(default="./data/staging", description="Staging zone path")
    curated_path: str = Field(default="./data/curated", description="Curated zone path")

    source_file: str = Field(default="Global-Superstore.csv", description="Transactions CSV in the raw zone")
    delimiter: str = Field(default=",", description="CSV field separator")
    encoding: str = Field(default="utf8-lossy", description="CSV encoding (utf8 or utf8-lossy)")
    date_formats: List[str] = Field(
        default=["%Y-%m-%d", "%d-%m-%Y", "%m/%d/%Y", "%d/%m/%Y"],
        description="Accepted date formats, tried in order",
    )
    null_values: List[str] = Field(
        default=["", "NULL", "null", "None", "NA", "N/A"],
        description="Raw tokens read as null",
    )


class AnalysisSettings(BaseSettings):
    """Aggregation, anomaly and decision gate thresholds"""

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_")

    # Decision gates
    scale_threshold: float = Field(default=0.05, description="Minimum revenue share for the scale gate")
    organic_demand_cutoff: float = Field(default=0.5, description="Maximum discounted-order share")
    max_negative_periods: int = Field(default=1, description="Negative YoY periods tolerated by the stability gate")

    # Year over year
    yoy_lag_default: Optional[float] = Field(
        default=0.0,
        description="Baseline used when a group has no prior period (None leaves it null)",
    )

    # Reproducible sampling
    sample_size: int = Field(default=10, description="Rows in the materialized sample")
    sample_seed: int = Field(default=42, description="Seed for the materialized sample")

    # Profit anomaly
    anomaly_magnitude_ratio: float = Field(
        default=100.0,
        description="|min profit| / min sales above which profit is considered extreme",
    )
    anomaly_persistence_ratio: float = Field(
        default=0.1,
        description="Negative/positive profit ratio a year must reach to count as persistent",
    )
    anomaly_z_threshold: float = Field(default=3.0, description="Z-score threshold for profit outliers")
    anomaly_explained_correlation: float = Field(
        default=0.8,
        description="|r| with an explanatory field above which the anomaly is explained",
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


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
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="sales-optimization", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
