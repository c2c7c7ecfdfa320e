"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bizmetrics.models.enums import InvalidMetricsPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    db_path: str = Field(default="./data/bizmetrics.duckdb", description="DuckDB file path")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_reload: bool = Field(default=True, description="Enable hot reload")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="CORS allowed origins (comma-separated)",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Metrics engine
    metrics_cache_ttl_seconds: int = Field(
        default=300, ge=0, description="How long a computed snapshot is served from cache"
    )
    snapshot_history_capacity: int = Field(
        default=24, ge=2, description="Ring buffer size for snapshot history"
    )
    history_window_hours: int = Field(
        default=6, ge=1, description="Default window for recent history queries"
    )
    anomaly_change_threshold: float = Field(
        default=0.20, gt=0.0, description="Relative change that flags a warning anomaly"
    )
    consistency_tolerance: float = Field(
        default=0.01, ge=0.0, description="Absolute tolerance for money/percent comparisons"
    )
    max_payment_rate: float = Field(
        default=150.0, gt=0.0, description="Upper bound for payment rate before it is flagged"
    )
    invalid_metrics_policy: InvalidMetricsPolicy = Field(
        default=InvalidMetricsPolicy.SERVE,
        description="What to do with a snapshot that violates business rules (serve|correct|reject)",
    )

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    testing: bool = Field(default=False, description="Testing mode (enables clear_for_testing)")

    @field_validator("cors_origins")
    @classmethod
    def parse_cors_origins(cls, v: str) -> List[str]:
        """Parse comma-separated CORS origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
