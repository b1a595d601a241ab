"""
Configuration Management for Moneta

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Scheduling and archival behaviour that the composing application may want
to tune (auto-run triggers, archive lookback, metric thresholds, storage
backend) is declared and validated in one place.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Recurring transaction scheduler configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONETA_SCHEDULER_",
        extra="ignore"
    )

    run_on_business_switch: bool = Field(
        default=True,
        description="Run due recurring rules whenever the business context changes"
    )
    run_on_start: bool = Field(
        default=True,
        description="Run due recurring rules for the active business at app start"
    )


class ArchiveSettings(BaseSettings):
    """Monthly statement archival configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONETA_ARCHIVE_",
        extra="ignore"
    )

    lookback_years: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Calendar years (including the current one) scanned by the auto-archive sweep"
    )
    auto_archive_on_start: bool = Field(
        default=True,
        description="Run the auto-archive sweep at app start"
    )


class MetricsSettings(BaseSettings):
    """Dashboard metric configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONETA_METRICS_",
        extra="ignore"
    )

    tax_reserve_rate: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Share of total business income set aside for taxes"
    )
    fixed_cost_categories: str = Field(
        default="Software/SaaS,Hosting",
        description="Comma-separated category names counted as fixed costs"
    )

    @property
    def fixed_cost_categories_list(self) -> list[str]:
        """Get fixed cost category names as a list."""
        return [
            name.strip()
            for name in self.fixed_cost_categories.split(",")
            if name.strip()
        ]


class StorageSettings(BaseSettings):
    """Storage backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONETA_STORAGE_",
        extra="ignore"
    )

    backend: Literal["memory", "json"] = Field(
        default="memory",
        description="Storage backend to use"
    )
    data_dir: str = Field(
        default=".moneta",
        description="Directory holding JSON datasets (json backend only)"
    )

    @field_validator('data_dir')
    @classmethod
    def validate_data_dir(cls, v: str) -> str:
        """Reject paths that point at an existing regular file."""
        if Path(v).is_file():
            raise ValueError(f"Storage data_dir is a file, not a directory: {v}")
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def scheduler(self) -> SchedulerSettings:
        return SchedulerSettings()

    @property
    def archive(self) -> ArchiveSettings:
        return ArchiveSettings()

    @property
    def metrics(self) -> MetricsSettings:
        return MetricsSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry describing each failure.
    """
    results = {}

    settings = get_settings()

    for name in ("scheduler", "archive", "metrics", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
