"""
Configuration Management for Finance Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable of the engine (alert cooldown, retry policy, sweep interval)
is read from one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per collection
    accounts_sheet_name: str = Field(default="Accounts")
    transactions_sheet_name: str = Field(default="Transactions")
    categories_sheet_name: str = Field(default="Categories")
    budgets_sheet_name: str = Field(default="Budgets")
    goals_sheet_name: str = Field(default="Goals")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    # Single-writer guard
    writer_lease_sheet_name: str = Field(default="WriterLease")
    writer_lease_seconds: int = Field(
        default=60,
        ge=5,
        description="How long a writer keeps the spreadsheet after its last write"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Which storage backend to use"
    )
    default_currency: str = Field(
        default="CFA",
        pattern="^(CFA|EUR|USD)$",
        description="Working currency for new accounts and entries"
    )

    # Budgets
    default_alert_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Alert threshold (percent) for new budgets"
    )
    budget_alert_cooldown_hours: int = Field(
        default=24,
        ge=0,
        description="Minimum hours between two alerts for the same budget"
    )
    auto_budget_lookback_months: int = Field(
        default=3,
        ge=1,
        le=24,
        description="History window for automatic budget suggestions"
    )
    auto_budget_margin: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Safety margin added to suggested budgets"
    )

    # Balance updates
    balance_update_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a balance write that hits a version conflict"
    )
    balance_retry_wait_seconds: float = Field(
        default=0.05,
        ge=0.0,
        le=5.0,
        description="Base wait between conflicting balance writes"
    )

    # Auto-save
    auto_save_sweep_interval_seconds: int = Field(
        default=3600,
        ge=1,
        description="How often the auto-save sweep runs"
    )

    # Dashboard
    recent_transactions_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Number of recent transactions shown on the dashboard"
    )

    @property
    def budget_alert_cooldown_seconds(self) -> int:
        """Get alert cooldown in seconds."""
        return self.budget_alert_cooldown_hours * 60 * 60


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

    # Sub-settings are loaded lazily so the memory backend needs no Google config

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Google Sheets settings are only checked when that backend is selected.
    """
    results = {}

    settings = get_settings()

    try:
        app_settings = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)
        return results

    if app_settings.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
