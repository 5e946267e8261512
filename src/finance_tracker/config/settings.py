"""
Configuration Management for the Finance Tracker Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All thresholds and limits live here.
The engine components receive settings by injection, so tests can build
their own instance instead of touching the environment.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Thresholds and limits used by validation, derivation and alerts."""
    
    model_config = SettingsConfigDict(
        env_prefix="FINANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Alert thresholds (percentage of limit/target consumed)
    warning_threshold: Decimal = Field(
        default=Decimal("80"),
        gt=0,
        description="Percentage at which a budget alert becomes a warning"
    )
    danger_threshold: Decimal = Field(
        default=Decimal("100"),
        gt=0,
        description="Percentage at which a budget alert becomes danger"
    )
    
    # Budget rules
    max_budget_limit: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Largest allowed budget limit"
    )
    budget_end_date_tolerance_days: int = Field(
        default=1,
        ge=0,
        le=7,
        description="Allowed drift between an explicit end date and the period end"
    )
    
    # Goal rules
    max_goal_target: Decimal = Field(
        default=Decimal("10000000"),
        gt=0,
        description="Largest allowed goal target amount"
    )
    goal_overshoot_ratio: Decimal = Field(
        default=Decimal("1.1"),
        ge=1,
        description="How far current amount may exceed the target at validation time"
    )
    goal_behind_schedule_window_days: int = Field(
        default=30,
        ge=0,
        description="Goals behind schedule alert only inside this many days of the target"
    )
    
    # Money
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency used for formatting and net worth"
    )
    
    @field_validator('default_currency')
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.upper()
    
    @model_validator(mode='after')
    def validate_thresholds(self) -> 'EngineSettings':
        if self.warning_threshold >= self.danger_threshold:
            raise ValueError("Warning threshold must be below danger threshold")
        return self


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="FINANCE_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render JSON lines instead of console output"
    )
    
    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return v.upper()


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
    
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    
    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()
    
    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


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
    
    Returns a dict of {setting_name: is_valid}, with an
    additional "<name>_error" entry for every failure.
    """
    results = {}
    
    settings = get_settings()
    
    for name in ("engine", "logging"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results
