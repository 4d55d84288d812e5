"""
Configuration Management for BudgetDrop

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine itself takes plain values (thresholds, providers) so it can be
tested without any environment; only the session layer reads settings.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from budgetdrop.models.ledger import (
    CURRENCY_THRESHOLDS,
    DEFAULT_HOLDING_THRESHOLD,
    Currency,
)


class LedgerSettings(BaseSettings):
    """Allocation ledger behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGETDROP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_holding_threshold: float = Field(
        default=DEFAULT_HOLDING_THRESHOLD,
        ge=0.0,
        description="Near-zero threshold for currencies without an explicit one"
    )
    currency_thresholds: dict[Currency, float] = Field(
        default_factory=dict,
        description="Per-currency near-zero threshold overrides (JSON object)"
    )
    autosave: bool = Field(
        default=True,
        description="Save a snapshot after every state-changing action"
    )
    event_history_limit: int = Field(
        default=500,
        ge=1,
        le=100000,
        description="How many events the in-memory event store keeps"
    )

    @field_validator('currency_thresholds')
    @classmethod
    def validate_thresholds(cls, v: dict[Currency, float]) -> dict[Currency, float]:
        """Thresholds are magnitudes; negative values make no sense."""
        for currency, threshold in v.items():
            if threshold < 0:
                raise ValueError(f"Threshold for {currency.value} must be >= 0")
        return v

    @property
    def thresholds(self) -> dict[Currency, float]:
        """Built-in thresholds with overrides applied."""
        merged = dict(CURRENCY_THRESHOLDS)
        merged.update(self.currency_thresholds)
        return merged


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGETDROP_LOG_",
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
        description="Render log lines as JSON (False = console renderer)"
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

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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
