"""
Configuration Management for the Register Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which thresholds drive reconciliation and
which external services the engine may talk to.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconciliationSettings(BaseSettings):
    """Thresholds for matching bank transactions against manual entries."""

    model_config = SettingsConfigDict(
        env_prefix="RECONCILE_",
        extra="ignore"
    )

    date_window_days: int = Field(
        default=3,
        ge=0,
        le=31,
        description="Maximum days between a manual entry and its bank counterpart"
    )
    amount_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Amounts closer than this are treated as equal"
    )
    payee_similarity_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Jaccard similarity a payee pair must exceed"
    )
    require_payee_match: bool = Field(
        default=False,
        description=(
            "Only accept payee-confirmed matches. When False, a bank transaction "
            "with exactly one amount/date candidate is matched even if the "
            "payees differ."
        )
    )
    conversion_marker: str = Field(
        default="[Converted from manual entry]",
        min_length=1,
        description="Text appended to notes when a manual entry is converted"
    )
    advisor_min_confidence: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Advisor proposals below this confidence are ignored"
    )
    advisor_amount_tolerance: Decimal = Field(
        default=Decimal("5.00"),
        ge=0,
        description="Largest amount gap accepted for an advisor proposal (tips, fees)"
    )


class NotificationSettings(BaseSettings):
    """Default alerting preferences for new ledgers."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        extra="ignore"
    )

    deposits_enabled: bool = Field(default=True)
    debits_enabled: bool = Field(default=True)
    balance_alerts_enabled: bool = Field(
        default=True,
        description="Low-balance and overdraft alerts"
    )
    low_balance_threshold: Decimal = Field(
        default=Decimal("100"),
        description="Warn when the balance drops to or below this amount"
    )
    recent_window_hours: int = Field(
        default=24,
        ge=1,
        description="Only bank transactions dated within this window notify"
    )


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the match advisor."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Upper bound for a single advisor call"
    )


class SyncSettings(BaseSettings):
    """Bank sync workflow configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore"
    )

    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long to wait for the bank data source"
    )
    lookback_days: int = Field(
        default=30,
        ge=1,
        le=730,
        description="How far back each sync asks the bank for transactions"
    )
    recent_payee_limit: int = Field(
        default=20,
        ge=1,
        description="Distinct bank payees offered to the advisor for suggestions"
    )


class StorageSettings(BaseSettings):
    """Key-value persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    state_path: str = Field(
        default="register_state.json",
        description="File used by the JSON key-value storage"
    )
    key_prefix: str = Field(
        default="register",
        description="Namespace prepended to every persisted key"
    )

    @field_validator('key_prefix')
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        """Keys are joined with ':' so the prefix may not contain one."""
        if ":" in v:
            raise ValueError("key_prefix must not contain ':'")
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

    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    # Semantic validation thresholds
    max_transaction_amount: Decimal = Field(
        default=Decimal("1000000"),
        description="Amounts above this are flagged for review"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a manual entry can be dated"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def reconciliation(self) -> ReconciliationSettings:
        return ReconciliationSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

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

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, Optional[bool | str]]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus `<name>_error`
    entries for the groups that failed. Useful for startup checks.
    """
    results: dict[str, Optional[bool | str]] = {}

    settings = get_settings()

    for name in ("reconciliation", "notifications", "gemini", "sync", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
