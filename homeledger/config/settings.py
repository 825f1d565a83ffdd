"""
Configuration Management for Home Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The balance engine itself takes plain arguments; only the layers around
it (validator, store, recompute coordinator) read settings.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Supabase ledger store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    key: str = Field(
        ...,
        description="Supabase API key"
    )

    # Table names within the project
    expenses_table: str = Field(default="expenses")
    payments_table: str = Field(default="payment_requests")
    profiles_table: str = Field(default="profiles")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Supabase URL must be http(s): {v}")
        return v.rstrip("/")


class LedgerSettings(BaseSettings):
    """Balance computation and display settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    currency_code: str = Field(
        default="BDT",
        min_length=3,
        max_length=3,
        description="Only currency accepted on ledger records"
    )
    currency_symbol: str = Field(
        default="৳",
        description="Symbol used when displaying amounts"
    )
    display_decimals: int = Field(
        default=2,
        ge=0,
        le=6,
    )
    unknown_user_label: str = Field(
        default="Unknown User",
        description="Label for users missing from the profile directory"
    )
    skip_invalid_records: bool = Field(
        default=False,
        description="Compute with the valid records instead of failing"
    )
    recompute_debounce_seconds: float = Field(
        default=0.25,
        ge=0.0,
        le=30.0,
        description="Window in which change notifications are coalesced"
    )

    @field_validator('currency_code')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


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
    )
    debug_mode: bool = Field(
        default=False,
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$",
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are loaded lazily so a missing Supabase configuration
    does not stop the engine from running against an in-memory store.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus '<name>_error'
    entries for the ones that failed. Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    for name in ("supabase", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
