"""
Configuration Management for Savings Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which knobs exist (database, ledger policy,
application mode) and ensures all configuration is validated at startup.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from savings_ledger.money import MAX_MINOR_UNITS


class TargetDeletePolicy(str, Enum):
    """
    What happens to transactions that still reference a deleted target.

    REJECT refuses the delete while any transaction points at the target.
    UNLINK clears target_id on those transactions and deletes the target.
    """
    REJECT = "reject"
    UNLINK = "unlink"


class DatabaseSettings(BaseSettings):
    """Ledger database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///savings_ledger.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long SQLite waits on a locked database"
    )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class LedgerSettings(BaseSettings):
    """Ledger policy and money configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    target_delete_policy: TargetDeletePolicy = Field(
        default=TargetDeletePolicy.REJECT,
        description="Policy for deleting a target that transactions still reference"
    )
    currency_code: str = Field(
        default="IDR",
        min_length=3,
        max_length=3,
        description="ISO 4217 code used when formatting amounts"
    )
    currency_minor_digits: int = Field(
        default=0,
        ge=0,
        le=4,
        description="Digits after the decimal point in the smallest currency unit"
    )
    max_amount: int = Field(
        default=10**11,
        gt=0,
        description="Upper bound for a single amount, in major units (sanity check)"
    )
    password_hash_method: str = Field(
        default="scrypt",
        description="werkzeug password hashing method"
    )

    @field_validator("currency_code")
    @classmethod
    def upper_currency_code(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def max_amount_fits_storage(self) -> "LedgerSettings":
        # One amount at the bound must still leave room to add many more
        # before a saved amount overflows BIGINT.
        if self.max_amount * 10**self.currency_minor_digits > MAX_MINOR_UNITS // 1000:
            raise ValueError(
                f"max_amount {self.max_amount} is too large for "
                f"{self.currency_minor_digits} minor digit(s)"
            )
        return self


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

    debug_mode: bool = Field(
        default=False,
        description="Force DEBUG logging regardless of log_level"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for each failing group.
    """
    results = {}
    settings = get_settings()

    for name in ("database", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
