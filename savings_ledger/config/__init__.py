"""Configuration package."""

from savings_ledger.config.settings import (
    AppSettings,
    DatabaseSettings,
    LedgerSettings,
    Settings,
    TargetDeletePolicy,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LedgerSettings",
    "Settings",
    "TargetDeletePolicy",
    "get_settings",
    "validate_all_settings",
]
