"""
Storage Services Package

Provides the abstract ledger store interface and its SQLAlchemy
implementation. Designed to be swappable.
"""

from savings_ledger.services.storage.interface import (
    AmountOverflowError,
    DuplicateEmailError,
    LedgerStorageInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    TargetInUseError,
)
from savings_ledger.services.storage.sql import (
    SqlLedgerStorage,
    create_ledger_engine,
)

__all__ = [
    # Interfaces
    "LedgerStorageInterface",
    # Exceptions
    "AmountOverflowError",
    "DuplicateEmailError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    "TargetInUseError",
    # SQL implementation
    "SqlLedgerStorage",
    "create_ledger_engine",
]
