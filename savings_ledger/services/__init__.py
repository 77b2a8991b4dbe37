"""Services package."""

from savings_ledger.services.security import (
    InvalidCredentialsError,
    hash_credential,
    verify_credential,
)
from savings_ledger.services.storage import (
    AmountOverflowError,
    DuplicateEmailError,
    LedgerStorageInterface,
    NotFoundError,
    SqlLedgerStorage,
    StorageConnectionError,
    StorageError,
    TargetInUseError,
    create_ledger_engine,
)

__all__ = [
    # Credential services
    "InvalidCredentialsError",
    "hash_credential",
    "verify_credential",
    # Storage services
    "AmountOverflowError",
    "DuplicateEmailError",
    "LedgerStorageInterface",
    "NotFoundError",
    "SqlLedgerStorage",
    "StorageConnectionError",
    "StorageError",
    "TargetInUseError",
    "create_ledger_engine",
]
