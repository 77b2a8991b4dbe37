"""Credential hashing and authentication package."""

from savings_ledger.services.security.credentials import (
    Authenticator,
    InvalidCredentialsError,
    hash_credential,
    verify_credential,
)

__all__ = [
    "Authenticator",
    "InvalidCredentialsError",
    "hash_credential",
    "verify_credential",
]
