"""
Credential Hashing and Authentication

Credentials are stored only as salted hashes produced by
werkzeug.security. The plain credential is never persisted or logged.
"""

from typing import Optional

import structlog
from werkzeug.security import check_password_hash, generate_password_hash

from savings_ledger.config import get_settings
from savings_ledger.models.ledger import UserProfile
from savings_ledger.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class InvalidCredentialsError(Exception):
    """Unknown email or wrong credential. Deliberately does not say which."""

    def __init__(self):
        super().__init__("Invalid credentials")


def hash_credential(credential: str, method: Optional[str] = None) -> str:
    """Salted hash of a credential, safe to store."""
    method = method or get_settings().ledger.password_hash_method
    return generate_password_hash(credential, method=method)


def verify_credential(credential_hash: str, credential: str) -> bool:
    return check_password_hash(credential_hash, credential)


class Authenticator:
    """Checks a login attempt against the stored credential hash."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    def authenticate(self, email: str, credential: str) -> UserProfile:
        """
        Return the user for a matching email/credential pair.

        Raises:
            InvalidCredentialsError: If the email is unknown or the
                credential does not match
        """
        found = self._storage.get_user_by_email(email)
        if found is None:
            raise InvalidCredentialsError()

        user, credential_hash = found
        if not verify_credential(credential_hash, credential):
            logger.info("credential_mismatch", user_id=user.id)
            raise InvalidCredentialsError()

        return user
