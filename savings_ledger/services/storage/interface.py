"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Swap SQLite for PostgreSQL (or anything else) without touching the API
2. Keep the ownership checks and linking rule in one contract
3. Keep business logic decoupled from storage implementation

CONTRACT:
- Every owner-scoped method takes the acting owner_id. An entity owned by
  someone else is reported exactly like a missing one (NotFoundError), so
  callers cannot discover other users' data.
- Every mutating method is one atomic unit of work: either every row
  change lands or none does.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional

from savings_ledger.config import TargetDeletePolicy
from savings_ledger.models.ledger import (
    DeletionOutcome,
    SavingsTarget,
    TargetDeletion,
    TargetStatus,
    Transaction,
    TransactionType,
    UserProfile,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (SQLite, PostgreSQL, etc.)
    must implement these methods.
    """

    # -- users ---------------------------------------------------------------

    @abstractmethod
    def create_user(
        self,
        name: str,
        email: str,
        credential_hash: str,
    ) -> UserProfile:
        """
        Create a user.

        Raises:
            DuplicateEmailError: If the email is already registered
        """
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[tuple[UserProfile, str]]:
        """
        Look up a user by (normalized) email.

        Returns:
            (profile, credential_hash) if found, None otherwise
        """
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserProfile]:
        pass

    # -- targets -------------------------------------------------------------

    @abstractmethod
    def create_target(
        self,
        owner_id: int,
        name: str,
        target_amount: Decimal,
        deadline: Optional[date] = None,
        description: Optional[str] = None,
    ) -> SavingsTarget:
        """
        Create a savings target with saved_amount 0 and status active.

        Raises:
            NotFoundError: If the owner does not exist
        """
        pass

    @abstractmethod
    def get_target(self, owner_id: int, target_id: int) -> SavingsTarget:
        """
        Raises:
            NotFoundError: If absent or owned by someone else
        """
        pass

    @abstractmethod
    def list_targets(
        self,
        owner_id: int,
        status: Optional[TargetStatus] = None,
    ) -> list[SavingsTarget]:
        """List the owner's targets, newest first."""
        pass

    @abstractmethod
    def update_target(
        self,
        owner_id: int,
        target_id: int,
        saved_amount: Optional[Decimal] = None,
        status: Optional[TargetStatus] = None,
    ) -> SavingsTarget:
        """
        Apply a partial update.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        pass

    @abstractmethod
    def delete_target(
        self,
        owner_id: int,
        target_id: int,
        policy: TargetDeletePolicy = TargetDeletePolicy.REJECT,
    ) -> TargetDeletion:
        """
        Delete a target according to the given policy.

        Raises:
            NotFoundError: If absent or owned by someone else
            TargetInUseError: If policy is REJECT and transactions reference it
        """
        pass

    # -- transactions --------------------------------------------------------

    @abstractmethod
    def create_transaction(
        self,
        owner_id: int,
        type: TransactionType,
        category: str,
        amount: Decimal,
        date: date,
        description: Optional[str] = None,
        target_id: Optional[int] = None,
    ) -> Transaction:
        """
        Record a transaction and apply the target-linking rule in the same
        unit of work.

        Raises:
            NotFoundError: If the owner or the referenced target is not found
        """
        pass

    @abstractmethod
    def get_transaction(self, owner_id: int, transaction_id: int) -> Transaction:
        pass

    @abstractmethod
    def list_transactions(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        """
        List the owner's transactions, newest date first.

        Args:
            date_from: Only transactions dated on or after this date
            date_to: Only transactions dated on or before this date
            type: Only income or only expense
        """
        pass

    @abstractmethod
    def delete_transaction(
        self,
        owner_id: int,
        transaction_id: int,
    ) -> DeletionOutcome:
        """
        Delete a transaction and reverse its target link in the same unit
        of work. A saved_amount underflow is clamped and reported in the
        outcome, never raised.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage, or not owned by the caller."""

    def __init__(self, entity_type: str, entity_id: Optional[int]):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class DuplicateEmailError(StorageError):
    """Attempted to register an email that already exists."""

    def __init__(self, email: str):
        self.email = email
        super().__init__("Email already exists")


class TargetInUseError(StorageError):
    """Target cannot be deleted while transactions reference it."""

    def __init__(self, target_id: int, reference_count: int):
        self.target_id = target_id
        self.reference_count = reference_count
        super().__init__(
            f"Target {target_id} is referenced by {reference_count} transaction(s)"
        )


class AmountOverflowError(StorageError):
    """A target's saved amount would exceed the largest storable amount."""

    def __init__(self, target_id: int):
        self.target_id = target_id
        super().__init__(
            f"Target {target_id} cannot hold any more: saved amount would overflow"
        )


class StorageConnectionError(StorageError):
    """Could not reach the storage backend, or it stayed busy."""
    pass
