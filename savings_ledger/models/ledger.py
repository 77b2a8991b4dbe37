"""
Core Data Models for Savings Ledger

These models define the strict schemas for all data flowing through the ledger.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for presentation clients and logging
4. Keep money exact (Decimal, never float)

DESIGN DECISION: Request models (what a client sends) are separate from
entity models (what the store returns). Request models only check shape;
anything that needs configuration or storage access is checked by the
validator and the store.
"""

from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money for a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


class TargetStatus(str, Enum):
    """
    Savings target status.

    CRITICAL: A target becomes COMPLETED only by explicit user action,
    never because saved_amount reached target_amount.
    """
    ACTIVE = "active"
    COMPLETED = "completed"


class ErrorKind(str, Enum):
    """Error kinds returned by the Ledger API."""
    VALIDATION_ERROR = "validation_error"
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_FOUND = "not_found"
    TARGET_IN_USE = "target_in_use"
    STORAGE_ERROR = "storage_error"


# =============================================================================
# ENTITIES
# =============================================================================

class UserProfile(BaseModel):
    """
    Public view of a user.

    The credential hash never leaves the store.
    """

    id: int
    name: str
    email: str
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SavingsTarget(BaseModel):
    """A savings goal owned by one user."""

    id: int
    owner_id: int
    name: str
    target_amount: Decimal = Field(..., gt=0)
    saved_amount: Decimal = Field(default=Decimal(0), ge=0)
    deadline: Optional[date] = None
    description: Optional[str] = None
    status: TargetStatus = TargetStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def progress_percent(self) -> int:
        """Whole percent saved, rounded down. Not capped at 100."""
        ratio = self.saved_amount * 100 / self.target_amount
        return int(ratio.to_integral_value(rounding=ROUND_FLOOR))

    @property
    def is_reached(self) -> bool:
        return self.saved_amount >= self.target_amount


class Transaction(BaseModel):
    """A single income or expense entry. Immutable once created."""

    id: int
    owner_id: int
    type: TransactionType
    category: str
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    date: date
    target_id: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_linked_income(self) -> bool:
        """Only income with a target contributes to a target's saved amount."""
        return self.type == TransactionType.INCOME and self.target_id is not None


# =============================================================================
# REQUEST MODELS - shape checks only
# =============================================================================

# Credentials are hashed exactly as typed: no stripping, no case folding.
Credential = Annotated[str, StringConstraints(min_length=1, max_length=256)]


class RegisterRequest(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]
    email: EmailStr
    credential: Credential

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    email: Annotated[
        str,
        StringConstraints(strip_whitespace=True, to_lower=True, min_length=1, max_length=255),
    ]
    credential: Credential


class TransactionCreate(BaseModel):
    """Request to log a transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: int = Field(..., gt=0)
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0)
    date: date
    description: Optional[str] = Field(default=None, max_length=1000)
    target_id: Optional[int] = Field(default=None, gt=0)


class TargetCreate(BaseModel):
    """
    Request to create a savings target.

    Clients send the goal amount as "amount"; it is exposed as target_amount.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    owner_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., gt=0, alias="amount")
    deadline: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=1000)


class TargetUpdate(BaseModel):
    """Partial update of a target: direct saved_amount adjustment and/or status."""

    saved_amount: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[TargetStatus] = None

    @model_validator(mode="after")
    def require_a_change(self) -> "TargetUpdate":
        if self.saved_amount is None and self.status is None:
            raise ValueError("Nothing to update: provide saved_amount and/or status")
        return self


class TransactionFilter(BaseModel):
    """Optional narrowing of a transaction listing."""

    date_from: Optional[date] = None
    date_to: Optional[date] = None
    type: Optional[TransactionType] = None

    @model_validator(mode="after")
    def validate_range(self) -> "TransactionFilter":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class TargetFilter(BaseModel):
    status: Optional[TargetStatus] = None


# =============================================================================
# RESULT MODELS
# =============================================================================

class CreatedRef(BaseModel):
    """Identifier of a freshly created entity."""
    id: int


class ConsistencyFault(BaseModel):
    """
    A target's saved_amount would have gone negative while reversing a
    deleted income. The value was clamped to zero.
    """

    target_id: int
    transaction_id: int
    saved_before: Decimal
    reversed_amount: Decimal
    shortfall: Decimal

    def describe(self) -> str:
        return (
            f"Target {self.target_id} had only {self.saved_before} saved while "
            f"reversing {self.reversed_amount} from transaction {self.transaction_id}; "
            f"clamped to 0 (shortfall {self.shortfall})"
        )


class DeletionOutcome(BaseModel):
    """What a transaction delete did to the ledger."""

    transaction_id: int
    target_id: Optional[int] = None
    reversed_amount: Decimal = Decimal(0)
    consistency_fault: Optional[ConsistencyFault] = None


class TargetDeletion(BaseModel):
    """What a target delete did to the ledger."""

    target_id: int
    unlinked_transaction_ids: list[int] = Field(default_factory=list)


class LedgerStats(BaseModel):
    """Summary statistics computed on read."""

    balance: Decimal
    monthly_income: Decimal
    monthly_expense: Decimal
    total_income: Decimal
    total_expense: Decimal
    window_start: date
    window_end: date


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal


class TargetProgress(BaseModel):
    target_id: int
    name: str
    status: TargetStatus
    saved_amount: Decimal
    target_amount: Decimal
    progress_percent: int
    is_reached: bool


# =============================================================================
# API ENVELOPE
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'precision')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ApiError(BaseModel):
    kind: ErrorKind
    message: str
    issues: list[ValidationIssue] = Field(default_factory=list)


class ApiResponse(BaseModel):
    """
    Structured result of every Ledger API call.

    Exactly one of data/error is meaningful, depending on success.
    Warnings never block; they report things like clamped consistency faults.
    """

    success: bool
    data: Any = None
    error: Optional[ApiError] = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None, warnings: Optional[list[str]] = None) -> "ApiResponse":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ) -> "ApiResponse":
        return cls(
            success=False,
            error=ApiError(kind=kind, message=message, issues=issues or []),
        )

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None
