"""
Data Models Package

This package contains all Pydantic models used by the Savings Ledger.
All data flowing through the ledger must conform to these schemas.
"""

from savings_ledger.models.ledger import (
    ApiError,
    ApiResponse,
    CategoryTotal,
    ConsistencyFault,
    CreatedRef,
    DeletionOutcome,
    ErrorKind,
    LedgerStats,
    LoginRequest,
    RegisterRequest,
    SavingsTarget,
    TargetCreate,
    TargetDeletion,
    TargetFilter,
    TargetProgress,
    TargetStatus,
    TargetUpdate,
    Transaction,
    TransactionCreate,
    TransactionFilter,
    TransactionType,
    UserProfile,
    ValidationIssue,
)
from savings_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ApiError",
    "ApiResponse",
    "CategoryTotal",
    "ConsistencyFault",
    "CreatedRef",
    "DeletionOutcome",
    "ErrorKind",
    "LedgerStats",
    "LoginRequest",
    "RegisterRequest",
    "SavingsTarget",
    "TargetCreate",
    "TargetDeletion",
    "TargetFilter",
    "TargetProgress",
    "TargetStatus",
    "TargetUpdate",
    "Transaction",
    "TransactionCreate",
    "TransactionFilter",
    "TransactionType",
    "UserProfile",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
