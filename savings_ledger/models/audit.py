"""
Audit Models for Savings Ledger

Every ledger mutation and every authentication attempt is logged for
audit purposes. This provides:
1. Traceability of who changed which ledger entry
2. Debugging information when totals look wrong
3. A record of consistency faults that were clamped

DESIGN DECISION: Audit events are append-only and never carry credentials.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Authentication
    USER_REGISTERED = "user_registered"
    REGISTRATION_REJECTED = "registration_rejected"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"

    # Targets
    TARGET_CREATED = "target_created"
    TARGET_UPDATED = "target_updated"
    TARGET_DELETED = "target_deleted"
    TARGET_DELETE_REJECTED = "target_delete_rejected"

    # Invariants
    CONSISTENCY_FAULT = "consistency_fault"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'target', 'transaction')"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    owner_id: Optional[int] = Field(
        default=None,
        description="User whose ledger was touched"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events raised by one API call"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "owner_id": self.owner_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.user_registered(user_id, correlation_id)
        event = AuditEventBuilder.transaction_deleted(...)
    """

    @staticmethod
    def user_registered(
        user_id: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user_id,
            owner_id=user_id,
            correlation_id=correlation_id,
            description=f"User {user_id} registered",
            is_user_action=True,
        )

    @staticmethod
    def registration_rejected(
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REGISTRATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            correlation_id=correlation_id,
            description="Registration rejected",
            details={"reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def login_succeeded(
        user_id: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="user",
            entity_id=user_id,
            owner_id=user_id,
            correlation_id=correlation_id,
            description=f"User {user_id} logged in",
            is_user_action=True,
        )

    @staticmethod
    def login_failed(
        correlation_id: UUID,
    ) -> AuditEvent:
        # The attempted email is deliberately left out.
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            correlation_id=correlation_id,
            description="Login failed: invalid credentials",
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        transaction_id: int,
        owner_id: int,
        transaction_type: str,
        amount: str,
        target_id: Optional[int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} of {amount} recorded",
            details={
                "type": transaction_type,
                "amount": amount,
                "target_id": target_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: int,
        owner_id: int,
        target_id: Optional[int],
        reversed_amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Transaction {transaction_id} deleted",
            details={
                "target_id": target_id,
                "reversed_amount": reversed_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def target_created(
        target_id: int,
        owner_id: int,
        target_amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TARGET_CREATED,
            entity_type="target",
            entity_id=target_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Savings target {target_id} created",
            details={"target_amount": target_amount},
            is_user_action=True,
        )

    @staticmethod
    def target_updated(
        target_id: int,
        owner_id: int,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TARGET_UPDATED,
            entity_type="target",
            entity_id=target_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Savings target {target_id} updated",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def target_deleted(
        target_id: int,
        owner_id: int,
        policy: str,
        unlinked_transaction_ids: list[int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TARGET_DELETED,
            entity_type="target",
            entity_id=target_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Savings target {target_id} deleted",
            details={
                "policy": policy,
                "unlinked_transaction_ids": unlinked_transaction_ids,
            },
            is_user_action=True,
        )

    @staticmethod
    def target_delete_rejected(
        target_id: int,
        owner_id: int,
        reference_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TARGET_DELETE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="target",
            entity_id=target_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=(
                f"Savings target {target_id} still referenced by "
                f"{reference_count} transaction(s)"
            ),
            details={"reference_count": reference_count},
            is_user_action=True,
        )

    @staticmethod
    def consistency_fault(
        target_id: int,
        owner_id: int,
        description: str,
        details: dict[str, Any],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONSISTENCY_FAULT,
            severity=AuditSeverity.WARNING,
            entity_type="target",
            entity_id=target_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=description[:500],
            details=details,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} validation issue(s)",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
