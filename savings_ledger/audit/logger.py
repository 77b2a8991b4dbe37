"""
Audit Logger

DESIGN DECISION: Every ledger mutation and authentication attempt is logged.
This provides:
1. Traceability of who changed which ledger entry
2. Debugging capability when a saved amount looks wrong
3. A visible record of clamped consistency faults

The audit logger:
- Gracefully handles failures (a broken sink never breaks a ledger write)
- Supports correlation IDs to tie together events from one API call
- Never receives credentials
"""

import logging
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import structlog

from savings_ledger.config import AppSettings, get_settings
from savings_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(app_settings: Optional[AppSettings] = None) -> str:
    """
    Send structlog output through the stdlib root logger.

    Call once from the process entry point. debug_mode forces DEBUG,
    otherwise log_level applies. Returns the level that was set.
    """
    app_settings = app_settings or get_settings().app
    level = "DEBUG" if app_settings.debug_mode else app_settings.log_level
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(level)
    return level


AuditSink = Callable[[AuditEvent], None]


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. An optional sink (e.g. a collector in tests, a shipper in production)
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        """
        Initialize audit logger.

        Args:
            sink: Callable receiving every event.
                  If None, only logs locally.
        """
        self._sink = sink
        self._logger = structlog.get_logger("savings_ledger.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Hands the event to the sink if one is set.

        Returns True if the sink accepted it (or no sink is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._sink:
            try:
                self._sink(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_sink_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_user_registered(self, user_id: int, correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.user_registered(user_id, correlation_id))

    def log_registration_rejected(self, reason: str, correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.registration_rejected(reason, correlation_id))

    def log_login(self, user_id: Optional[int], correlation_id: UUID) -> None:
        """Log a login attempt; user_id is None when it failed."""
        if user_id is None:
            self.log(AuditEventBuilder.login_failed(correlation_id))
        else:
            self.log(AuditEventBuilder.login_succeeded(user_id, correlation_id))

    def log_transaction_created(
        self,
        transaction_id: int,
        owner_id: int,
        transaction_type: str,
        amount: str,
        target_id: Optional[int],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            owner_id=owner_id,
            transaction_type=transaction_type,
            amount=amount,
            target_id=target_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(
        self,
        transaction_id: int,
        owner_id: int,
        target_id: Optional[int],
        reversed_amount: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            owner_id=owner_id,
            target_id=target_id,
            reversed_amount=reversed_amount,
            correlation_id=correlation_id,
        ))

    def log_target_created(
        self,
        target_id: int,
        owner_id: int,
        target_amount: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.target_created(
            target_id=target_id,
            owner_id=owner_id,
            target_amount=target_amount,
            correlation_id=correlation_id,
        ))

    def log_target_updated(
        self,
        target_id: int,
        owner_id: int,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.target_updated(
            target_id=target_id,
            owner_id=owner_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    def log_target_deleted(
        self,
        target_id: int,
        owner_id: int,
        policy: str,
        unlinked_transaction_ids: list[int],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.target_deleted(
            target_id=target_id,
            owner_id=owner_id,
            policy=policy,
            unlinked_transaction_ids=unlinked_transaction_ids,
            correlation_id=correlation_id,
        ))

    def log_target_delete_rejected(
        self,
        target_id: int,
        owner_id: int,
        reference_count: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.target_delete_rejected(
            target_id=target_id,
            owner_id=owner_id,
            reference_count=reference_count,
            correlation_id=correlation_id,
        ))

    def log_consistency_fault(
        self,
        target_id: int,
        owner_id: int,
        description: str,
        details: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.consistency_fault(
            target_id=target_id,
            owner_id=owner_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an API call and pass it through.
    """
    return uuid4()
