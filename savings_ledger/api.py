"""
Ledger API

This module ties together all the components and defines the request/
response boundary that presentation clients (web pages, bots, CLIs) call:

1. Auth (register, login)
2. Transactions (list, create, delete)
3. Savings targets (list, create, update, delete)
4. Reports (stats, category breakdown, target progress)

DESIGN DECISION: The API enforces the boundaries:
- Input is validated before the store is touched
- Every owner-scoped call passes the acting owner_id down to the store
- Every call returns an ApiResponse; no exception escapes
- Every mutation is audited

Transport (HTTP routes, status codes, sessions) is the client's concern.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

from savings_ledger.audit import AuditLogger, create_correlation_id
from savings_ledger.config import (
    DatabaseSettings,
    LedgerSettings,
    TargetDeletePolicy,
    get_settings,
)
from savings_ledger.models.ledger import (
    ApiResponse,
    CreatedRef,
    ErrorKind,
    ValidationIssue,
)
from savings_ledger.money import format_amount
from savings_ledger.queries import AggregationEngine
from savings_ledger.services.security import (
    Authenticator,
    InvalidCredentialsError,
    hash_credential,
)
from savings_ledger.services.storage import (
    AmountOverflowError,
    DuplicateEmailError,
    LedgerStorageInterface,
    NotFoundError,
    SqlLedgerStorage,
    StorageError,
    TargetInUseError,
    create_ledger_engine,
)
from savings_ledger.validation import LedgerValidationError, LedgerValidator


class LedgerAPI:
    """
    Operation boundary of the ledger.

    Every public method returns an ApiResponse:
    - success=True with data (and possibly warnings)
    - success=False with an ApiError whose kind is one of ErrorKind
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        ledger_settings: Optional[LedgerSettings] = None,
        validator: Optional[LedgerValidator] = None,
        aggregation: Optional[AggregationEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._settings = ledger_settings or get_settings().ledger
        self._storage = storage
        self._validator = validator or LedgerValidator(self._settings)
        self._aggregation = aggregation or AggregationEngine(storage, clock=clock)
        self._authenticator = Authenticator(storage)
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def delete_policy(self) -> TargetDeletePolicy:
        return self._settings.target_delete_policy

    def display_amount(self, amount: Decimal) -> str:
        """Amount formatted for people, rounded at the currency's minor unit."""
        return format_amount(
            amount,
            self._settings.currency_code,
            self._settings.currency_minor_digits,
        )

    # -- error boundary ------------------------------------------------------

    def _run(
        self,
        operation: str,
        action: Callable[[UUID], ApiResponse],
        owner_id: Any = None,
    ) -> ApiResponse:
        """
        Run one operation and map every failure to a structured result.
        """
        correlation_id = create_correlation_id()
        try:
            return action(correlation_id)

        except LedgerValidationError as e:
            self._audit_logger.log_validation_failed(
                operation=operation,
                issues=[issue.model_dump() for issue in e.issues],
                correlation_id=correlation_id,
            )
            return ApiResponse.fail(ErrorKind.VALIDATION_ERROR, str(e), e.issues)

        except DuplicateEmailError as e:
            self._audit_logger.log_registration_rejected("duplicate_email", correlation_id)
            return ApiResponse.fail(ErrorKind.DUPLICATE_EMAIL, str(e))

        except InvalidCredentialsError as e:
            self._audit_logger.log_login(None, correlation_id)
            return ApiResponse.fail(ErrorKind.INVALID_CREDENTIALS, str(e))

        except NotFoundError as e:
            return ApiResponse.fail(ErrorKind.NOT_FOUND, str(e))

        except TargetInUseError as e:
            self._audit_logger.log_target_delete_rejected(
                target_id=e.target_id,
                owner_id=owner_id,
                reference_count=e.reference_count,
                correlation_id=correlation_id,
            )
            return ApiResponse.fail(ErrorKind.TARGET_IN_USE, str(e))

        except AmountOverflowError as e:
            return ApiResponse.fail(
                ErrorKind.VALIDATION_ERROR,
                str(e),
                [ValidationIssue(field="amount", issue_type="overflow", message=str(e))],
            )

        except StorageError as e:
            self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation},
                correlation_id=correlation_id,
            )
            return ApiResponse.fail(
                ErrorKind.STORAGE_ERROR,
                "The ledger is temporarily unavailable. Please try again.",
            )

        except Exception as e:
            self._audit_logger.log_error(
                error_type="unexpected",
                error_message=repr(e),
                details={"operation": operation},
                correlation_id=correlation_id,
            )
            return ApiResponse.fail(
                ErrorKind.STORAGE_ERROR,
                "Something went wrong while processing the request.",
            )

    def _owner(self, owner_id: Any, operation: str) -> int:
        """Validate the owner id and make sure the user exists."""
        owner = self._validator.validate_id("owner_id", owner_id, operation)
        if self._storage.get_user(owner) is None:
            raise NotFoundError("user", owner)
        return owner

    # -- auth ----------------------------------------------------------------

    def register(self, name: Any, email: Any, credential: Any) -> ApiResponse:
        """Register a user. Data: UserProfile."""
        def action(correlation_id: UUID) -> ApiResponse:
            request = self._validator.validate_register({
                "name": name,
                "email": email,
                "credential": credential,
            })
            user = self._storage.create_user(
                name=request.name,
                email=request.email,
                credential_hash=hash_credential(
                    request.credential,
                    self._settings.password_hash_method,
                ),
            )
            self._audit_logger.log_user_registered(user.id, correlation_id)
            return ApiResponse.ok(user)

        return self._run("register", action)

    def login(self, email: Any, credential: Any) -> ApiResponse:
        """Check credentials. Data: UserProfile."""
        def action(correlation_id: UUID) -> ApiResponse:
            request = self._validator.validate_login({
                "email": email,
                "credential": credential,
            })
            user = self._authenticator.authenticate(request.email, request.credential)
            self._audit_logger.log_login(user.id, correlation_id)
            return ApiResponse.ok(user)

        return self._run("login", action)

    # -- transactions --------------------------------------------------------

    def list_transactions(
        self,
        owner_id: Any,
        date_from: Any = None,
        date_to: Any = None,
        type: Any = None,
    ) -> ApiResponse:
        """The owner's transactions, newest date first. Data: list[Transaction]."""
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._owner(owner_id, "list_transactions")
            filters = self._validator.validate_transaction_filter({
                "date_from": date_from,
                "date_to": date_to,
                "type": type,
            })
            return ApiResponse.ok(self._storage.list_transactions(
                owner,
                date_from=filters.date_from,
                date_to=filters.date_to,
                type=filters.type,
            ))

        return self._run("list_transactions", action, owner_id)

    def create_transaction(
        self,
        owner_id: Any,
        type: Any,
        category: Any,
        amount: Any,
        date: Any,
        description: Any = None,
        target_id: Any = None,
    ) -> ApiResponse:
        """
        Log an income or expense. Linked income raises the target's
        saved amount in the same unit of work. Data: CreatedRef.
        """
        def action(correlation_id: UUID) -> ApiResponse:
            request = self._validator.validate_transaction({
                "owner_id": owner_id,
                "type": type,
                "category": category,
                "amount": amount,
                "date": date,
                "description": description,
                "target_id": target_id,
            })
            txn = self._storage.create_transaction(
                owner_id=request.owner_id,
                type=request.type,
                category=request.category,
                amount=request.amount,
                date=request.date,
                description=request.description,
                target_id=request.target_id,
            )
            self._audit_logger.log_transaction_created(
                transaction_id=txn.id,
                owner_id=txn.owner_id,
                transaction_type=txn.type.value,
                amount=self.display_amount(txn.amount),
                target_id=txn.target_id,
                correlation_id=correlation_id,
            )
            return ApiResponse.ok(CreatedRef(id=txn.id))

        return self._run("create_transaction", action, owner_id)

    def delete_transaction(self, owner_id: Any, transaction_id: Any) -> ApiResponse:
        """
        Delete a transaction, reversing its target link.

        A clamped saved-amount underflow does not fail the call; it comes
        back as a warning. Data: DeletionOutcome.
        """
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._validator.validate_id("owner_id", owner_id, "delete_transaction")
            txn_id = self._validator.validate_id(
                "transaction_id", transaction_id, "delete_transaction"
            )
            outcome = self._storage.delete_transaction(owner, txn_id)
            self._audit_logger.log_transaction_deleted(
                transaction_id=txn_id,
                owner_id=owner,
                target_id=outcome.target_id,
                reversed_amount=self.display_amount(outcome.reversed_amount),
                correlation_id=correlation_id,
            )

            warnings = []
            fault = outcome.consistency_fault
            if fault is not None:
                self._audit_logger.log_consistency_fault(
                    target_id=fault.target_id,
                    owner_id=owner,
                    description=fault.describe(),
                    details=fault.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )
                warnings.append(fault.describe())

            return ApiResponse.ok(outcome, warnings=warnings)

        return self._run("delete_transaction", action, owner_id)

    # -- targets -------------------------------------------------------------

    def list_targets(self, owner_id: Any, status: Any = None) -> ApiResponse:
        """The owner's targets, newest first. Data: list[SavingsTarget]."""
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._owner(owner_id, "list_targets")
            filters = self._validator.validate_target_filter({"status": status})
            return ApiResponse.ok(self._storage.list_targets(owner, status=filters.status))

        return self._run("list_targets", action, owner_id)

    def create_target(
        self,
        owner_id: Any,
        name: Any,
        amount: Any,
        deadline: Any = None,
        description: Any = None,
    ) -> ApiResponse:
        """Create a savings target with nothing saved yet. Data: CreatedRef."""
        def action(correlation_id: UUID) -> ApiResponse:
            request = self._validator.validate_target({
                "owner_id": owner_id,
                "name": name,
                "amount": amount,
                "deadline": deadline,
                "description": description,
            })
            target = self._storage.create_target(
                owner_id=request.owner_id,
                name=request.name,
                target_amount=request.target_amount,
                deadline=request.deadline,
                description=request.description,
            )
            self._audit_logger.log_target_created(
                target_id=target.id,
                owner_id=target.owner_id,
                target_amount=self.display_amount(target.target_amount),
                correlation_id=correlation_id,
            )
            return ApiResponse.ok(CreatedRef(id=target.id))

        return self._run("create_target", action, owner_id)

    def update_target(
        self,
        owner_id: Any,
        target_id: Any,
        saved_amount: Any = None,
        status: Any = None,
    ) -> ApiResponse:
        """
        Directly adjust saved_amount and/or change status.
        Data: the updated SavingsTarget.
        """
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._validator.validate_id("owner_id", owner_id, "update_target")
            tid = self._validator.validate_id("target_id", target_id, "update_target")
            request = self._validator.validate_target_update({
                "saved_amount": saved_amount,
                "status": status,
            })
            target = self._storage.update_target(
                owner,
                tid,
                saved_amount=request.saved_amount,
                status=request.status,
            )
            self._audit_logger.log_target_updated(
                target_id=tid,
                owner_id=owner,
                changes=request.model_dump(mode="json", exclude_none=True),
                correlation_id=correlation_id,
            )
            return ApiResponse.ok(target)

        return self._run("update_target", action, owner_id)

    def delete_target(self, owner_id: Any, target_id: Any) -> ApiResponse:
        """
        Delete a target under the configured policy.
        Data: TargetDeletion.
        """
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._validator.validate_id("owner_id", owner_id, "delete_target")
            tid = self._validator.validate_id("target_id", target_id, "delete_target")
            result = self._storage.delete_target(owner, tid, policy=self.delete_policy)
            self._audit_logger.log_target_deleted(
                target_id=tid,
                owner_id=owner,
                policy=self.delete_policy.value,
                unlinked_transaction_ids=result.unlinked_transaction_ids,
                correlation_id=correlation_id,
            )
            return ApiResponse.ok(result)

        return self._run("delete_target", action, owner_id)

    # -- reports -------------------------------------------------------------

    def get_stats(self, owner_id: Any) -> ApiResponse:
        """Balance, all-time and current-month totals. Data: LedgerStats."""
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._owner(owner_id, "get_stats")
            return ApiResponse.ok(self._aggregation.compute_stats(owner))

        return self._run("get_stats", action, owner_id)

    def get_category_breakdown(self, owner_id: Any) -> ApiResponse:
        """Expense totals per category, largest first. Data: list[CategoryTotal]."""
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._owner(owner_id, "get_category_breakdown")
            return ApiResponse.ok(self._aggregation.category_breakdown(owner))

        return self._run("get_category_breakdown", action, owner_id)

    def get_target_progress(self, owner_id: Any, status: Any = None) -> ApiResponse:
        """Saved vs. goal per target. Data: list[TargetProgress]."""
        def action(correlation_id: UUID) -> ApiResponse:
            owner = self._owner(owner_id, "get_target_progress")
            filters = self._validator.validate_target_filter({"status": status})
            return ApiResponse.ok(self._aggregation.target_progress(owner, status=filters.status))

        return self._run("get_target_progress", action, owner_id)


def create_app_components(
    database_settings: Optional[DatabaseSettings] = None,
    ledger_settings: Optional[LedgerSettings] = None,
    audit_logger: Optional[AuditLogger] = None,
    clock: Optional[Callable[[], date]] = None,
) -> tuple[LedgerAPI, SqlLedgerStorage]:
    """
    Factory function to create all application components.

    Creates the tables if they do not exist yet.
    Logging is left alone; entry points call configure_logging() once.

    Returns:
        (ledger_api, storage)
    """
    settings = get_settings()
    database_settings = database_settings or settings.database
    ledger_settings = ledger_settings or settings.ledger

    storage = SqlLedgerStorage(
        engine=create_ledger_engine(database_settings),
        minor_digits=ledger_settings.currency_minor_digits,
    )
    storage.create_schema()

    api = LedgerAPI(
        storage=storage,
        ledger_settings=ledger_settings,
        audit_logger=audit_logger,
        clock=clock,
    )
    return api, storage
