"""
Two-Stage Request Validation

DESIGN DECISION: Every Ledger API request is validated before the store
is touched, in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required fields present
- Types and formats (amount is a number, date is a real calendar date,
  email is well-formed, type is income/expense)
- This catches malformed client input

STAGE 2 - SEMANTIC VALIDATION:
- Amount precision fits the currency's smallest unit
- Amount within the configured sanity bound
- This catches values that parse but cannot be stored exactly

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes amounts. An amount with
too many decimal places is rejected, not rounded.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from savings_ledger.config import LedgerSettings, get_settings
from savings_ledger.models.ledger import (
    LoginRequest,
    RegisterRequest,
    TargetCreate,
    TargetFilter,
    TargetUpdate,
    TransactionCreate,
    TransactionFilter,
    ValidationIssue,
)
from savings_ledger.money import has_valid_precision


RequestModel = TypeVar("RequestModel", bound=BaseModel)


class LedgerValidationError(Exception):
    """Request rejected before reaching the store."""

    def __init__(self, operation: str, issues: list[ValidationIssue]):
        self.operation = operation
        self.issues = issues
        summary = "; ".join(f"{i.field}: {i.message}" for i in issues)
        super().__init__(f"Invalid {operation} request: {summary}")


class LedgerValidator:
    """
    Validates raw client payloads into request models.

    Stage 1: Schema validation (pydantic)
    Stage 2: Semantic validation (needs ledger settings)
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    @property
    def minor_digits(self) -> int:
        return self._settings.currency_minor_digits

    def _validate_schema(
        self,
        model: Type[RequestModel],
        payload: Mapping[str, Any],
        operation: str,
    ) -> RequestModel:
        """
        Stage 1: Schema validation.

        Raises LedgerValidationError listing every field issue at once.
        """
        try:
            return model.model_validate(dict(payload))
        except PydanticValidationError as e:
            issues = [
                ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "request",
                    issue_type=error["type"],
                    message=error["msg"],
                )
                for error in e.errors()
            ]
            raise LedgerValidationError(operation, issues) from e

    def _check_amount(self, field: str, amount: Optional[Decimal]) -> list[ValidationIssue]:
        """
        Stage 2: Semantic checks for one amount.

        Returns: list_of_issues (empty when the amount is fine)
        """
        issues = []
        if amount is None:
            return issues

        if not has_valid_precision(amount, self.minor_digits):
            issues.append(ValidationIssue(
                field=field,
                issue_type="precision",
                message=(
                    f"Amount {amount} has more than {self.minor_digits} decimal "
                    f"place(s) for {self._settings.currency_code}"
                ),
            ))

        if amount > self._settings.max_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_large",
                message=f"Amount {amount} exceeds the maximum of {self._settings.max_amount}",
            ))

        return issues

    def _raise_if_any(self, operation: str, issues: list[ValidationIssue]) -> None:
        if issues:
            raise LedgerValidationError(operation, issues)

    # -- per-operation entry points ----------------------------------------

    def validate_register(self, payload: Mapping[str, Any]) -> RegisterRequest:
        return self._validate_schema(RegisterRequest, payload, "register")

    def validate_login(self, payload: Mapping[str, Any]) -> LoginRequest:
        return self._validate_schema(LoginRequest, payload, "login")

    def validate_transaction(self, payload: Mapping[str, Any]) -> TransactionCreate:
        request = self._validate_schema(TransactionCreate, payload, "create_transaction")
        self._raise_if_any(
            "create_transaction",
            self._check_amount("amount", request.amount),
        )
        return request

    def validate_target(self, payload: Mapping[str, Any]) -> TargetCreate:
        request = self._validate_schema(TargetCreate, payload, "create_target")
        self._raise_if_any(
            "create_target",
            self._check_amount("amount", request.target_amount),
        )
        return request

    def validate_target_update(self, payload: Mapping[str, Any]) -> TargetUpdate:
        request = self._validate_schema(TargetUpdate, payload, "update_target")
        self._raise_if_any(
            "update_target",
            self._check_amount("saved_amount", request.saved_amount),
        )
        return request

    def validate_id(self, field: str, value: Any, operation: str) -> int:
        """Ids must be positive integers; bools are not ids."""
        if isinstance(value, bool):
            value = None
        try:
            number = int(value)
        except (TypeError, ValueError):
            number = None
        if number is None or number <= 0 or str(number) != str(value).strip():
            raise LedgerValidationError(operation, [
                ValidationIssue(
                    field=field,
                    issue_type="invalid_id",
                    message=f"{field} must be a positive integer",
                ),
            ])
        return number

    def validate_transaction_filter(self, payload: Mapping[str, Any]) -> TransactionFilter:
        return self._validate_schema(TransactionFilter, payload, "list_transactions")

    def validate_target_filter(self, payload: Mapping[str, Any]) -> TargetFilter:
        return self._validate_schema(TargetFilter, payload, "list_targets")
