"""
Tests for the Ledger API boundary.

Every call returns an ApiResponse; these tests check both the happy paths
and that each failure comes back as the right ErrorKind.
"""

from datetime import date
from decimal import Decimal

import logging

import pytest

from savings_ledger.api import LedgerAPI, create_app_components
from savings_ledger.audit import AuditLogger
from savings_ledger.config import DatabaseSettings, TargetDeletePolicy
from savings_ledger.models.audit import AuditEventType
from savings_ledger.models.ledger import (
    CreatedRef,
    ErrorKind,
    LedgerStats,
    TargetStatus,
    UserProfile,
)
from savings_ledger.money import MAX_MINOR_UNITS
from savings_ledger.services.storage import StorageConnectionError


TODAY = date(2026, 10, 18)


def _register(api, email="siti@example.com", name="Siti", credential="rahasia"):
    response = api.register(name, email, credential)
    assert response.success, response.error
    return response.data


def _saved(api, owner_id, target_id) -> Decimal:
    targets = api.list_targets(owner_id).data
    return next(t.saved_amount for t in targets if t.id == target_id)


class TestAuth:
    """register / login"""

    def test_register_returns_profile(self, api):
        user = _register(api)
        assert isinstance(user, UserProfile)
        assert user.email == "siti@example.com"
        assert user.name == "Siti"

    def test_register_normalizes_email_for_login(self, api):
        _register(api, email="Siti@Example.com")
        response = api.login("siti@example.com", "rahasia")
        assert response.success

    def test_duplicate_email(self, api):
        first = _register(api)
        response = api.register("Other", "siti@example.com", "lain")

        assert response.success is False
        assert response.error_kind == ErrorKind.DUPLICATE_EMAIL

        login = api.login("siti@example.com", "rahasia")
        assert login.success
        assert login.data.id == first.id
        assert login.data.name == "Siti"

    def test_register_validation(self, api):
        response = api.register("", "not-an-email", "")
        assert response.error_kind == ErrorKind.VALIDATION_ERROR
        fields = {issue.field for issue in response.error.issues}
        assert fields == {"name", "email", "credential"}

    def test_login_success(self, api):
        user = _register(api)
        response = api.login("siti@example.com", "rahasia")
        assert response.success
        assert response.data.id == user.id

    def test_wrong_credential_and_unknown_email_look_the_same(self, api):
        _register(api)
        wrong = api.login("siti@example.com", "salah")
        unknown = api.login("nobody@example.com", "rahasia")

        assert wrong.error_kind == ErrorKind.INVALID_CREDENTIALS
        assert unknown.error_kind == ErrorKind.INVALID_CREDENTIALS
        assert wrong.error.message == unknown.error.message

    def test_credential_is_not_stored_in_plaintext(self, api, storage):
        _register(api)
        _, credential_hash = storage.get_user_by_email("siti@example.com")
        assert credential_hash != "rahasia"
        assert "rahasia" not in credential_hash

    def test_credential_whitespace_is_significant(self, api):
        _register(api, credential="  secret  ")

        stripped = api.login("siti@example.com", "secret")
        assert stripped.error_kind == ErrorKind.INVALID_CREDENTIALS

        assert api.login(" Siti@example.com ", "  secret  ").success


class TestWalkthrough:
    """Two linked incomes, one deleted: the target and stats stay in step."""

    def test_target_and_balance(self, api):
        user = _register(api)

        target = api.create_target(user.id, "Laptop", 1_000_000)
        assert target.success
        assert isinstance(target.data, CreatedRef)
        target_id = target.data.id
        assert _saved(api, user.id, target_id) == Decimal(0)

        a = api.create_transaction(user.id, "income", "Gaji", 400_000, "2026-10-05", target_id=target_id)
        assert a.success
        assert _saved(api, user.id, target_id) == Decimal("400000")

        b = api.create_transaction(user.id, "income", "Bonus", 300_000, "2026-10-10", target_id=target_id)
        assert b.success
        assert _saved(api, user.id, target_id) == Decimal("700000")

        deleted = api.delete_transaction(user.id, a.data.id)
        assert deleted.success
        assert deleted.warnings == []
        assert _saved(api, user.id, target_id) == Decimal("300000")

        stats = api.get_stats(user.id)
        assert isinstance(stats.data, LedgerStats)
        assert stats.data.balance == Decimal("300000")
        assert stats.data.total_income == Decimal("300000")
        assert stats.data.monthly_income == Decimal("300000")

        api.create_transaction(user.id, "expense", "Makan", 50_000, TODAY.isoformat())
        stats = api.get_stats(user.id)
        assert stats.data.balance == Decimal("250000")
        assert stats.data.monthly_expense == Decimal("50000")


class TestTransactions:
    """create / list / delete"""

    def test_list_newest_first(self, api):
        user = _register(api)
        api.create_transaction(user.id, "income", "Gaji", 10, "2026-09-01")
        api.create_transaction(user.id, "expense", "Makan", 5, "2026-10-02")

        response = api.list_transactions(user.id)
        assert [t.category for t in response.data] == ["Makan", "Gaji"]

    def test_list_with_filters(self, api):
        user = _register(api)
        api.create_transaction(user.id, "income", "Gaji", 10, "2026-09-01")
        api.create_transaction(user.id, "expense", "Makan", 5, "2026-10-02")

        response = api.list_transactions(user.id, date_from="2026-10-01", type="expense")
        assert [t.category for t in response.data] == ["Makan"]

    def test_validation_happens_before_store(self, api, storage):
        user = _register(api)
        response = api.create_transaction(user.id, "transfer", "", 0, "2026-13-01")

        assert response.error_kind == ErrorKind.VALIDATION_ERROR
        fields = {issue.field for issue in response.error.issues}
        assert fields == {"type", "category", "amount", "date"}
        assert storage.list_transactions(user.id) == []

    def test_fractional_rupiah_rejected(self, api):
        user = _register(api)
        response = api.create_transaction(user.id, "income", "Gaji", "10.5", "2026-10-01")
        assert response.error_kind == ErrorKind.VALIDATION_ERROR
        assert response.error.issues[0].issue_type == "precision"

    def test_unknown_owner(self, api):
        response = api.create_transaction(77, "income", "Gaji", 10, "2026-10-01")
        assert response.error_kind == ErrorKind.NOT_FOUND

    def test_linking_to_someone_elses_target(self, api):
        owner = _register(api)
        intruder = _register(api, email="budi@example.com", name="Budi")
        target_id = api.create_target(owner.id, "Laptop", 1000).data.id

        response = api.create_transaction(intruder.id, "income", "Gaji", 10, "2026-10-01", target_id=target_id)

        assert response.error_kind == ErrorKind.NOT_FOUND
        assert api.list_transactions(intruder.id).data == []
        assert _saved(api, owner.id, target_id) == Decimal(0)

    def test_delete_missing_transaction(self, api):
        user = _register(api)
        response = api.delete_transaction(user.id, 12345)
        assert response.error_kind == ErrorKind.NOT_FOUND

    def test_delete_with_bad_id(self, api):
        user = _register(api)
        response = api.delete_transaction(user.id, "abc")
        assert response.error_kind == ErrorKind.VALIDATION_ERROR

    def test_consistency_fault_is_a_warning(self, api, audit_events):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1_000_000).data.id
        txn_id = api.create_transaction(
            user.id, "income", "Gaji", 400_000, "2026-10-05", target_id=target_id
        ).data.id
        api.update_target(user.id, target_id, saved_amount=100_000)

        response = api.delete_transaction(user.id, txn_id)

        assert response.success
        assert len(response.warnings) == 1
        assert "clamped to 0" in response.warnings[0]
        assert response.data.consistency_fault.shortfall == Decimal("300000")
        assert _saved(api, user.id, target_id) == Decimal(0)
        assert AuditEventType.CONSISTENCY_FAULT in [e.event_type for e in audit_events]


    def test_saved_amount_overflow_is_a_validation_error(self, api, storage):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id
        storage.update_target(user.id, target_id, saved_amount=Decimal(MAX_MINOR_UNITS - 5))

        response = api.create_transaction(user.id, "income", "Gaji", 10, "2026-10-05", target_id=target_id)

        assert response.error_kind == ErrorKind.VALIDATION_ERROR
        assert [issue.field for issue in response.error.issues] == ["amount"]
        assert api.list_transactions(user.id).data == []
        assert _saved(api, user.id, target_id) == Decimal(MAX_MINOR_UNITS - 5)

class TestTargets:
    """create / list / update / delete / progress"""

    def test_create_and_list(self, api):
        user = _register(api)
        first = api.create_target(user.id, "Laptop", 1000, deadline="2027-01-31").data.id
        second = api.create_target(user.id, "Motor", 2000, description="Cicilan").data.id

        targets = api.list_targets(user.id).data
        assert [t.id for t in targets] == [second, first]
        assert targets[1].deadline.isoformat() == "2027-01-31"

    def test_create_rejects_zero_amount(self, api):
        user = _register(api)
        response = api.create_target(user.id, "Laptop", 0)
        assert response.error_kind == ErrorKind.VALIDATION_ERROR

    def test_update_status(self, api):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id

        response = api.update_target(user.id, target_id, status="completed")

        assert response.success
        assert response.data.status == TargetStatus.COMPLETED
        completed = api.list_targets(user.id, status="completed").data
        assert [t.id for t in completed] == [target_id]

    def test_update_needs_a_field(self, api):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id
        response = api.update_target(user.id, target_id)
        assert response.error_kind == ErrorKind.VALIDATION_ERROR

    def test_update_rejects_negative_saved_amount(self, api):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id
        response = api.update_target(user.id, target_id, saved_amount=-1)
        assert response.error_kind == ErrorKind.VALIDATION_ERROR

    def test_other_users_target_is_not_found(self, api):
        owner = _register(api)
        other = _register(api, email="budi@example.com", name="Budi")
        target_id = api.create_target(owner.id, "Laptop", 1000).data.id

        assert api.update_target(other.id, target_id, saved_amount=5).error_kind == ErrorKind.NOT_FOUND
        assert api.delete_target(other.id, target_id).error_kind == ErrorKind.NOT_FOUND
        assert api.list_targets(other.id).data == []

    def test_delete_rejected_while_referenced(self, api, audit_events):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id
        api.create_transaction(user.id, "income", "Gaji", 10, "2026-10-01", target_id=target_id)

        response = api.delete_target(user.id, target_id)

        assert api.delete_policy == TargetDeletePolicy.REJECT
        assert response.error_kind == ErrorKind.TARGET_IN_USE
        assert _saved(api, user.id, target_id) == Decimal("10")
        assert AuditEventType.TARGET_DELETE_REJECTED in [e.event_type for e in audit_events]

    def test_delete_unlinks_under_unlink_policy(self, storage, settings_factory):
        api = LedgerAPI(
            storage=storage,
            ledger_settings=settings_factory(target_delete_policy=TargetDeletePolicy.UNLINK),
            audit_logger=AuditLogger(sink=lambda event: None),
            clock=lambda: TODAY,
        )
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id
        txn_id = api.create_transaction(
            user.id, "income", "Gaji", 10, "2026-10-01", target_id=target_id
        ).data.id

        response = api.delete_target(user.id, target_id)

        assert response.success
        assert response.data.unlinked_transaction_ids == [txn_id]
        assert api.list_targets(user.id).data == []
        assert api.list_transactions(user.id).data[0].target_id is None

    def test_target_progress(self, api):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1000).data.id
        api.create_transaction(user.id, "income", "Gaji", 1500, "2026-10-01", target_id=target_id)

        progress = api.get_target_progress(user.id).data
        assert progress[0].progress_percent == 150
        assert progress[0].is_reached is True
        assert progress[0].status == TargetStatus.ACTIVE


class TestReports:
    """get_stats / get_category_breakdown"""

    def test_empty_stats(self, api):
        user = _register(api)
        stats = api.get_stats(user.id).data
        assert stats.balance == Decimal(0)
        assert stats.monthly_income == Decimal(0)
        assert stats.window_start.isoformat() == "2026-10-01"

    def test_stats_for_unknown_owner(self, api):
        assert api.get_stats(404).error_kind == ErrorKind.NOT_FOUND
        assert api.get_stats("x").error_kind == ErrorKind.VALIDATION_ERROR

    def test_category_breakdown(self, api):
        user = _register(api)
        api.create_transaction(user.id, "expense", "Transport", 20, "2026-10-01")
        api.create_transaction(user.id, "expense", "Makan", 70, "2026-10-02")
        api.create_transaction(user.id, "income", "Gaji", 999, "2026-10-03")

        breakdown = api.get_category_breakdown(user.id).data
        assert [(c.category, c.amount) for c in breakdown] == [
            ("Makan", Decimal("70")),
            ("Transport", Decimal("20")),
        ]


class TestErrorBoundary:
    """No exception escapes; storage trouble maps to storage_error."""

    def test_storage_failure(self, api, audit_events, monkeypatch):
        user = _register(api)

        def unavailable(*args, **kwargs):
            raise StorageConnectionError("Database unavailable: disk I/O error")

        monkeypatch.setattr(api._storage, "list_transactions", unavailable)
        response = api.get_stats(user.id)

        assert response.success is False
        assert response.error_kind == ErrorKind.STORAGE_ERROR
        assert "disk I/O" not in response.error.message
        assert audit_events[-1].event_type == AuditEventType.SYSTEM_ERROR

    def test_unexpected_exception(self, api, monkeypatch):
        user = _register(api)

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(api._storage, "list_targets", broken)
        response = api.list_targets(user.id)
        assert response.error_kind == ErrorKind.STORAGE_ERROR

    def test_failing_audit_sink_does_not_break_writes(self, storage, ledger_settings):
        def sink(event):
            raise IOError("collector down")

        api = LedgerAPI(
            storage=storage,
            ledger_settings=ledger_settings,
            audit_logger=AuditLogger(sink=sink),
            clock=lambda: TODAY,
        )
        assert api.register("Siti", "siti@example.com", "rahasia").success


class TestAudit:
    """Audit events emitted by the API."""

    def test_registration_and_login_are_audited(self, api, audit_events):
        user = _register(api)
        api.login("siti@example.com", "salah")

        types = [e.event_type for e in audit_events]
        assert types == [AuditEventType.USER_REGISTERED, AuditEventType.LOGIN_FAILED]
        assert audit_events[0].entity_id == user.id

    def test_one_correlation_id_per_call(self, api, audit_events):
        user = _register(api)
        target_id = api.create_target(user.id, "Laptop", 1_000_000).data.id
        txn_id = api.create_transaction(
            user.id, "income", "Gaji", 400_000, "2026-10-05", target_id=target_id
        ).data.id
        api.update_target(user.id, target_id, saved_amount=0)
        audit_events.clear()

        api.delete_transaction(user.id, txn_id)

        assert [e.event_type for e in audit_events] == [
            AuditEventType.TRANSACTION_DELETED,
            AuditEventType.CONSISTENCY_FAULT,
        ]
        assert audit_events[0].correlation_id == audit_events[1].correlation_id

    def test_amounts_in_audit_are_formatted(self, api, audit_events):
        user = _register(api)
        api.create_target(user.id, "Laptop", 1_250_000)
        assert audit_events[-1].details["target_amount"] == "IDR 1,250,000"


class TestComponents:
    def test_create_app_components(self, ledger_settings):
        api, storage = create_app_components(
            database_settings=DatabaseSettings(url="sqlite://"),
            ledger_settings=ledger_settings,
            audit_logger=AuditLogger(sink=lambda event: None),
            clock=lambda: TODAY,
        )
        try:
            user = _register(api)
            assert api.get_stats(user.id).data.balance == Decimal(0)
        finally:
            storage.engine.dispose()

    def test_create_app_components_leaves_logging_alone(self, ledger_settings):
        root = logging.getLogger()
        level, handlers = root.level, list(root.handlers)

        _, storage = create_app_components(
            database_settings=DatabaseSettings(url="sqlite://"),
            ledger_settings=ledger_settings,
            audit_logger=AuditLogger(sink=lambda event: None),
            clock=lambda: TODAY,
        )
        storage.engine.dispose()

        assert root.level == level
        assert root.handlers == handlers


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
