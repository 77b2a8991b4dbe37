"""
Shared fixtures.

Every test gets a fresh in-memory SQLite ledger, explicit settings (so the
developer's environment or .env never leaks in) and a fixed clock.
"""

from datetime import date

import pytest

from savings_ledger.api import LedgerAPI
from savings_ledger.audit import AuditLogger
from savings_ledger.config import DatabaseSettings, LedgerSettings, TargetDeletePolicy
from savings_ledger.queries import AggregationEngine
from savings_ledger.services.security import hash_credential
from savings_ledger.services.storage import SqlLedgerStorage, create_ledger_engine


TODAY = date(2026, 10, 18)

# Cheap hash so the suite stays fast; production default is scrypt.
FAST_HASH = "pbkdf2:sha256:1000"


def make_ledger_settings(**overrides) -> LedgerSettings:
    values = {
        "target_delete_policy": TargetDeletePolicy.REJECT,
        "currency_code": "IDR",
        "currency_minor_digits": 0,
        "password_hash_method": FAST_HASH,
    }
    values.update(overrides)
    return LedgerSettings(**values)


def make_storage(url: str = "sqlite://", minor_digits: int = 0) -> SqlLedgerStorage:
    engine = create_ledger_engine(DatabaseSettings(url=url))
    store = SqlLedgerStorage(engine=engine, minor_digits=minor_digits)
    store.create_schema()
    return store


@pytest.fixture
def settings_factory():
    return make_ledger_settings


@pytest.fixture
def storage_factory():
    stores = []

    def factory(url: str = "sqlite://", minor_digits: int = 0) -> SqlLedgerStorage:
        store = make_storage(url, minor_digits)
        stores.append(store)
        return store

    yield factory
    for store in stores:
        store.engine.dispose()


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return make_ledger_settings()


@pytest.fixture
def storage():
    store = make_storage()
    yield store
    store.engine.dispose()


@pytest.fixture
def audit_events() -> list:
    return []


@pytest.fixture
def api(storage, ledger_settings, audit_events) -> LedgerAPI:
    return LedgerAPI(
        storage=storage,
        ledger_settings=ledger_settings,
        audit_logger=AuditLogger(sink=audit_events.append),
        clock=lambda: TODAY,
    )


@pytest.fixture
def engine(storage) -> AggregationEngine:
    return AggregationEngine(storage, clock=lambda: TODAY)


@pytest.fixture
def user(storage):
    return storage.create_user("Siti", "siti@example.com", hash_credential("rahasia", FAST_HASH))


@pytest.fixture
def other_user(storage):
    return storage.create_user("Budi", "budi@example.com", hash_credential("sandi", FAST_HASH))
