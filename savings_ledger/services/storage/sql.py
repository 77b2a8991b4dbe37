"""
SQL Storage Implementation

DESIGN DECISION: The ledger lives in a relational database (SQLite by
default, anything SQLAlchemy speaks in production) because:
1. Each mutation must be atomic: a transaction row and its target's
   saved_amount change together or not at all
2. The saved_amount increment must not lose updates under concurrent
   requests, which needs row locks / SQL-side arithmetic
3. Foreign keys give us referential integrity for free

Three tables: users, targets, transactions. Amounts are BIGINT minor units.

CONCURRENCY:
- Every mutation runs in unit_of_work(): one session transaction, held
  under a store-wide write lock, rolled back on any error.
- Target rows are read with SELECT ... FOR UPDATE where the dialect
  supports it, and increments are issued as saved_amount + :amount.
- Transient OperationalErrors (e.g. "database is locked") are retried.
"""

import threading
from contextlib import contextmanager, nullcontext
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional

import structlog
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from savings_ledger.config import DatabaseSettings, TargetDeletePolicy, get_settings
from savings_ledger.linking import TargetLinkingRule
from savings_ledger.models.ledger import (
    ConsistencyFault,
    DeletionOutcome,
    SavingsTarget,
    TargetDeletion,
    TargetStatus,
    Transaction,
    TransactionType,
    UserProfile,
)
from savings_ledger.money import MAX_MINOR_UNITS, from_minor_units, to_minor_units
from savings_ledger.services.storage.interface import (
    AmountOverflowError,
    DuplicateEmailError,
    LedgerStorageInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    TargetInUseError,
)


logger = structlog.get_logger(__name__)


# Retry policy for transient database errors
transient_retry = retry(
    retry=retry_if_exception_type(StorageConnectionError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    reraise=True,
)


# =============================================================================
# TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class TargetRow(Base):
    __tablename__ = "targets"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_targets_amount_positive"),
        CheckConstraint("saved_amount >= 0", name="ck_targets_saved_non_negative"),
        CheckConstraint("status IN ('active', 'completed')", name="ck_targets_status"),
        Index("ix_targets_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    saved_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TargetStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("type IN ('income', 'expense')", name="ck_transactions_type"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_target", "target_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    txn_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    target_id: Mapped[Optional[int]] = mapped_column(ForeignKey("targets.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


# =============================================================================
# ENGINE
# =============================================================================

def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///") or ":memory:" in url


def create_ledger_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """
    Build an engine for the configured database.

    SQLite gets foreign keys switched on and a busy timeout; an in-memory
    database is pinned to a single shared connection so every session
    sees the same data.
    """
    settings = settings or get_settings().database
    kwargs: dict = {"echo": settings.echo}

    if settings.is_sqlite:
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.busy_timeout_seconds,
        }
        if _is_memory_url(settings.url):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(settings.url, **kwargs)

    if settings.is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# =============================================================================
# STORE
# =============================================================================

class SqlLedgerStorage(LedgerStorageInterface):
    """
    SQLAlchemy implementation of the ledger store.

    Rows hold integer minor units; everything returned is a pydantic model
    with Decimal amounts.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        minor_digits: Optional[int] = None,
        rule: Optional[TargetLinkingRule] = None,
    ):
        self._engine = engine or create_ledger_engine()
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        self._minor_digits = (
            minor_digits
            if minor_digits is not None
            else get_settings().ledger.currency_minor_digits
        )
        self._rule = rule or TargetLinkingRule()
        self._write_lock = threading.RLock()
        # A pinned in-memory connection is shared by every session, so reads
        # must not interleave with an open unit of work.
        self._shared_connection = _is_memory_url(str(self._engine.url))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        """Create the users, targets and transactions tables if missing."""
        Base.metadata.create_all(self._engine)

    # -- sessions ------------------------------------------------------------

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """
        One atomic mutation.

        Commits when the block exits cleanly, rolls back on any exception.
        Writers are serialized by the store-wide lock.
        """
        with self._write_lock:
            session = self._session_factory()
            try:
                with session.begin():
                    yield session
            except OperationalError as e:
                raise StorageConnectionError(f"Database unavailable: {e}") from e
            except SQLAlchemyError as e:
                raise StorageError(f"Database error: {e}") from e
            finally:
                session.close()

    @contextmanager
    def _read_session(self) -> Iterator[Session]:
        guard = self._write_lock if self._shared_connection else nullcontext()
        with guard:
            session = self._session_factory()
            try:
                yield session
            except OperationalError as e:
                raise StorageConnectionError(f"Database unavailable: {e}") from e
            except SQLAlchemyError as e:
                raise StorageError(f"Database error: {e}") from e
            finally:
                session.close()

    # -- conversions ---------------------------------------------------------

    def _to_units(self, amount: Decimal) -> int:
        return to_minor_units(amount, self._minor_digits)

    def _to_amount(self, units: int) -> Decimal:
        return from_minor_units(units, self._minor_digits)

    def _to_user(self, row: UserRow) -> UserProfile:
        return UserProfile(
            id=row.id,
            name=row.name,
            email=row.email,
            avatar_url=row.avatar_url,
            created_at=row.created_at,
        )

    def _to_target(self, row: TargetRow) -> SavingsTarget:
        return SavingsTarget(
            id=row.id,
            owner_id=row.user_id,
            name=row.name,
            target_amount=self._to_amount(row.amount),
            saved_amount=self._to_amount(row.saved_amount),
            deadline=row.deadline,
            description=row.description,
            status=TargetStatus(row.status),
            created_at=row.created_at,
        )

    def _to_transaction(self, row: TransactionRow) -> Transaction:
        return Transaction(
            id=row.id,
            owner_id=row.user_id,
            type=TransactionType(row.type),
            category=row.category,
            amount=self._to_amount(row.amount),
            description=row.description,
            date=row.txn_date,
            target_id=row.target_id,
            created_at=row.created_at,
        )

    # -- ownership checks ----------------------------------------------------

    def _require_user(self, session: Session, owner_id: int) -> UserRow:
        row = session.get(UserRow, owner_id)
        if row is None:
            raise NotFoundError("user", owner_id)
        return row

    def _owned_target(
        self,
        session: Session,
        owner_id: int,
        target_id: int,
        lock: bool = False,
    ) -> TargetRow:
        stmt = select(TargetRow).where(
            TargetRow.id == target_id,
            TargetRow.user_id == owner_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        row = session.scalars(stmt).first()
        if row is None:
            raise NotFoundError("target", target_id)
        return row

    def _owned_transaction(
        self,
        session: Session,
        owner_id: int,
        transaction_id: int,
    ) -> TransactionRow:
        row = session.scalars(
            select(TransactionRow).where(
                TransactionRow.id == transaction_id,
                TransactionRow.user_id == owner_id,
            )
        ).first()
        if row is None:
            raise NotFoundError("transaction", transaction_id)
        return row

    # -- users ---------------------------------------------------------------

    @transient_retry
    def create_user(
        self,
        name: str,
        email: str,
        credential_hash: str,
    ) -> UserProfile:
        with self.unit_of_work() as session:
            existing = session.scalars(
                select(UserRow.id).where(UserRow.email == email)
            ).first()
            if existing is not None:
                raise DuplicateEmailError(email)

            row = UserRow(name=name, email=email, password_hash=credential_hash)
            session.add(row)
            try:
                session.flush()
            except IntegrityError:
                # Lost a race with another registration of the same email
                raise DuplicateEmailError(email)

            logger.info("user_created", user_id=row.id)
            return self._to_user(row)

    @transient_retry
    def get_user_by_email(self, email: str) -> Optional[tuple[UserProfile, str]]:
        with self._read_session() as session:
            row = session.scalars(
                select(UserRow).where(UserRow.email == email)
            ).first()
            if row is None:
                return None
            return self._to_user(row), row.password_hash

    @transient_retry
    def get_user(self, user_id: int) -> Optional[UserProfile]:
        with self._read_session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user(row) if row else None

    # -- targets -------------------------------------------------------------

    @transient_retry
    def create_target(
        self,
        owner_id: int,
        name: str,
        target_amount: Decimal,
        deadline: Optional[date] = None,
        description: Optional[str] = None,
    ) -> SavingsTarget:
        amount_units = self._to_units(target_amount)
        with self.unit_of_work() as session:
            self._require_user(session, owner_id)
            row = TargetRow(
                user_id=owner_id,
                name=name,
                amount=amount_units,
                saved_amount=0,
                deadline=deadline,
                description=description,
                status=TargetStatus.ACTIVE.value,
            )
            session.add(row)
            session.flush()
            logger.info("target_created", target_id=row.id, owner_id=owner_id)
            return self._to_target(row)

    @transient_retry
    def get_target(self, owner_id: int, target_id: int) -> SavingsTarget:
        with self._read_session() as session:
            return self._to_target(self._owned_target(session, owner_id, target_id))

    @transient_retry
    def list_targets(
        self,
        owner_id: int,
        status: Optional[TargetStatus] = None,
    ) -> list[SavingsTarget]:
        with self._read_session() as session:
            stmt = select(TargetRow).where(TargetRow.user_id == owner_id)
            if status is not None:
                stmt = stmt.where(TargetRow.status == status.value)
            stmt = stmt.order_by(TargetRow.created_at.desc(), TargetRow.id.desc())
            return [self._to_target(row) for row in session.scalars(stmt)]

    @transient_retry
    def update_target(
        self,
        owner_id: int,
        target_id: int,
        saved_amount: Optional[Decimal] = None,
        status: Optional[TargetStatus] = None,
    ) -> SavingsTarget:
        saved_units = self._to_units(saved_amount) if saved_amount is not None else None
        with self.unit_of_work() as session:
            row = self._owned_target(session, owner_id, target_id, lock=True)
            if saved_units is not None:
                row.saved_amount = saved_units
            if status is not None:
                row.status = status.value
            session.flush()
            logger.info(
                "target_updated",
                target_id=target_id,
                owner_id=owner_id,
                saved_units=saved_units,
                status=status.value if status else None,
            )
            return self._to_target(row)

    @transient_retry
    def delete_target(
        self,
        owner_id: int,
        target_id: int,
        policy: TargetDeletePolicy = TargetDeletePolicy.REJECT,
    ) -> TargetDeletion:
        with self.unit_of_work() as session:
            row = self._owned_target(session, owner_id, target_id, lock=True)
            referencing = list(session.scalars(
                select(TransactionRow.id)
                .where(TransactionRow.target_id == row.id)
                .order_by(TransactionRow.id)
            ))

            if referencing and policy == TargetDeletePolicy.REJECT:
                raise TargetInUseError(row.id, len(referencing))

            if referencing:
                session.execute(
                    update(TransactionRow)
                    .where(TransactionRow.target_id == row.id)
                    .values(target_id=None)
                )

            session.delete(row)
            logger.info(
                "target_deleted",
                target_id=target_id,
                owner_id=owner_id,
                policy=policy.value,
                unlinked=len(referencing),
            )
            return TargetDeletion(
                target_id=target_id,
                unlinked_transaction_ids=referencing,
            )

    # -- transactions --------------------------------------------------------

    @transient_retry
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
        amount_units = self._to_units(amount)
        with self.unit_of_work() as session:
            self._require_user(session, owner_id)
            target = None
            if target_id is not None:
                target = self._owned_target(session, owner_id, target_id, lock=True)

            row = TransactionRow(
                user_id=owner_id,
                type=type.value,
                category=category,
                amount=amount_units,
                description=description,
                txn_date=date,
                target_id=target_id,
            )
            session.add(row)

            contribution = self._rule.contribution(type, target_id, amount_units)
            if contribution:
                if target.saved_amount + contribution > MAX_MINOR_UNITS:
                    raise AmountOverflowError(target.id)
                session.execute(
                    update(TargetRow)
                    .where(TargetRow.id == target_id)
                    .values(saved_amount=TargetRow.saved_amount + contribution)
                    .execution_options(synchronize_session=False)
                )

            session.flush()
            logger.info(
                "transaction_created",
                transaction_id=row.id,
                owner_id=owner_id,
                type=type.value,
                linked_target_id=target_id if contribution else None,
            )
            return self._to_transaction(row)

    @transient_retry
    def get_transaction(self, owner_id: int, transaction_id: int) -> Transaction:
        with self._read_session() as session:
            return self._to_transaction(
                self._owned_transaction(session, owner_id, transaction_id)
            )

    @transient_retry
    def list_transactions(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        with self._read_session() as session:
            stmt = select(TransactionRow).where(TransactionRow.user_id == owner_id)
            if date_from is not None:
                stmt = stmt.where(TransactionRow.txn_date >= date_from)
            if date_to is not None:
                stmt = stmt.where(TransactionRow.txn_date <= date_to)
            if type is not None:
                stmt = stmt.where(TransactionRow.type == type.value)
            stmt = stmt.order_by(TransactionRow.txn_date.desc(), TransactionRow.id.desc())
            return [self._to_transaction(row) for row in session.scalars(stmt)]

    @transient_retry
    def delete_transaction(
        self,
        owner_id: int,
        transaction_id: int,
    ) -> DeletionOutcome:
        with self.unit_of_work() as session:
            row = self._owned_transaction(session, owner_id, transaction_id)
            target_id = row.target_id
            reversed_units = 0
            fault = None

            if self._rule.is_linked(TransactionType(row.type), target_id):
                target = session.scalars(
                    select(TargetRow)
                    .where(TargetRow.id == target_id)
                    .with_for_update()
                ).first()
                if target is not None:
                    reversal = self._rule.reverse(
                        target_id=target.id,
                        transaction_id=row.id,
                        saved_units=target.saved_amount,
                        amount_units=row.amount,
                    )
                    if reversal.is_fault:
                        fault = ConsistencyFault(
                            target_id=target.id,
                            transaction_id=row.id,
                            saved_before=self._to_amount(target.saved_amount),
                            reversed_amount=self._to_amount(row.amount),
                            shortfall=self._to_amount(reversal.shortfall_units),
                        )
                    target.saved_amount = reversal.new_saved_units
                    reversed_units = reversal.reversed_units

            session.delete(row)
            logger.info(
                "transaction_deleted",
                transaction_id=transaction_id,
                owner_id=owner_id,
                target_id=target_id,
                reversed_units=reversed_units,
            )
            return DeletionOutcome(
                transaction_id=transaction_id,
                target_id=target_id,
                reversed_amount=self._to_amount(reversed_units),
                consistency_fault=fault,
            )

    # -- diagnostics ---------------------------------------------------------

    @transient_retry
    def linked_income_total(self, owner_id: int, target_id: int) -> Decimal:
        """
        Sum of income currently linked to a target, straight from the
        transactions table. Used to check saved_amount against its source.
        """
        with self._read_session() as session:
            self._owned_target(session, owner_id, target_id)
            total = session.scalar(
                select(func.coalesce(func.sum(TransactionRow.amount), 0)).where(
                    TransactionRow.target_id == target_id,
                    TransactionRow.type == TransactionType.INCOME.value,
                )
            )
            return self._to_amount(int(total))
