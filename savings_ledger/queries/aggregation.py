"""
Aggregation Engine

DESIGN DECISION: Statistics are computed on read from the transactions
that are actually in the store. Nothing here is cached or persisted; the
only stored running total in the whole ledger is a target's saved_amount.

All sums are Decimal over amounts that came from integer minor units, so
they are exact no matter how many transactions a user has.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional

from savings_ledger.models.ledger import (
    CategoryTotal,
    LedgerStats,
    SavingsTarget,
    TargetProgress,
    TargetStatus,
    Transaction,
    TransactionType,
)
from savings_ledger.services.storage import LedgerStorageInterface


def monthly_window(today: date) -> tuple[date, date]:
    """First day of today's calendar month through today, both inclusive."""
    return today.replace(day=1), today


class AggregationEngine:
    """
    Computes balance, totals, monthly sums and breakdowns for one user.

    GUARANTEES:
    - Only counts transactions owned by the requested user
    - Empty history gives zeros, never an error
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._storage = storage
        self._clock = clock or date.today

    def today(self) -> date:
        return self._clock()

    def compute_stats(self, owner_id: int) -> LedgerStats:
        """Stats for the dashboard, using the clock at query time."""
        transactions = self._storage.list_transactions(owner_id)
        return self.summarize(transactions, self.today())

    @staticmethod
    def summarize(transactions: Iterable[Transaction], today: date) -> LedgerStats:
        window_start, window_end = monthly_window(today)

        total_income = Decimal(0)
        total_expense = Decimal(0)
        monthly_income = Decimal(0)
        monthly_expense = Decimal(0)

        for txn in transactions:
            in_window = window_start <= txn.date <= window_end
            if txn.type == TransactionType.INCOME:
                total_income += txn.amount
                if in_window:
                    monthly_income += txn.amount
            else:
                total_expense += txn.amount
                if in_window:
                    monthly_expense += txn.amount

        return LedgerStats(
            balance=total_income - total_expense,
            monthly_income=monthly_income,
            monthly_expense=monthly_expense,
            total_income=total_income,
            total_expense=total_expense,
            window_start=window_start,
            window_end=window_end,
        )

    def category_breakdown(
        self,
        owner_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[CategoryTotal]:
        """
        Expense totals per category, largest first.

        Ties are ordered by category name so the output is stable.
        """
        transactions = self._storage.list_transactions(
            owner_id,
            date_from=date_from,
            date_to=date_to,
            type=TransactionType.EXPENSE,
        )
        return self.group_expenses(transactions)

    @staticmethod
    def group_expenses(transactions: Iterable[Transaction]) -> list[CategoryTotal]:
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for txn in transactions:
            if txn.type == TransactionType.EXPENSE:
                totals[txn.category] += txn.amount

        ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        return [CategoryTotal(category=name, amount=amount) for name, amount in ordered]

    def target_progress(
        self,
        owner_id: int,
        status: Optional[TargetStatus] = None,
    ) -> list[TargetProgress]:
        """Progress of each target, in the store's listing order."""
        targets = self._storage.list_targets(owner_id, status=status)
        return [self._progress(target) for target in targets]

    @staticmethod
    def _progress(target: SavingsTarget) -> TargetProgress:
        return TargetProgress(
            target_id=target.id,
            name=target.name,
            status=target.status,
            saved_amount=target.saved_amount,
            target_amount=target.target_amount,
            progress_percent=target.progress_percent,
            is_reached=target.is_reached,
        )
