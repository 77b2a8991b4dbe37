"""Ledger aggregation package."""

from savings_ledger.queries.aggregation import AggregationEngine, monthly_window

__all__ = ["AggregationEngine", "monthly_window"]
