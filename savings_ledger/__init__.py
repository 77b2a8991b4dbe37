"""
Savings Ledger - Source Package

A personal finance ledger: users log income and expense transactions,
set savings targets, and read aggregated statistics.

DESIGN PRINCIPLES:
1. Every mutation is one atomic unit of work
2. Money is exact (integer minor units, Decimal at the edges)
3. Users only ever see their own ledger
4. Fail early, fail visibly, never crash the caller
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Savings Ledger Team"
