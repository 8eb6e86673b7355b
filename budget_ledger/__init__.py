"""
Budget Ledger - Source Package

The recurring-schedule ledger and execution engine behind a personal
budgeting app: accounts and pots, income and transfer schedules,
the monthly bill sweep, and balance reset/reduction.

DESIGN PRINCIPLES:
1. Balances change only through the ledger store's primitives
2. A recurring bill runs at most once per calendar month
3. Nothing is committed until it has been persisted
4. Insufficient funds is an outcome, not a crash
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Ledger Team"
