"""
Finance Tracker Engine - Source Package

The derivation layer behind a personal finance tracker: accounts,
transactions, budgets and savings goals, plus everything derived from them
(balances, budget progress, alerts, goal projections).

DESIGN PRINCIPLES:
1. The transaction log is the source of truth
2. Derived values are recomputed, never edited
3. Expected failures are results, not exceptions
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
