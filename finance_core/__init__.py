"""
Finance Core - Source Package

The consistency engine behind a personal-finance tracker: accounts,
ledger entries, category budgets and savings goals.

DESIGN PRINCIPLES:
1. The ledger is the source of truth, everything else is derived from it
2. Balance-affecting writes are all-or-nothing
3. Business rules fail loudly with typed errors
4. Every balance-affecting step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Core Team"
