"""
Consistency engine package.

Keeps account balances, budget spend and goal progress in step
with the ledger.
"""

from finance_core.engine.accounts import AccountService
from finance_core.engine.autosave import AutoSaveScheduler
from finance_core.engine.balances import (
    AccountBalanceUpdater,
    AppliedBalances,
    effect_of,
    net_change,
    normalize_balance,
)
from finance_core.engine.budgets import (
    BudgetService,
    BudgetStats,
    BudgetView,
    budget_status,
    compute_spent,
    percentage_used,
    remaining,
    should_alert,
)
from finance_core.engine.categories import CategoryService
from finance_core.engine.errors import (
    DuplicateResourceError,
    FinanceError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidTransferError,
    InvariantViolationError,
    ResourceNotFoundError,
)
from finance_core.engine.goals import (
    ContributionOutcome,
    GoalProgress,
    GoalService,
    GoalStats,
    add_contribution,
    next_auto_save_date,
    progress_status,
)
from finance_core.engine.ledger import LedgerService

__all__ = [
    # Services
    "AccountBalanceUpdater",
    "AccountService",
    "AutoSaveScheduler",
    "BudgetService",
    "CategoryService",
    "GoalService",
    "LedgerService",
    # Pure functions
    "add_contribution",
    "budget_status",
    "compute_spent",
    "effect_of",
    "net_change",
    "next_auto_save_date",
    "normalize_balance",
    "percentage_used",
    "progress_status",
    "remaining",
    "should_alert",
    # Results
    "AppliedBalances",
    "BudgetStats",
    "BudgetView",
    "ContributionOutcome",
    "GoalProgress",
    "GoalStats",
    # Errors
    "DuplicateResourceError",
    "FinanceError",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidTransferError",
    "InvariantViolationError",
    "ResourceNotFoundError",
]
