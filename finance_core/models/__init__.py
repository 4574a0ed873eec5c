"""
Data Models Package

This package contains all Pydantic models used by Finance Core.
All data flowing through the engine must conform to these schemas.
"""

from finance_core.models.base import Document, utc_now
from finance_core.models.ledger import (
    Account,
    AccountCreate,
    AccountKind,
    Bank,
    Category,
    CategoryKind,
    Currency,
    PaymentMethod,
    Transaction,
    TransactionDraft,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import (
    AutoSaveFrequency,
    AutoSaveRule,
    Budget,
    BudgetCreate,
    BudgetNotifications,
    BudgetPeriod,
    BudgetStatus,
    Contribution,
    ContributionSource,
    Goal,
    GoalCategory,
    GoalCreate,
    GoalPriority,
    GoalProgressStatus,
    GoalStatus,
    Milestone,
)
from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    "Document",
    "utc_now",
    # Ledger models
    "Account",
    "AccountCreate",
    "AccountKind",
    "Bank",
    "Category",
    "CategoryKind",
    "Currency",
    "PaymentMethod",
    "Transaction",
    "TransactionDraft",
    "TransactionKind",
    "TransactionStatus",
    # Planning models
    "AutoSaveFrequency",
    "AutoSaveRule",
    "Budget",
    "BudgetCreate",
    "BudgetNotifications",
    "BudgetPeriod",
    "BudgetStatus",
    "Contribution",
    "ContributionSource",
    "Goal",
    "GoalCategory",
    "GoalCreate",
    "GoalPriority",
    "GoalProgressStatus",
    "GoalStatus",
    "Milestone",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
