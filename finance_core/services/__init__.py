"""Services package."""

from finance_core.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    CategoryStorageInterface,
    ConcurrencyError,
    ConnectionError,
    DuplicateError,
    GoalStorageInterface,
    InMemoryDatabase,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "ConcurrencyError",
    "ConnectionError",
    "DuplicateError",
    "GoalStorageInterface",
    "InMemoryDatabase",
    "NotFoundError",
    "StorageError",
    "TransactionStorageInterface",
]
