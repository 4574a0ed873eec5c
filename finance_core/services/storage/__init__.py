"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Two backends: in-memory (default, tests) and Google Sheets.
"""

from finance_core.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BalanceWrite,
    BudgetStorageInterface,
    CategoryStorageInterface,
    ConcurrencyError,
    ConnectionError,
    DuplicateError,
    GoalStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    WriterLeaseError,
)
from finance_core.services.storage.documents import DocumentCollection
from finance_core.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCollection,
    InMemoryDatabase,
)
from finance_core.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCollection,
    GoogleSheetsDatabase,
    WriterLease,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BalanceWrite",
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "DocumentCollection",
    "GoalStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConcurrencyError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "WriterLeaseError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCollection",
    "InMemoryDatabase",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCollection",
    "GoogleSheetsDatabase",
    "WriterLease",
]
