"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run on Google Sheets or fully in memory
2. Use in-memory storage for testing
3. Keep the consistency engine decoupled from storage implementation

Every update is a compare-and-set on the document version. A write that
was prepared against a stale copy fails with ConcurrencyError instead of
silently overwriting a concurrent change (the classic lost update).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from finance_core.models.audit import AuditEvent
from finance_core.models.ledger import (
    Account,
    Category,
    CategoryKind,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import Budget, Goal, GoalStatus


class BalanceWrite(BaseModel):
    """One account's part of an atomic balance batch."""

    account_id: UUID
    expected_version: int
    balance: Decimal


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage.

    Balances are written ONLY through commit_balances.
    """

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        """
        Insert a new account.

        Returns:
            The stored copy (with its first version number)

        Raises:
            DuplicateError: If an account with this ID already exists
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """Retrieve an account by ID, None if it does not exist."""
        pass

    @abstractmethod
    async def list_accounts(
        self,
        owner_id: UUID,
        include_inactive: bool = False,
    ) -> list[Account]:
        """List an owner's accounts, oldest first."""
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> Account:
        """
        Replace an account's non-balance fields.

        Raises:
            NotFoundError: If the account doesn't exist
            ConcurrencyError: If the stored version moved on
        """
        pass

    @abstractmethod
    async def commit_balances(self, writes: list[BalanceWrite]) -> list[Account]:
        """
        Atomically set the balances of several accounts.

        Either every write is applied or none is. Each write is checked
        against its expected version before anything changes.

        Raises:
            NotFoundError: If one of the accounts doesn't exist
            ConcurrencyError: If one of the versions moved on
        """
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for ledger entry storage."""

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """Insert a new ledger entry."""
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a ledger entry by ID."""
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace a ledger entry.

        Raises:
            NotFoundError: If the entry doesn't exist
            ConcurrencyError: If the stored version moved on
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Delete a ledger entry. Returns False if it did not exist.

        Raises:
            ConcurrencyError: If expected_version is given and the stored
                              version moved on
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        kind: Optional[TransactionKind] = None,
        status: Optional[TransactionStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        List an owner's ledger entries with optional filters.

        account_id matches both the source and the transfer destination.
        Dates are inclusive. Results are newest first.
        """
        pass

    @abstractmethod
    async def count_by_category(self, category_id: UUID) -> int:
        """Number of ledger entries (any owner) referencing a category."""
        pass


class CategoryStorageInterface(ABC):
    """Abstract interface for category storage."""

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def get_category(self, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def delete_category(self, category_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_categories(
        self,
        owner_id: Optional[UUID] = None,
        kind: Optional[CategoryKind] = None,
        include_defaults: bool = True,
        include_inactive: bool = False,
    ) -> list[Category]:
        """
        List categories visible to an owner.

        With owner_id None only default categories are returned.
        Sorted by (order, name).
        """
        pass

    @abstractmethod
    async def find_category(
        self,
        name: str,
        kind: CategoryKind,
        owner_id: Optional[UUID],
    ) -> Optional[Category]:
        """Find the category matching the (name, kind, owner) unique key."""
        pass


class BudgetStorageInterface(ABC):
    """Abstract interface for budget storage."""

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_budgets(
        self,
        owner_id: UUID,
        category_id: Optional[UUID] = None,
        active_only: bool = False,
        on_date: Optional[date] = None,
    ) -> list[Budget]:
        """
        List an owner's budgets.

        on_date keeps only budgets whose date range covers that day.
        Newest first.
        """
        pass


class GoalStorageInterface(ABC):
    """Abstract interface for goal storage."""

    @abstractmethod
    async def save_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        pass

    @abstractmethod
    async def update_goal(self, goal: Goal) -> Goal:
        """
        Replace a goal (contributions, milestones and auto-save included).

        Raises:
            NotFoundError: If the goal doesn't exist
            ConcurrencyError: If the stored version moved on
        """
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_goals(
        self,
        owner_id: UUID,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        """List an owner's goals, soonest target date first."""
        pass

    @abstractmethod
    async def list_due_auto_saves(self, now: datetime) -> list[Goal]:
        """
        Active goals (any owner) with auto-save enabled and next_date <= now.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one flow, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ConcurrencyError(StorageError):
    """The stored document changed since it was read."""

    def __init__(self, document_id: UUID, expected_version: int, actual_version: int):
        self.document_id = document_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {document_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


class WriterLeaseError(StorageError):
    """Another process holds the write lease on the storage backend."""

    def __init__(self, holder: Optional[str], expires_at: Optional[datetime]):
        self.holder = holder
        self.expires_at = expires_at
        super().__init__(f"Storage is held by writer {holder} until {expires_at}")
