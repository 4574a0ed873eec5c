"""
Document Collection Storage

DESIGN DECISION: Both backends store one JSON document per entity.
A backend only has to provide a DocumentCollection (insert, get,
compare-and-set replace, atomic batch replace, delete, scan). The entity
storages below implement the query methods on top of that, filtering in
Python. Fine at personal-finance volumes; a SQL backend would push the
filters down instead.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Generic, Optional, TypeVar
from uuid import UUID

from finance_core.models.base import Document
from finance_core.models.ledger import (
    Account,
    Category,
    CategoryKind,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import Budget, Goal, GoalStatus
from finance_core.services.storage.interface import (
    AccountStorageInterface,
    BalanceWrite,
    BudgetStorageInterface,
    CategoryStorageInterface,
    GoalStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)

T = TypeVar("T", bound=Document)


class DocumentCollection(ABC, Generic[T]):
    """
    Minimal persistence contract for one collection of documents.

    Versions: insert stores version 1; every replace checks the caller's
    version against the stored one and stores version + 1.
    """

    @abstractmethod
    async def insert(self, document: T) -> T:
        """Raises DuplicateError if the ID already exists."""
        pass

    @abstractmethod
    async def get(self, document_id: UUID) -> Optional[T]:
        pass

    @abstractmethod
    async def replace(self, document: T) -> T:
        """Raises NotFoundError or ConcurrencyError."""
        pass

    @abstractmethod
    async def replace_many(self, documents: list[T]) -> list[T]:
        """All-or-nothing version of replace."""
        pass

    @abstractmethod
    async def delete(self, document_id: UUID, expected_version: Optional[int] = None) -> bool:
        """
        Returns False if the document is absent. With expected_version,
        raises ConcurrencyError when the stored version differs.
        """
        pass

    @abstractmethod
    async def all(self) -> list[T]:
        pass


class DocumentAccountStorage(AccountStorageInterface):
    """Account storage on top of a document collection."""

    def __init__(self, collection: DocumentCollection[Account]):
        self._collection = collection

    async def save_account(self, account: Account) -> Account:
        return await self._collection.insert(account)

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        return await self._collection.get(account_id)

    async def list_accounts(
        self,
        owner_id: UUID,
        include_inactive: bool = False,
    ) -> list[Account]:
        accounts = [
            account for account in await self._collection.all()
            if account.owner_id == owner_id
            and (include_inactive or account.is_active)
        ]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    async def update_account(self, account: Account) -> Account:
        stored = await self._collection.get(account.id)
        if stored is None:
            raise NotFoundError(f"Account not found: {account.id}")
        # The balance column belongs to commit_balances
        updated = account.model_copy(update={"balance": stored.balance})
        return await self._collection.replace(updated)

    async def commit_balances(self, writes: list[BalanceWrite]) -> list[Account]:
        documents = []
        for write in writes:
            stored = await self._collection.get(write.account_id)
            if stored is None:
                raise NotFoundError(f"Account not found: {write.account_id}")
            documents.append(stored.model_copy(update={
                "balance": write.balance,
                "version": write.expected_version,
            }))
        return await self._collection.replace_many(documents)


class DocumentTransactionStorage(TransactionStorageInterface):
    """Ledger entry storage on top of a document collection."""

    def __init__(self, collection: DocumentCollection[Transaction]):
        self._collection = collection

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        return await self._collection.insert(transaction)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return await self._collection.get(transaction_id)

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        return await self._collection.replace(transaction)

    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        return await self._collection.delete(transaction_id, expected_version)

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
        transactions = []
        for tx in await self._collection.all():
            if tx.owner_id != owner_id:
                continue
            if account_id and account_id not in tx.touched_accounts:
                continue
            if category_id and tx.category_id != category_id:
                continue
            if kind and tx.kind != kind:
                continue
            if status and tx.status != status:
                continue
            if date_from and tx.date < date_from:
                continue
            if date_to and tx.date > date_to:
                continue
            transactions.append(tx)

        # Newest first, ties broken by creation time
        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)

        if limit is None:
            return transactions[offset:]
        return transactions[offset:offset + limit]

    async def count_by_category(self, category_id: UUID) -> int:
        return sum(
            1 for tx in await self._collection.all()
            if tx.category_id == category_id
        )


class DocumentCategoryStorage(CategoryStorageInterface):
    """Category storage on top of a document collection."""

    def __init__(self, collection: DocumentCollection[Category]):
        self._collection = collection

    async def save_category(self, category: Category) -> Category:
        return await self._collection.insert(category)

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        return await self._collection.get(category_id)

    async def update_category(self, category: Category) -> Category:
        return await self._collection.replace(category)

    async def delete_category(self, category_id: UUID) -> bool:
        return await self._collection.delete(category_id)

    async def list_categories(
        self,
        owner_id: Optional[UUID] = None,
        kind: Optional[CategoryKind] = None,
        include_defaults: bool = True,
        include_inactive: bool = False,
    ) -> list[Category]:
        categories = []
        for category in await self._collection.all():
            if category.is_default:
                if not include_defaults:
                    continue
            elif owner_id is None or category.owner_id != owner_id:
                continue
            if kind and category.kind != kind:
                continue
            if not include_inactive and not category.is_active:
                continue
            categories.append(category)

        categories.sort(key=lambda c: (c.order, c.name))
        return categories

    async def find_category(
        self,
        name: str,
        kind: CategoryKind,
        owner_id: Optional[UUID],
    ) -> Optional[Category]:
        for category in await self._collection.all():
            if (
                category.name == name
                and category.kind == kind
                and category.owner_id == owner_id
            ):
                return category
        return None


class DocumentBudgetStorage(BudgetStorageInterface):
    """Budget storage on top of a document collection."""

    def __init__(self, collection: DocumentCollection[Budget]):
        self._collection = collection

    async def save_budget(self, budget: Budget) -> Budget:
        return await self._collection.insert(budget)

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        return await self._collection.get(budget_id)

    async def update_budget(self, budget: Budget) -> Budget:
        return await self._collection.replace(budget)

    async def delete_budget(self, budget_id: UUID) -> bool:
        return await self._collection.delete(budget_id)

    async def list_budgets(
        self,
        owner_id: UUID,
        category_id: Optional[UUID] = None,
        active_only: bool = False,
        on_date: Optional[date] = None,
    ) -> list[Budget]:
        budgets = [
            budget for budget in await self._collection.all()
            if budget.owner_id == owner_id
            and (category_id is None or budget.category_id == category_id)
            and (not active_only or budget.is_active)
            and (on_date is None or budget.covers(on_date))
        ]
        budgets.sort(key=lambda b: b.created_at, reverse=True)
        return budgets


class DocumentGoalStorage(GoalStorageInterface):
    """Goal storage on top of a document collection."""

    def __init__(self, collection: DocumentCollection[Goal]):
        self._collection = collection

    async def save_goal(self, goal: Goal) -> Goal:
        return await self._collection.insert(goal)

    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        return await self._collection.get(goal_id)

    async def update_goal(self, goal: Goal) -> Goal:
        return await self._collection.replace(goal)

    async def delete_goal(self, goal_id: UUID) -> bool:
        return await self._collection.delete(goal_id)

    async def list_goals(
        self,
        owner_id: UUID,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        goals = [
            goal for goal in await self._collection.all()
            if goal.owner_id == owner_id
            and (status is None or goal.status == status)
        ]
        goals.sort(key=lambda g: (g.target_date, g.created_at))
        return goals

    async def list_due_auto_saves(self, now: datetime) -> list[Goal]:
        goals = [
            goal for goal in await self._collection.all()
            if goal.status == GoalStatus.ACTIVE and goal.auto_save.is_due(now)
        ]
        goals.sort(key=lambda g: g.auto_save.next_date)
        return goals
