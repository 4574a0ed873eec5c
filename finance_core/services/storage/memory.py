"""
In-Memory Storage Implementation

The default backend for a single process and for tests.

Documents are deep-copied on the way in and out, so a caller holding a
model can never mutate the stored state behind the engine's back.
All collections of one InMemoryDatabase share a single asyncio.Lock:
batch replaces are therefore atomic with respect to every other write.
"""

import asyncio
from typing import Generic, Optional, Type
from uuid import UUID

from finance_core.models.audit import AuditEvent
from finance_core.models.base import utc_now
from finance_core.models.ledger import Account, Category, Transaction
from finance_core.models.planning import Budget, Goal
from finance_core.services.storage.documents import (
    DocumentAccountStorage,
    DocumentBudgetStorage,
    DocumentCategoryStorage,
    DocumentCollection,
    DocumentGoalStorage,
    DocumentTransactionStorage,
    T,
)
from finance_core.services.storage.interface import (
    AuditStorageInterface,
    ConcurrencyError,
    DuplicateError,
    NotFoundError,
)


class InMemoryCollection(DocumentCollection[T], Generic[T]):
    """A collection of versioned documents held in a dict."""

    def __init__(self, model: Type[T], lock: Optional[asyncio.Lock] = None):
        self._model = model
        self._documents: dict[UUID, T] = {}
        self._lock = lock or asyncio.Lock()

    async def insert(self, document: T) -> T:
        async with self._lock:
            if document.id in self._documents:
                raise DuplicateError(f"{self._model.__name__} already exists: {document.id}")
            stored = document.model_copy(deep=True, update={"version": 1})
            self._documents[stored.id] = stored
            return stored.model_copy(deep=True)

    async def get(self, document_id: UUID) -> Optional[T]:
        stored = self._documents.get(document_id)
        return stored.model_copy(deep=True) if stored else None

    def _check_version(self, document: T) -> T:
        stored = self._documents.get(document.id)
        if stored is None:
            raise NotFoundError(f"{self._model.__name__} not found: {document.id}")
        if stored.version != document.version:
            raise ConcurrencyError(document.id, document.version, stored.version)
        return stored

    def _store(self, document: T) -> T:
        stored = document.model_copy(deep=True, update={
            "version": document.version + 1,
            "updated_at": utc_now(),
        })
        self._documents[stored.id] = stored
        return stored.model_copy(deep=True)

    async def replace(self, document: T) -> T:
        async with self._lock:
            self._check_version(document)
            return self._store(document)

    async def replace_many(self, documents: list[T]) -> list[T]:
        async with self._lock:
            # Check everything before touching anything
            for document in documents:
                self._check_version(document)
            return [self._store(document) for document in documents]

    async def delete(self, document_id: UUID, expected_version: Optional[int] = None) -> bool:
        async with self._lock:
            stored = self._documents.get(document_id)
            if stored is None:
                return False
            if expected_version is not None and stored.version != expected_version:
                raise ConcurrencyError(document_id, expected_version, stored.version)
            del self._documents[document_id]
            return True

    async def all(self) -> list[T]:
        return [doc.model_copy(deep=True) for doc in self._documents.values()]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


class InMemoryDatabase:
    """
    One in-memory database: a collection per entity sharing one lock.

    Exposes the entity storages the engine depends on.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self.accounts = DocumentAccountStorage(InMemoryCollection(Account, self._lock))
        self.transactions = DocumentTransactionStorage(
            InMemoryCollection(Transaction, self._lock)
        )
        self.categories = DocumentCategoryStorage(InMemoryCollection(Category, self._lock))
        self.budgets = DocumentBudgetStorage(InMemoryCollection(Budget, self._lock))
        self.goals = DocumentGoalStorage(InMemoryCollection(Goal, self._lock))
        self.audit = InMemoryAuditStorage()
