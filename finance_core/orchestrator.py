"""
Application Wiring for Finance Core

Builds every service on top of one storage backend and one audit logger.

DESIGN DECISION: Services never construct their own storage.
They receive the storages they need from here, so the same engine
runs on the in-memory backend (tests, single process) and on
Google Sheets without a code change.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Union
from uuid import UUID

import structlog

from finance_core.analytics import DashboardService
from finance_core.audit import AuditLogger
from finance_core.config import get_settings
from finance_core.engine import (
    AccountBalanceUpdater,
    AccountService,
    AutoSaveScheduler,
    BudgetService,
    CategoryService,
    GoalService,
    LedgerService,
)
from finance_core.models.ledger import Account
from finance_core.services.storage import GoogleSheetsDatabase, InMemoryDatabase

logger = structlog.get_logger(__name__)

Database = Union[InMemoryDatabase, GoogleSheetsDatabase]


@dataclass
class AppComponents:
    """Every service of one running application, sharing one database."""

    database: Database
    audit_logger: AuditLogger
    balance_updater: AccountBalanceUpdater
    ledger: LedgerService
    accounts: AccountService
    categories: CategoryService
    budgets: BudgetService
    goals: GoalService
    scheduler: AutoSaveScheduler
    dashboard: DashboardService

    async def bootstrap(self) -> None:
        """Startup tasks: make sure the default categories exist."""
        defaults = await self.categories.ensure_default_categories()
        logger.info("bootstrap_complete", default_categories=len(defaults))

    async def register_user(self, owner_id: UUID) -> list[Account]:
        """Signup hook: the default accounts every new user gets."""
        return await self.accounts.create_default_accounts(owner_id)


@lru_cache()
def _sheets_database() -> GoogleSheetsDatabase:
    return GoogleSheetsDatabase()


def create_database(backend: Optional[str] = None) -> Database:
    """
    Create the storage backend.

    The Google Sheets backend is single-writer: a process gets one shared
    GoogleSheetsDatabase (and so one writer lease), and a second process
    writing to the same spreadsheet fails with WriterLeaseError while the
    lease is held.

    Args:
        backend: "memory" or "google_sheets". Defaults to the
                 STORAGE_BACKEND setting.
    """
    backend = backend or get_settings().app.storage_backend
    if backend == "google_sheets":
        return _sheets_database()
    if backend == "memory":
        return InMemoryDatabase()
    raise ValueError(f"Unknown storage backend: {backend}")


def create_app_components(
    backend: Optional[str] = None,
    database: Optional[Database] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: Storage backend name, used when no database is given.
        database: An existing database to build on (tests pass one in).
    """
    database = database or create_database(backend)
    audit_logger = AuditLogger(database.audit)

    balance_updater = AccountBalanceUpdater(database.accounts)
    budgets = BudgetService(
        database.budgets,
        database.transactions,
        database.categories,
        audit_logger=audit_logger,
    )
    goals = GoalService(database.goals, audit_logger=audit_logger)

    return AppComponents(
        database=database,
        audit_logger=audit_logger,
        balance_updater=balance_updater,
        ledger=LedgerService(
            database.transactions,
            database.accounts,
            database.categories,
            balance_updater=balance_updater,
            audit_logger=audit_logger,
        ),
        accounts=AccountService(database.accounts, audit_logger=audit_logger),
        categories=CategoryService(
            database.categories,
            database.transactions,
            audit_logger=audit_logger,
        ),
        budgets=budgets,
        goals=goals,
        scheduler=AutoSaveScheduler(database.goals, audit_logger=audit_logger),
        dashboard=DashboardService(
            database.accounts,
            database.transactions,
            database.categories,
            budget_service=budgets,
            goal_service=goals,
        ),
    )
