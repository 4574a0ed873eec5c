"""
Shared fixtures.

Every test gets a fresh in-memory database; nothing touches the network.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_core.config import get_settings
from finance_core.models.ledger import (
    AccountCreate,
    AccountKind,
    Bank,
    CategoryKind,
    TransactionDraft,
    TransactionKind,
)
from finance_core.orchestrator import create_app_components
from finance_core.services.storage import InMemoryDatabase


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Keep a developer's environment out of the tests."""
    for name in ("STORAGE_BACKEND", "DEFAULT_CURRENCY", "BUDGET_ALERT_COOLDOWN_HOURS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def database():
    return InMemoryDatabase()


@pytest.fixture
async def app(database):
    components = create_app_components(database=database)
    await components.bootstrap()
    return components


@pytest.fixture
async def checking(app, owner_id):
    """Checking account holding 100,000."""
    return await app.accounts.create_account(
        owner_id,
        AccountCreate(name="Checking", bank=Bank.CBAO, balance=Decimal("100000")),
    )


@pytest.fixture
async def savings(app, owner_id):
    """Empty savings account."""
    return await app.accounts.create_account(
        owner_id,
        AccountCreate(name="Savings", bank=Bank.SGBS, kind=AccountKind.SAVINGS),
    )


@pytest.fixture
async def credit_card(app, owner_id):
    return await app.accounts.create_account(
        owner_id,
        AccountCreate(name="Visa", bank=Bank.ECOBANK, kind=AccountKind.CREDIT),
    )


@pytest.fixture
async def food(app):
    return await app.database.categories.find_category("Food", CategoryKind.EXPENSE, None)


@pytest.fixture
async def salary(app):
    return await app.database.categories.find_category("Salary", CategoryKind.INCOME, None)


@pytest.fixture
def make_draft():
    """Factory for ledger drafts with sensible defaults."""

    def _make(account, category, amount, kind=TransactionKind.EXPENSE, **extra):
        return TransactionDraft(
            account_id=account.id,
            category_id=category.id,
            kind=kind,
            amount=Decimal(str(amount)),
            description=extra.pop("description", "Test entry"),
            date=extra.pop("date", date(2024, 3, 15)),
            **extra,
        )

    return _make


@pytest.fixture
def balance_of(app):
    """Read an account's stored balance."""

    async def _balance(account) -> Decimal:
        stored = await app.database.accounts.get_account(account.id)
        return stored.balance

    return _balance
