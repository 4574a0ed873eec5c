"""
Tests for the Account Balance Updater.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_core.engine.balances import (
    AccountBalanceUpdater,
    effect_of,
    net_change,
    normalize_balance,
)
from finance_core.engine.errors import InsufficientFundsError, ResourceNotFoundError
from finance_core.models.ledger import (
    Account,
    AccountKind,
    Bank,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.services.storage import BalanceWrite, ConcurrencyError, InMemoryDatabase


def _entry(kind, amount, account_id, transfer_account_id=None, status=TransactionStatus.COMPLETED):
    return Transaction(
        owner_id=uuid4(),
        account_id=account_id,
        category_id=uuid4(),
        kind=kind,
        amount=Decimal(amount),
        description="entry",
        date=date(2024, 1, 1),
        transfer_account_id=transfer_account_id,
        status=status,
    )


class TestEffects:
    """Pure balance effect helpers."""

    def test_income_and_expense(self):
        a = uuid4()
        assert effect_of(_entry(TransactionKind.INCOME, "50", a)) == {a: Decimal("50")}
        assert effect_of(_entry(TransactionKind.EXPENSE, "50", a)) == {a: Decimal("-50")}

    def test_transfer_moves_between_accounts(self):
        a, b = uuid4(), uuid4()
        effect = effect_of(_entry(TransactionKind.TRANSFER, "30", a, b))
        assert effect == {a: Decimal("-30"), b: Decimal("30")}

    def test_non_completed_entries_have_no_effect(self):
        a = uuid4()
        for status in (TransactionStatus.PENDING, TransactionStatus.CANCELLED):
            assert effect_of(_entry(TransactionKind.INCOME, "50", a, status=status)) == {}
        assert effect_of(None) == {}

    def test_amount_edit_changes_by_difference(self):
        a = uuid4()
        old = _entry(TransactionKind.EXPENSE, "15000", a)
        new = old.model_copy(update={"amount": Decimal("20000")})
        assert net_change(old, new) == {a: Decimal("-5000")}

    def test_moving_entry_between_accounts_is_folded(self):
        a, b = uuid4(), uuid4()
        old = _entry(TransactionKind.EXPENSE, "100", a)
        new = old.model_copy(update={"account_id": b})
        assert net_change(old, new) == {a: Decimal("100"), b: Decimal("-100")}

    def test_unchanged_entry_has_no_net_change(self):
        entry = _entry(TransactionKind.INCOME, "10", uuid4())
        assert net_change(entry, entry) == {}

    def test_credit_balance_is_normalized(self):
        owner = uuid4()
        credit = Account(owner_id=owner, name="Visa", bank=Bank.UBA, kind=AccountKind.CREDIT)
        checking = Account(owner_id=owner, name="Main", bank=Bank.UBA)
        assert normalize_balance(credit, Decimal("-40")) == Decimal("40")
        assert normalize_balance(checking, Decimal("-40")) == Decimal("-40")


class TestAccountBalanceUpdater:
    """Atomic, guarded, retried balance commits."""

    @pytest.fixture
    async def accounts(self):
        db = InMemoryDatabase()
        owner = uuid4()
        a = await db.accounts.save_account(
            Account(owner_id=owner, name="A", bank=Bank.BOA, balance=Decimal("100"))
        )
        b = await db.accounts.save_account(
            Account(owner_id=owner, name="B", bank=Bank.BOA, balance=Decimal("0"))
        )
        return db, a, b

    async def test_apply_commits_all_changes(self, accounts):
        db, a, b = accounts
        updater = AccountBalanceUpdater(db.accounts)

        applied = await updater.apply({a.id: Decimal("-30"), b.id: Decimal("30")})

        assert (await db.accounts.get_account(a.id)).balance == Decimal("70")
        assert (await db.accounts.get_account(b.id)).balance == Decimal("30")
        assert applied.as_deltas() == {a.id: Decimal("-30"), b.id: Decimal("30")}

    async def test_guard_failure_commits_nothing(self, accounts):
        """B would go negative, so A must not be credited either."""
        db, a, b = accounts
        updater = AccountBalanceUpdater(db.accounts)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await updater.apply({a.id: Decimal("50"), b.id: Decimal("-50")})

        assert exc_info.value.account_id == b.id
        assert (await db.accounts.get_account(a.id)).balance == Decimal("100")
        assert (await db.accounts.get_account(b.id)).balance == Decimal("0")

    async def test_balance_may_reach_exactly_zero(self, accounts):
        db, a, _ = accounts
        await AccountBalanceUpdater(db.accounts).apply({a.id: Decimal("-100")})
        assert (await db.accounts.get_account(a.id)).balance == Decimal("0")

    async def test_unknown_account(self, accounts):
        db, _, _ = accounts
        with pytest.raises(ResourceNotFoundError):
            await AccountBalanceUpdater(db.accounts).apply({uuid4(): Decimal("1")})

    async def test_empty_change_is_noop(self, accounts):
        db, a, _ = accounts
        applied = await AccountBalanceUpdater(db.accounts).apply({a.id: Decimal("0")})
        assert applied.is_empty
        assert (await db.accounts.get_account(a.id)).version == a.version

    async def test_conflicting_write_is_retried(self, accounts):
        """A write sneaking in between read and commit forces a re-read."""
        db, a, _ = accounts
        storage = db.accounts
        original_commit = storage.commit_balances
        calls = {"n": 0}

        async def racing_commit(writes):
            calls["n"] += 1
            if calls["n"] == 1:
                current = await storage.get_account(a.id)
                await original_commit([BalanceWrite(
                    account_id=a.id,
                    expected_version=current.version,
                    balance=current.balance + Decimal("5"),
                )])
            return await original_commit(writes)

        storage.commit_balances = racing_commit
        await AccountBalanceUpdater(storage, retry_wait_seconds=0).apply({a.id: Decimal("-10")})

        # Both the racing +5 and our -10 landed
        assert (await storage.get_account(a.id)).balance == Decimal("95")
        assert calls["n"] == 2

    async def test_persistent_conflict_gives_up(self, accounts):
        db, a, _ = accounts
        storage = db.accounts

        async def always_conflict(writes):
            raise ConcurrencyError(a.id, 1, 2)

        storage.commit_balances = always_conflict
        updater = AccountBalanceUpdater(storage, max_attempts=2, retry_wait_seconds=0)

        with pytest.raises(ConcurrencyError):
            await updater.apply({a.id: Decimal("-10")})

    async def test_reverse_restores_credit_account(self):
        db = InMemoryDatabase()
        credit = await db.accounts.save_account(Account(
            owner_id=uuid4(), name="Visa", bank=Bank.UBA, kind=AccountKind.CREDIT,
        ))
        updater = AccountBalanceUpdater(db.accounts)

        applied = await updater.apply({credit.id: Decimal("-50")})
        assert (await db.accounts.get_account(credit.id)).balance == Decimal("50")

        await updater.reverse(applied)
        assert (await db.accounts.get_account(credit.id)).balance == Decimal("0")
