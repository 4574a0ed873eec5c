"""
Tests for budgets: spend aggregation, derived values, alerts and suggestions.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_core.engine.budgets import (
    budget_status,
    compute_spent,
    percentage_used,
    remaining,
    should_alert,
)
from finance_core.engine.errors import (
    DuplicateResourceError,
    InvalidAmountError,
    InvariantViolationError,
    ResourceNotFoundError,
)
from finance_core.models.audit import AuditEventType
from finance_core.models.ledger import (
    CategoryKind,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import (
    Budget,
    BudgetCreate,
    BudgetNotifications,
    BudgetStatus,
)

MARCH_NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def _budget(amount="100000", spent="0", threshold=80, **extra):
    return Budget(
        owner_id=extra.pop("owner_id", uuid4()),
        category_id=extra.pop("category_id", uuid4()),
        name="Food",
        amount=Decimal(amount),
        spent=Decimal(spent),
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        alert_threshold=threshold,
        **extra,
    )


def _march(food, amount="100000", **extra):
    return BudgetCreate(
        category_id=food.id,
        amount=Decimal(amount),
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        **extra,
    )


class TestDerivedValues:
    """Pure budget arithmetic."""

    def test_warning_at_threshold(self):
        budget = _budget(spent="85000")
        assert percentage_used(budget) == Decimal("85")
        assert remaining(budget) == Decimal("15000")
        assert budget_status(budget) == BudgetStatus.WARNING

    def test_exceeded_clamps_remaining(self):
        budget = _budget(spent="120000")
        assert budget_status(budget) == BudgetStatus.EXCEEDED
        assert remaining(budget) == Decimal("0")

    def test_on_track_below_threshold(self):
        assert budget_status(_budget(spent="10")) == BudgetStatus.ON_TRACK

    def test_zero_amount_means_zero_percent(self):
        assert percentage_used(_budget(amount="0", spent="50")) == Decimal("0")

    def test_compute_spent_filters(self):
        budget = _budget()

        def entry(amount, day, **kw):
            return Transaction(
                owner_id=kw.get("owner_id", budget.owner_id),
                account_id=uuid4(),
                category_id=kw.get("category_id", budget.category_id),
                kind=kw.get("kind", TransactionKind.EXPENSE),
                amount=Decimal(amount),
                description="x",
                date=day,
                status=kw.get("status", TransactionStatus.COMPLETED),
            )

        entries = [
            entry("10", date(2024, 3, 1)),
            entry("20", date(2024, 3, 31)),
            entry("40", date(2024, 4, 1)),
            entry("80", date(2024, 3, 5), kind=TransactionKind.INCOME),
            entry("160", date(2024, 3, 5), status=TransactionStatus.PENDING),
            entry("320", date(2024, 3, 5), category_id=uuid4()),
            entry("640", date(2024, 3, 5), owner_id=uuid4()),
        ]
        assert compute_spent(budget, entries) == Decimal("30")


class TestShouldAlert:
    """Threshold plus cooldown."""

    def test_first_alert(self):
        assert should_alert(_budget(spent="85000"), MARCH_NOW)

    def test_below_threshold(self):
        assert not should_alert(_budget(spent="79999"), MARCH_NOW)

    def test_notifications_disabled(self):
        budget = _budget(spent="85000", notifications=BudgetNotifications(enabled=False))
        assert not should_alert(budget, MARCH_NOW)

    def test_cooldown(self):
        recent = BudgetNotifications(last_sent=MARCH_NOW - timedelta(hours=2))
        stale = BudgetNotifications(last_sent=MARCH_NOW - timedelta(hours=25))
        assert not should_alert(_budget(spent="85000", notifications=recent), MARCH_NOW)
        assert should_alert(_budget(spent="85000", notifications=stale), MARCH_NOW)


class TestBudgetService:
    """Budget CRUD with refresh-on-read."""

    async def test_spent_follows_ledger(self, app, owner_id, checking, food, make_draft):
        view = await app.budgets.create_budget(owner_id, _march(food))
        assert view.budget.spent == Decimal("0")
        assert view.category_name == "Food"
        assert view.budget.name == "Food"
        assert view.budget.alert_threshold == 80

        await app.ledger.create_entry(owner_id, make_draft(checking, food, 60000))
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 25000))

        view = await app.budgets.get_budget(owner_id, view.budget.id)
        assert view.budget.spent == Decimal("85000")
        assert view.percentage_used == Decimal("85.00")
        assert view.status == BudgetStatus.WARNING

    async def test_refresh_is_idempotent(self, app, owner_id, checking, food, make_draft):
        view = await app.budgets.create_budget(owner_id, _march(food))
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 1234))

        first = await app.budgets.refresh_spent(owner_id, view.budget.id)
        stored = await app.database.budgets.get_budget(view.budget.id)
        second = await app.budgets.refresh_spent(owner_id, view.budget.id)

        assert first == second == Decimal("1234")
        assert (await app.database.budgets.get_budget(view.budget.id)).version == stored.version

    async def test_deleted_entry_leaves_budget(self, app, owner_id, checking, food, make_draft):
        view = await app.budgets.create_budget(owner_id, _march(food))
        entry = await app.ledger.create_entry(owner_id, make_draft(checking, food, 500))
        await app.ledger.delete_entry(owner_id, entry.id)

        assert (await app.budgets.get_budget(owner_id, view.budget.id)).budget.spent == Decimal("0")

    async def test_invalid_amount(self, app, owner_id, food):
        with pytest.raises(InvalidAmountError):
            await app.budgets.create_budget(owner_id, _march(food, amount="0"))

    async def test_start_must_precede_end(self, app, owner_id, food):
        data = BudgetCreate(
            category_id=food.id,
            amount=Decimal("10"),
            start_date=date(2024, 3, 31),
            end_date=date(2024, 3, 31),
        )
        with pytest.raises(InvariantViolationError):
            await app.budgets.create_budget(owner_id, data)

    async def test_overlap_rejected(self, app, owner_id, food):
        await app.budgets.create_budget(owner_id, _march(food))
        overlapping = BudgetCreate(
            category_id=food.id,
            amount=Decimal("10"),
            start_date=date(2024, 3, 31),
            end_date=date(2024, 4, 30),
        )
        with pytest.raises(DuplicateResourceError):
            await app.budgets.create_budget(owner_id, overlapping)

    async def test_inactive_budget_does_not_block(self, app, owner_id, food):
        view = await app.budgets.create_budget(owner_id, _march(food))
        await app.budgets.update_budget(owner_id, view.budget.id, _march(food), is_active=False)

        again = await app.budgets.create_budget(owner_id, _march(food))
        assert again.budget.is_active

    async def test_other_owner_cannot_read(self, app, owner_id, food):
        view = await app.budgets.create_budget(owner_id, _march(food))
        with pytest.raises(ResourceNotFoundError):
            await app.budgets.get_budget(uuid4(), view.budget.id)

    async def test_list_active_on_date(self, app, owner_id, food, salary):
        await app.budgets.create_budget(owner_id, _march(food))
        await app.budgets.create_budget(owner_id, BudgetCreate(
            category_id=salary.id,
            amount=Decimal("10"),
            start_date=date(2024, 4, 1),
            end_date=date(2024, 4, 30),
        ))

        march = await app.budgets.list_active_budgets(owner_id, date(2024, 3, 31))
        assert [v.category_name for v in march] == ["Food"]
        assert len(await app.budgets.list_budgets(owner_id)) == 2

    async def test_stats(self, app, owner_id, checking, food, make_draft):
        await app.budgets.create_budget(owner_id, _march(food))
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 33333))

        stats = await app.budgets.get_budget_stats(owner_id, date(2024, 3, 15))
        assert stats.total_budgets == 1
        assert stats.total_spent == Decimal("33333")
        assert stats.total_remaining == Decimal("66667")
        assert stats.avg_percentage_used == Decimal("33.3")

    async def test_stats_remaining_ignores_overruns(self, app, owner_id, checking, food, make_draft):
        pets = await app.categories.create_category(
            owner_id, "Pets", CategoryKind.EXPENSE, color="#F97316"
        )
        await app.budgets.create_budget(owner_id, _march(food, "10000"))
        await app.budgets.create_budget(owner_id, _march(pets, "5000"))
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 15000))
        await app.ledger.create_entry(owner_id, make_draft(checking, pets, 1000))

        stats = await app.budgets.get_budget_stats(owner_id, date(2024, 3, 15))
        assert stats.total_spent == Decimal("16000")
        # The food overrun does not eat into what is left on pets
        assert stats.total_remaining == Decimal("4000")

    async def test_stats_without_budgets(self, app, owner_id):
        assert (await app.budgets.get_budget_stats(owner_id)).total_budgets == 0


class TestBudgetAlerts:
    """check_alerts stamps last_sent and respects the cooldown."""

    async def test_alert_once_per_cooldown(self, app, owner_id, checking, food, make_draft):
        view = await app.budgets.create_budget(owner_id, _march(food))
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 90000))

        alerted = await app.budgets.check_alerts(owner_id, now=MARCH_NOW)
        assert [v.budget.id for v in alerted] == [view.budget.id]
        assert alerted[0].budget.notifications.last_sent == MARCH_NOW

        assert await app.budgets.check_alerts(owner_id, now=MARCH_NOW + timedelta(hours=1)) == []
        later = await app.budgets.check_alerts(owner_id, now=MARCH_NOW + timedelta(hours=24))
        assert len(later) == 1

        events = await app.database.audit.get_recent_events()
        assert sum(e.event_type == AuditEventType.BUDGET_ALERT for e in events) == 2

    async def test_no_alert_below_threshold(self, app, owner_id, checking, food, make_draft):
        await app.budgets.create_budget(owner_id, _march(food))
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 100))
        assert await app.budgets.check_alerts(owner_id, now=MARCH_NOW) == []


class TestBudgetSuggestion:
    """Average recent spend plus a margin."""

    async def test_suggestion_from_history(self, app, owner_id, checking, food, make_draft):
        for amount, day in ((1000, date(2024, 1, 10)), (2000, date(2024, 2, 10)), (3000, date(2024, 3, 10))):
            await app.ledger.create_entry(owner_id, make_draft(checking, food, amount, date=day))
        # Outside the three-month lookback
        await app.ledger.create_entry(owner_id, make_draft(checking, food, 90000, date=date(2023, 11, 1)))

        suggested = await app.budgets.suggest_budget_amount(owner_id, food.id, today=date(2024, 4, 1))
        assert suggested == Decimal("2400")

    async def test_no_history_suggests_zero(self, app, owner_id, food):
        assert await app.budgets.suggest_budget_amount(owner_id, food.id) == Decimal("0")
