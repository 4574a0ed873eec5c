"""
Tests for the dashboard and analytics views.
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_core.analytics import AnalyticsPeriod
from finance_core.models.ledger import TransactionKind, TransactionStatus
from finance_core.models.planning import BudgetCreate, GoalCreate

TODAY = date(2024, 3, 31)


@pytest.fixture
async def history(app, owner_id, checking, savings, food, salary, make_draft):
    """Two months of activity on the checking account."""
    drafts = [
        make_draft(checking, salary, 200000, kind=TransactionKind.INCOME, date=date(2024, 2, 1)),
        make_draft(checking, food, 30000, date=date(2024, 2, 10)),
        make_draft(checking, food, 10000, date=date(2024, 3, 5), description="Market"),
        make_draft(checking, food, 5000, date=date(2024, 3, 6), status=TransactionStatus.PENDING),
        make_draft(
            checking, food, 50000, date=date(2024, 3, 7),
            kind=TransactionKind.TRANSFER, transfer_account_id=savings.id,
        ),
    ]
    return [await app.ledger.create_entry(owner_id, d) for d in drafts]


class TestDashboard:
    """The home screen summary."""

    async def test_empty_owner_gets_zeros(self, app, owner_id):
        dashboard = await app.dashboard.get_dashboard(owner_id, today=TODAY)
        assert dashboard.total_balance == Decimal("0")
        assert dashboard.recent_transactions == []
        assert dashboard.budgets == [] and dashboard.goals == []

    async def test_dashboard(self, app, owner_id, history, checking, savings):
        dashboard = await app.dashboard.get_dashboard(owner_id, today=TODAY)

        # 100,000 + 200,000 - 30,000 - 10,000, split across the two accounts
        assert dashboard.total_balance == Decimal("260000")
        assert dashboard.savings == Decimal("50000")
        assert dashboard.monthly_expenses == Decimal("10000")
        assert dashboard.recent_transactions[0].date == date(2024, 3, 7)
        assert dashboard.recent_transactions[1].category_name == "Food"
        assert dashboard.recent_transactions[1].account_name == "Checking"

    async def test_dashboard_limits_goals(self, app, owner_id):
        for i in range(7):
            await app.goals.create_goal(owner_id, GoalCreate(
                name=f"Goal {i}", target_amount=Decimal("100"), target_date=date(2030, 1, 1 + i),
            ))
        dashboard = await app.dashboard.get_dashboard(owner_id, today=TODAY)
        assert len(dashboard.goals) == 5


class TestStats:
    """Summaries over a window."""

    async def test_quick_stats(self, app, owner_id, history):
        stats = await app.dashboard.get_quick_stats(owner_id, days=30, today=TODAY)

        assert stats.transactions.total_income == Decimal("0")
        assert stats.transactions.total_expenses == Decimal("10000")
        # The March transfer counts as an entry but not as income or expense
        assert stats.transactions.transaction_count == 2
        assert stats.account_count == 2

    async def test_transaction_stats(self, app, owner_id, history):
        stats = {s.kind: s for s in await app.dashboard.get_transaction_stats(owner_id)}

        assert stats[TransactionKind.EXPENSE].count == 2
        assert stats[TransactionKind.EXPENSE].avg == Decimal("20000")
        assert stats[TransactionKind.EXPENSE].min == Decimal("10000")
        assert stats[TransactionKind.INCOME].total == Decimal("200000")

    async def test_expenses_by_category(self, app, owner_id, history):
        breakdown = await app.dashboard.get_expenses_by_category(owner_id)
        assert len(breakdown) == 1
        assert breakdown[0].category_name == "Food"
        assert breakdown[0].amount == Decimal("40000")
        assert breakdown[0].count == 2
        assert breakdown[0].percentage == Decimal("100.0")


class TestAnalyticsReport:
    """Monthly series, breakdown and budget insights."""

    async def test_monthly_series(self, app, owner_id, history):
        report = await app.dashboard.get_analytics(
            owner_id, AnalyticsPeriod.THREE_MONTHS, today=TODAY
        )

        assert report.date_from == date(2023, 12, 31)
        assert [m.month for m in report.monthly] == ["2024-02", "2024-03"]
        assert report.monthly[0].net == Decimal("170000")
        assert report.monthly[1].expenses == Decimal("10000")
        assert report.summary.net_amount == Decimal("160000")

    async def test_one_month_window(self, app, owner_id, history):
        report = await app.dashboard.get_analytics(
            owner_id, AnalyticsPeriod.ONE_MONTH, today=TODAY
        )
        assert [m.month for m in report.monthly] == ["2024-03"]

    async def test_budget_overrun_insight(self, app, owner_id, history, food):
        await app.budgets.create_budget(owner_id, BudgetCreate(
            category_id=food.id,
            amount=Decimal("25000"),
            start_date=date(2024, 2, 1),
            end_date=date(2024, 2, 29),
        ))
        report = await app.dashboard.get_analytics(owner_id, today=TODAY)

        assert len(report.insights) == 1
        assert report.insights[0].overrun == Decimal("5000")
