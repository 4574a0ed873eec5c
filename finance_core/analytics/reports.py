"""
Dashboard & Analytics

DESIGN DECISION: Every figure here is computed from stored data at
call time. Nothing is estimated and nothing is cached; an empty ledger
yields zeros, never an error.

Only COMPLETED entries count. Transfers move money between the owner's
own accounts, so they count as neither income nor expense.

The aggregation helpers are pure functions over lists of entries;
DashboardService loads the data and joins display fields.
"""

from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from finance_core.config import get_settings
from finance_core.engine.budgets import BudgetService, BudgetView
from finance_core.engine.goals import GoalProgress, GoalService
from finance_core.models.base import utc_now
from finance_core.models.ledger import (
    Account,
    AccountKind,
    Category,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import GoalStatus
from finance_core.services.storage import (
    AccountStorageInterface,
    CategoryStorageInterface,
    TransactionStorageInterface,
)

ZERO = Decimal("0")
DASHBOARD_GOALS_LIMIT = 5


class AnalyticsPeriod(str, Enum):
    """Look-back windows for the analytics report."""
    ONE_MONTH = "1month"
    THREE_MONTHS = "3months"
    SIX_MONTHS = "6months"
    ONE_YEAR = "1year"


PERIOD_MONTHS = {
    AnalyticsPeriod.ONE_MONTH: 1,
    AnalyticsPeriod.THREE_MONTHS: 3,
    AnalyticsPeriod.SIX_MONTHS: 6,
    AnalyticsPeriod.ONE_YEAR: 12,
}


# =============================================================================
# RESULT MODELS
# =============================================================================

class MonthlyTotals(BaseModel):
    month: str  # YYYY-MM
    income: Decimal = ZERO
    expenses: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class CategoryExpense(BaseModel):
    category_id: UUID
    category_name: str
    color: str
    amount: Decimal
    count: int
    percentage: Decimal  # of all expenses in the window, 1 decimal


class KindStats(BaseModel):
    kind: TransactionKind
    count: int
    total: Decimal
    avg: Decimal
    min: Decimal
    max: Decimal


class PeriodSummary(BaseModel):
    """Income and expense totals over a window."""
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    avg_income: Decimal = ZERO
    avg_expense: Decimal = ZERO
    transaction_count: int = 0

    @property
    def net_amount(self) -> Decimal:
        return self.total_income - self.total_expenses


class BudgetInsight(BaseModel):
    """An active budget whose spend went past its amount."""
    budget_id: UUID
    category_name: str
    overrun: Decimal


class AnalyticsReport(BaseModel):
    period: AnalyticsPeriod
    date_from: date
    date_to: date
    monthly: list[MonthlyTotals]
    category_expenses: list[CategoryExpense]
    summary: PeriodSummary
    insights: list[BudgetInsight]


class RecentEntry(BaseModel):
    """A ledger entry joined with its category and account names."""
    id: UUID
    description: str
    kind: TransactionKind
    amount: Decimal
    date: date
    category_name: str
    account_name: str


class DashboardSummary(BaseModel):
    accounts: list[Account]
    recent_transactions: list[RecentEntry]
    budgets: list[BudgetView]
    goals: list[GoalProgress]
    total_balance: Decimal
    monthly_expenses: Decimal
    savings: Decimal


class QuickStats(BaseModel):
    days: int
    transactions: PeriodSummary
    total_balance: Decimal
    account_count: int
    total_goals: int
    completed_goals: int
    total_target_amount: Decimal
    total_current_amount: Decimal


# =============================================================================
# PURE AGGREGATES
# =============================================================================

def _completed(entries: Iterable[Transaction]) -> list[Transaction]:
    return [e for e in entries if e.status == TransactionStatus.COMPLETED]


def summarize(entries: Iterable[Transaction]) -> PeriodSummary:
    """Income/expense totals and averages. Transfers only add to the count."""
    entries = _completed(entries)
    incomes = [e.amount for e in entries if e.kind == TransactionKind.INCOME]
    expenses = [e.amount for e in entries if e.kind == TransactionKind.EXPENSE]
    return PeriodSummary(
        total_income=sum(incomes, ZERO),
        total_expenses=sum(expenses, ZERO),
        avg_income=sum(incomes, ZERO) / len(incomes) if incomes else ZERO,
        avg_expense=sum(expenses, ZERO) / len(expenses) if expenses else ZERO,
        transaction_count=len(entries),
    )


def monthly_totals(entries: Iterable[Transaction]) -> list[MonthlyTotals]:
    """Income and expenses per calendar month, oldest first."""
    months: dict[str, MonthlyTotals] = {}
    for entry in _completed(entries):
        if entry.kind == TransactionKind.TRANSFER:
            continue
        key = entry.date.strftime("%Y-%m")
        totals = months.setdefault(key, MonthlyTotals(month=key))
        if entry.kind == TransactionKind.INCOME:
            totals.income += entry.amount
        else:
            totals.expenses += entry.amount
    return [months[key] for key in sorted(months)]


def expenses_by_category(
    entries: Iterable[Transaction],
    categories: dict[UUID, Category],
) -> list[CategoryExpense]:
    """Expense breakdown, largest first, with each category's share."""
    amounts: dict[UUID, Decimal] = defaultdict(Decimal)
    counts: dict[UUID, int] = defaultdict(int)
    for entry in _completed(entries):
        if entry.kind != TransactionKind.EXPENSE:
            continue
        amounts[entry.category_id] += entry.amount
        counts[entry.category_id] += 1

    total = sum(amounts.values(), ZERO)
    breakdown = []
    for category_id, amount in amounts.items():
        category = categories.get(category_id)
        share = amount / total * 100 if total else ZERO
        breakdown.append(CategoryExpense(
            category_id=category_id,
            category_name=category.name if category else "Uncategorized",
            color=category.color if category else "#64748B",
            amount=amount,
            count=counts[category_id],
            percentage=share.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
        ))
    breakdown.sort(key=lambda c: c.amount, reverse=True)
    return breakdown


def stats_by_kind(entries: Iterable[Transaction]) -> list[KindStats]:
    """Count, total, average, min and max amount per entry kind."""
    grouped: dict[TransactionKind, list[Decimal]] = defaultdict(list)
    for entry in _completed(entries):
        grouped[entry.kind].append(entry.amount)

    return [
        KindStats(
            kind=kind,
            count=len(amounts),
            total=sum(amounts, ZERO),
            avg=sum(amounts, ZERO) / len(amounts),
            min=min(amounts),
            max=max(amounts),
        )
        for kind, amounts in sorted(grouped.items(), key=lambda item: item[0].value)
    ]


# =============================================================================
# SERVICE
# =============================================================================

class DashboardService:
    """
    Read-only views over one owner's data.

    GUARANTEES:
    - Only returns real data from storage
    - Budgets shown are refreshed from the ledger first
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        transaction_storage: TransactionStorageInterface,
        category_storage: CategoryStorageInterface,
        budget_service: BudgetService,
        goal_service: GoalService,
    ):
        self._accounts = account_storage
        self._transactions = transaction_storage
        self._categories = category_storage
        self._budgets = budget_service
        self._goals = goal_service
        self._settings = get_settings().app

    async def _category_map(self, owner_id: UUID) -> dict[UUID, Category]:
        categories = await self._categories.list_categories(
            owner_id=owner_id, include_inactive=True
        )
        return {c.id: c for c in categories}

    async def get_dashboard(
        self,
        owner_id: UUID,
        today: Optional[date] = None,
    ) -> DashboardSummary:
        today = today or utc_now().date()
        accounts = await self._accounts.list_accounts(owner_id)
        all_accounts = {
            a.id: a for a in await self._accounts.list_accounts(owner_id, include_inactive=True)
        }
        categories = await self._category_map(owner_id)

        recent = []
        for entry in await self._transactions.list_transactions(
            owner_id=owner_id, limit=self._settings.recent_transactions_limit
        ):
            category = categories.get(entry.category_id)
            account = all_accounts.get(entry.account_id)
            recent.append(RecentEntry(
                id=entry.id,
                description=entry.description,
                kind=entry.kind,
                amount=entry.amount,
                date=entry.date,
                category_name=category.name if category else "Uncategorized",
                account_name=account.name if account else "Deleted account",
            ))

        month_start = today.replace(day=1)
        month_entries = await self._transactions.list_transactions(
            owner_id=owner_id,
            kind=TransactionKind.EXPENSE,
            status=TransactionStatus.COMPLETED,
            date_from=month_start,
            date_to=today,
        )

        goals = await self._goals.list_goals(owner_id, GoalStatus.ACTIVE)

        return DashboardSummary(
            accounts=accounts,
            recent_transactions=recent,
            budgets=await self._budgets.list_active_budgets(owner_id, today),
            goals=goals[:DASHBOARD_GOALS_LIMIT],
            total_balance=sum((a.balance for a in accounts), ZERO),
            monthly_expenses=sum((e.amount for e in month_entries), ZERO),
            savings=sum(
                (a.balance for a in accounts if a.kind == AccountKind.SAVINGS),
                ZERO,
            ),
        )

    async def get_quick_stats(
        self,
        owner_id: UUID,
        days: int = 30,
        today: Optional[date] = None,
    ) -> QuickStats:
        """Totals over the last `days` days plus account and goal totals."""
        today = today or utc_now().date()
        entries = await self._transactions.list_transactions(
            owner_id=owner_id,
            date_from=today - relativedelta(days=days),
            date_to=today,
        )
        accounts = await self._accounts.list_accounts(owner_id)
        goal_stats = await self._goals.get_goal_stats(owner_id)

        return QuickStats(
            days=days,
            transactions=summarize(entries),
            total_balance=sum((a.balance for a in accounts), ZERO),
            account_count=len(accounts),
            total_goals=goal_stats.total_goals,
            completed_goals=goal_stats.completed_goals,
            total_target_amount=sum(
                (t.total_target for t in goal_stats.by_status.values()), ZERO
            ),
            total_current_amount=sum(
                (t.total_current for t in goal_stats.by_status.values()), ZERO
            ),
        )

    async def get_transaction_stats(
        self,
        owner_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[KindStats]:
        entries = await self._transactions.list_transactions(
            owner_id=owner_id, date_from=date_from, date_to=date_to
        )
        return stats_by_kind(entries)

    async def get_expenses_by_category(
        self,
        owner_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[CategoryExpense]:
        entries = await self._transactions.list_transactions(
            owner_id=owner_id,
            kind=TransactionKind.EXPENSE,
            date_from=date_from,
            date_to=date_to,
        )
        return expenses_by_category(entries, await self._category_map(owner_id))

    async def get_analytics(
        self,
        owner_id: UUID,
        period: AnalyticsPeriod = AnalyticsPeriod.SIX_MONTHS,
        today: Optional[date] = None,
    ) -> AnalyticsReport:
        """Monthly series, category breakdown, summary and budget overruns."""
        today = today or utc_now().date()
        date_from = today - relativedelta(months=PERIOD_MONTHS[period])
        entries = await self._transactions.list_transactions(
            owner_id=owner_id, date_from=date_from, date_to=today
        )

        insights = [
            BudgetInsight(
                budget_id=view.budget.id,
                category_name=view.category_name,
                overrun=view.budget.spent - view.budget.amount,
            )
            for view in await self._budgets.list_budgets(owner_id)
            if view.budget.spent > view.budget.amount
        ]

        return AnalyticsReport(
            period=period,
            date_from=date_from,
            date_to=today,
            monthly=monthly_totals(entries),
            category_expenses=expenses_by_category(
                entries, await self._category_map(owner_id)
            ),
            summary=summarize(entries),
            insights=insights,
        )
