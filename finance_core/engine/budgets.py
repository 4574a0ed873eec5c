"""
Budget Spend Aggregator and Budget Service

CRITICAL: Budget.spent is a CACHE of a ledger sum, never a running total.
The ledger write path does not touch budgets. spent is recomputed from
the ledger on every read and on explicit refresh, so it is stale at most
between two reads. Recomputing twice with no ledger change in between
gives the same value.

The derived values (percentage used, remaining, status, alert decision)
are plain functions of a budget; nothing is computed behind attribute
access.
"""

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_core.audit import AuditLogger
from finance_core.config import get_settings
from finance_core.engine.errors import (
    DuplicateResourceError,
    ResourceNotFoundError,
)
from finance_core.engine.rules import require_positive, validate_date_range
from finance_core.models.audit import AuditEventType
from finance_core.models.base import utc_now
from finance_core.models.ledger import (
    Category,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import (
    Budget,
    BudgetCreate,
    BudgetNotifications,
    BudgetPeriod,
    BudgetStatus,
)
from finance_core.services.storage import (
    BudgetStorageInterface,
    CategoryStorageInterface,
    ConcurrencyError,
    TransactionStorageInterface,
)

HUNDRED = Decimal("100")
DEFAULT_ALERT_COOLDOWN = timedelta(hours=24)


# =============================================================================
# PURE AGGREGATES
# =============================================================================

def compute_spent(budget: Budget, entries: Iterable[Transaction]) -> Decimal:
    """
    Sum of the owner's completed expense entries in the budget's category,
    dated inside [start_date, end_date] (both inclusive).
    """
    return sum(
        (
            entry.amount for entry in entries
            if entry.owner_id == budget.owner_id
            and entry.category_id == budget.category_id
            and entry.kind == TransactionKind.EXPENSE
            and entry.status == TransactionStatus.COMPLETED
            and budget.covers(entry.date)
        ),
        Decimal("0"),
    )


def percentage_used(budget: Budget) -> Decimal:
    """spent / amount * 100, or 0 when the amount is not positive. Unrounded."""
    if budget.amount <= 0:
        return Decimal("0")
    return budget.spent / budget.amount * HUNDRED


def remaining(budget: Budget) -> Decimal:
    return max(Decimal("0"), budget.amount - budget.spent)


def budget_status(budget: Budget) -> BudgetStatus:
    used = percentage_used(budget)
    if used >= HUNDRED:
        return BudgetStatus.EXCEEDED
    if used >= budget.alert_threshold:
        return BudgetStatus.WARNING
    return BudgetStatus.ON_TRACK


def should_alert(
    budget: Budget,
    now: datetime,
    cooldown: timedelta = DEFAULT_ALERT_COOLDOWN,
) -> bool:
    """
    Notifications on, threshold reached, and no alert within the cooldown.
    """
    if not budget.notifications.enabled:
        return False
    if percentage_used(budget) < budget.alert_threshold:
        return False
    last_sent = budget.notifications.last_sent
    return last_sent is None or now - last_sent >= cooldown


# =============================================================================
# VIEWS
# =============================================================================

class BudgetView(BaseModel):
    """A budget joined with its category and derived values."""

    budget: Budget
    category_name: str
    category_color: str
    percentage_used: Decimal
    remaining: Decimal
    status: BudgetStatus


class BudgetStats(BaseModel):
    """Totals over the budgets active on one day."""

    total_budgets: int = 0
    total_amount: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")
    avg_percentage_used: Decimal = Decimal("0")


# =============================================================================
# SERVICE
# =============================================================================

class BudgetService:
    """
    Budget CRUD with refresh-on-read.

    Usage:
        view = await budgets.create_budget(owner_id, BudgetCreate(...))
        alerts = await budgets.check_alerts(owner_id)
    """

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        category_storage: CategoryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budget_storage
        self._transactions = transaction_storage
        self._categories = category_storage
        self._audit = audit_logger or AuditLogger()
        self._settings = get_settings().app

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_budget(self, owner_id: UUID, budget_id: UUID) -> Budget:
        budget = await self._budgets.get_budget(budget_id)
        if budget is None or budget.owner_id != owner_id:
            raise ResourceNotFoundError("Budget", budget_id)
        return budget

    async def _require_category(self, owner_id: UUID, category_id: UUID) -> Category:
        category = await self._categories.get_category(category_id)
        if category is None or not category.is_visible_to(owner_id):
            raise ResourceNotFoundError("Category", category_id)
        return category

    async def _check_overlap(
        self,
        owner_id: UUID,
        category_id: UUID,
        start_date: date,
        end_date: date,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        for other in await self._budgets.list_budgets(
            owner_id, category_id=category_id, active_only=True
        ):
            if other.id != exclude_id and other.overlaps(start_date, end_date):
                raise DuplicateResourceError(
                    f"An active budget already covers this category "
                    f"from {other.start_date} to {other.end_date}"
                )

    async def _ledger_spent(self, budget: Budget) -> Decimal:
        entries = await self._transactions.list_transactions(
            owner_id=budget.owner_id,
            category_id=budget.category_id,
            kind=TransactionKind.EXPENSE,
            status=TransactionStatus.COMPLETED,
            date_from=budget.start_date,
            date_to=budget.end_date,
        )
        return compute_spent(budget, entries)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, max=1),
        retry=retry_if_exception_type(ConcurrencyError),
        reraise=True,
    )
    async def _refresh(self, budget_id: UUID) -> Budget:
        # Re-read on every attempt; a conflict means someone else wrote
        budget = await self._budgets.get_budget(budget_id)
        if budget is None:
            raise ResourceNotFoundError("Budget", budget_id)
        spent = await self._ledger_spent(budget)
        if spent == budget.spent:
            return budget
        budget.spent = spent
        return await self._budgets.update_budget(budget)

    async def _view(self, budget: Budget) -> BudgetView:
        category = await self._categories.get_category(budget.category_id)
        used = percentage_used(budget)
        return BudgetView(
            budget=budget,
            category_name=category.name if category else "Uncategorized",
            category_color=category.color if category else "#64748B",
            percentage_used=used.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            remaining=remaining(budget),
            status=budget_status(budget),
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def create_budget(self, owner_id: UUID, data: BudgetCreate) -> BudgetView:
        """
        Create a budget and compute its spent amount right away.

        Raises:
            InvalidAmountError: amount not positive
            InvariantViolationError: start_date not before end_date
            ResourceNotFoundError: category unknown to owner
            DuplicateResourceError: an active budget already overlaps
        """
        require_positive(data.amount)
        validate_date_range(data.start_date, data.end_date)
        category = await self._require_category(owner_id, data.category_id)
        await self._check_overlap(owner_id, data.category_id, data.start_date, data.end_date)

        alert_threshold = data.alert_threshold
        if alert_threshold is None:
            alert_threshold = self._settings.default_alert_threshold

        budget = await self._budgets.save_budget(Budget(
            owner_id=owner_id,
            category_id=data.category_id,
            name=data.name or category.name,
            amount=data.amount,
            period=data.period,
            start_date=data.start_date,
            end_date=data.end_date,
            alert_threshold=alert_threshold,
            description=data.description,
            color=category.color,
            notifications=BudgetNotifications(enabled=data.notifications_enabled),
        ))
        await self._audit.log_entity_created(
            event_type=AuditEventType.BUDGET_CREATED,
            owner_id=owner_id,
            entity_type="budget",
            entity_id=budget.id,
            name=budget.name,
        )
        return await self._view(await self._refresh(budget.id))

    async def get_budget(self, owner_id: UUID, budget_id: UUID) -> BudgetView:
        """Read a budget with a freshly recomputed spent amount."""
        await self._require_budget(owner_id, budget_id)
        return await self._view(await self._refresh(budget_id))

    async def refresh_spent(self, owner_id: UUID, budget_id: UUID) -> Decimal:
        """Recompute and store spent. Returns the new value."""
        before = await self._require_budget(owner_id, budget_id)
        budget = await self._refresh(budget_id)
        await self._audit.log_entity_changed(
            event_type=AuditEventType.BUDGET_REFRESHED,
            owner_id=owner_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget spent refreshed: {before.spent} -> {budget.spent}",
            details={"before": str(before.spent), "after": str(budget.spent)},
        )
        return budget.spent

    async def list_budgets(
        self,
        owner_id: UUID,
        include_inactive: bool = False,
        period: Optional[BudgetPeriod] = None,
    ) -> list[BudgetView]:
        budgets = await self._budgets.list_budgets(owner_id, active_only=not include_inactive)
        return [
            await self._view(await self._refresh(b.id))
            for b in budgets
            if period is None or b.period == period
        ]

    async def list_active_budgets(
        self,
        owner_id: UUID,
        on_date: Optional[date] = None,
    ) -> list[BudgetView]:
        """Active budgets whose range covers on_date (default: today)."""
        on_date = on_date or utc_now().date()
        budgets = await self._budgets.list_budgets(
            owner_id, active_only=True, on_date=on_date
        )
        return [await self._view(await self._refresh(b.id)) for b in budgets]

    async def update_budget(
        self,
        owner_id: UUID,
        budget_id: UUID,
        data: BudgetCreate,
        is_active: Optional[bool] = None,
    ) -> BudgetView:
        """Replace the editable fields, re-check every rule, then refresh."""
        budget = await self._require_budget(owner_id, budget_id)
        require_positive(data.amount)
        validate_date_range(data.start_date, data.end_date)
        category = await self._require_category(owner_id, data.category_id)

        active = budget.is_active if is_active is None else is_active
        if active:
            await self._check_overlap(
                owner_id, data.category_id, data.start_date, data.end_date,
                exclude_id=budget_id,
            )

        budget.category_id = data.category_id
        budget.name = data.name or budget.name or category.name
        budget.amount = data.amount
        budget.period = data.period
        budget.start_date = data.start_date
        budget.end_date = data.end_date
        if data.alert_threshold is not None:
            budget.alert_threshold = data.alert_threshold
        budget.description = data.description
        budget.notifications.enabled = data.notifications_enabled
        budget.is_active = active

        saved = await self._budgets.update_budget(budget)
        return await self._view(await self._refresh(saved.id))

    async def delete_budget(self, owner_id: UUID, budget_id: UUID) -> None:
        await self._require_budget(owner_id, budget_id)
        if not await self._budgets.delete_budget(budget_id):
            raise ResourceNotFoundError("Budget", budget_id)

    async def get_budget_stats(
        self,
        owner_id: UUID,
        on_date: Optional[date] = None,
    ) -> BudgetStats:
        """Totals over active budgets covering on_date."""
        views = await self.list_active_budgets(owner_id, on_date)
        if not views:
            return BudgetStats()

        total_amount = sum((v.budget.amount for v in views), Decimal("0"))
        total_spent = sum((v.budget.spent for v in views), Decimal("0"))
        avg_used = sum((percentage_used(v.budget) for v in views), Decimal("0")) / len(views)
        return BudgetStats(
            total_budgets=len(views),
            total_amount=total_amount,
            total_spent=total_spent,
            total_remaining=sum((remaining(v.budget) for v in views), Decimal("0")),
            avg_percentage_used=avg_used.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
        )

    async def check_alerts(
        self,
        owner_id: UUID,
        now: Optional[datetime] = None,
    ) -> list[BudgetView]:
        """
        Find budgets that should alert now and stamp notifications.last_sent.

        Returns the budgets that alerted. Delivery is the caller's job.
        """
        now = now or utc_now()
        cooldown = timedelta(hours=self._settings.budget_alert_cooldown_hours)
        alerted = []

        for view in await self.list_active_budgets(owner_id, now.date()):
            budget = view.budget
            if not should_alert(budget, now, cooldown):
                continue
            budget.notifications.last_sent = now
            try:
                budget = await self._budgets.update_budget(budget)
            except ConcurrencyError:
                # Another writer moved the budget on; it is re-checked next time
                continue
            await self._audit.log_budget_alert(
                owner_id=owner_id,
                budget_id=budget.id,
                percentage_used=view.percentage_used,
                alert_threshold=budget.alert_threshold,
            )
            alerted.append(await self._view(budget))

        return alerted

    async def suggest_budget_amount(
        self,
        owner_id: UUID,
        category_id: UUID,
        today: Optional[date] = None,
    ) -> Decimal:
        """
        Average completed expense over the lookback window plus a margin,
        rounded to a whole amount. 0 when there is no history.
        """
        await self._require_category(owner_id, category_id)
        today = today or utc_now().date()
        since = today - relativedelta(months=self._settings.auto_budget_lookback_months)

        entries = await self._transactions.list_transactions(
            owner_id=owner_id,
            category_id=category_id,
            kind=TransactionKind.EXPENSE,
            status=TransactionStatus.COMPLETED,
            date_from=since,
        )
        if not entries:
            return Decimal("0")

        average = sum((e.amount for e in entries), Decimal("0")) / len(entries)
        margin = Decimal("1") + Decimal(str(self._settings.auto_budget_margin))
        return (average * margin).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
