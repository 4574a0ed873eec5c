"""
Goal Contribution Tracker and Goal Service

Goal progress moves ONLY through contributions:
1. Amount must be positive
2. The contribution is appended, stamped with the current time
3. current_amount grows by the amount
4. Every unachieved milestone at or below current_amount is achieved
5. An ACTIVE goal that reaches its target becomes COMPLETED

DESIGN DECISION: The goal document is written once per contribution,
compare-and-set on its version. Two concurrent contributions never
lose an update: the loser re-reads and re-applies (manual contributions)
or skips the occurrence (auto-save, see autosave.py).

Progress views (percentage, remaining, days left, daily need, status)
are plain functions of a goal and a date.
"""

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
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
from finance_core.engine.errors import (
    InvariantViolationError,
    ResourceNotFoundError,
)
from finance_core.engine.rules import require_positive
from finance_core.models.audit import AuditEventType
from finance_core.models.base import utc_now
from finance_core.models.planning import (
    AutoSaveFrequency,
    AutoSaveRule,
    Contribution,
    ContributionSource,
    Goal,
    GoalCategory,
    GoalCreate,
    GoalPriority,
    GoalProgressStatus,
    GoalStatus,
)
from finance_core.services.storage import ConcurrencyError, GoalStorageInterface

HUNDRED = Decimal("100")
AT_RISK_DAYS = 30

# Manual status changes. COMPLETED is reached only through contributions.
ALLOWED_TRANSITIONS = {
    GoalStatus.ACTIVE: {GoalStatus.PAUSED, GoalStatus.CANCELLED},
    GoalStatus.PAUSED: {GoalStatus.ACTIVE, GoalStatus.CANCELLED},
    GoalStatus.COMPLETED: set(),
    GoalStatus.CANCELLED: set(),
}


# =============================================================================
# CONTRIBUTIONS
# =============================================================================

class ContributionOutcome(BaseModel):
    """The updated goal and what the contribution triggered."""

    goal: Goal
    contribution: Contribution
    achieved_milestones: list[str] = []
    completed: bool = False


def add_contribution(
    goal: Goal,
    amount: Decimal,
    note: str = "",
    source: ContributionSource = ContributionSource.MANUAL,
    now: Optional[datetime] = None,
) -> ContributionOutcome:
    """
    Apply a contribution to a copy of the goal. The input is not modified.

    Raises:
        InvalidAmountError: amount not positive
    """
    require_positive(amount)
    now = now or utc_now()

    updated = goal.model_copy(deep=True)
    contribution = Contribution(amount=amount, date=now, note=note, source=source)
    updated.contributions.append(contribution)
    updated.current_amount = updated.current_amount + amount

    achieved = []
    for milestone in updated.milestones:
        if not milestone.achieved and milestone.amount <= updated.current_amount:
            milestone.achieved = True
            milestone.achieved_date = now
            achieved.append(milestone.name)

    completed = False
    if updated.status == GoalStatus.ACTIVE and updated.current_amount >= updated.target_amount:
        updated.status = GoalStatus.COMPLETED
        completed = True

    return ContributionOutcome(
        goal=updated,
        contribution=contribution,
        achieved_milestones=achieved,
        completed=completed,
    )


def next_auto_save_date(rule: AutoSaveRule, now: datetime) -> datetime:
    """
    The occurrence after rule.next_date (or after now if none is set).

    Monthly steps are calendar months: Jan 31 -> Feb 28/29.
    """
    base = rule.next_date or now
    if rule.frequency == AutoSaveFrequency.DAILY:
        return base + timedelta(days=1)
    if rule.frequency == AutoSaveFrequency.WEEKLY:
        return base + timedelta(days=7)
    return base + relativedelta(months=1)


async def audit_contribution(
    audit: AuditLogger,
    outcome: ContributionOutcome,
) -> None:
    """Log a contribution and everything it triggered."""
    goal = outcome.goal
    await audit.log_contribution_added(
        owner_id=goal.owner_id,
        goal_id=goal.id,
        amount=outcome.contribution.amount,
        source=outcome.contribution.source.value,
        current_amount=goal.current_amount,
    )
    for name in outcome.achieved_milestones:
        await audit.log_milestone_achieved(goal.owner_id, goal.id, name)
    if outcome.completed:
        await audit.log_goal_completed(goal.owner_id, goal.id)


# =============================================================================
# PROGRESS VIEWS
# =============================================================================

def progress_percentage(goal: Goal) -> Decimal:
    if goal.target_amount <= 0:
        return Decimal("0")
    return (goal.current_amount / goal.target_amount * HUNDRED).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def remaining_amount(goal: Goal) -> Decimal:
    return max(Decimal("0"), goal.target_amount - goal.current_amount)


def days_remaining(goal: Goal, today: date) -> int:
    """Negative once the target date has passed."""
    return (goal.target_date - today).days


def daily_amount_needed(goal: Goal, today: date) -> Decimal:
    days = days_remaining(goal, today)
    if days <= 0:
        return Decimal("0")
    return (remaining_amount(goal) / days).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def progress_status(goal: Goal, today: date) -> GoalProgressStatus:
    percentage = progress_percentage(goal)
    days = days_remaining(goal, today)

    if percentage >= HUNDRED:
        return GoalProgressStatus.COMPLETED
    if days < 0:
        return GoalProgressStatus.OVERDUE
    if days <= AT_RISK_DAYS and percentage < 80:
        return GoalProgressStatus.AT_RISK
    if percentage >= 75:
        return GoalProgressStatus.ON_TRACK
    return GoalProgressStatus.BEHIND


class GoalProgress(BaseModel):
    """A goal with its derived progress values."""

    goal: Goal
    progress_percentage: Decimal
    remaining_amount: Decimal
    days_remaining: int
    daily_amount_needed: Decimal
    progress_status: GoalProgressStatus

    @classmethod
    def of(cls, goal: Goal, today: Optional[date] = None) -> "GoalProgress":
        today = today or utc_now().date()
        return cls(
            goal=goal,
            progress_percentage=progress_percentage(goal),
            remaining_amount=remaining_amount(goal),
            days_remaining=days_remaining(goal, today),
            daily_amount_needed=daily_amount_needed(goal, today),
            progress_status=progress_status(goal, today),
        )


class GoalStatusTotals(BaseModel):
    count: int = 0
    total_target: Decimal = Decimal("0")
    total_current: Decimal = Decimal("0")


class GoalStats(BaseModel):
    """Per-status totals plus overall progress."""

    by_status: dict[GoalStatus, GoalStatusTotals]
    total_goals: int = 0
    completed_goals: int = 0
    avg_progress: Decimal = Decimal("0")


# =============================================================================
# SERVICE
# =============================================================================

class GoalService:
    """Goal lifecycle and manual contributions."""

    def __init__(
        self,
        goal_storage: GoalStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._goals = goal_storage
        self._audit = audit_logger or AuditLogger()

    async def _require_goal(self, owner_id: UUID, goal_id: UUID) -> Goal:
        goal = await self._goals.get_goal(goal_id)
        if goal is None or goal.owner_id != owner_id:
            raise ResourceNotFoundError("Goal", goal_id)
        return goal

    @staticmethod
    def _check_auto_save(rule: AutoSaveRule, now: datetime) -> AutoSaveRule:
        if not rule.enabled:
            return rule
        require_positive(rule.amount, "auto_save.amount")
        if rule.next_date is None:
            return rule.model_copy(update={"next_date": next_auto_save_date(rule, now)})
        return rule

    async def create_goal(
        self,
        owner_id: UUID,
        data: GoalCreate,
        now: Optional[datetime] = None,
    ) -> GoalProgress:
        """
        Create a goal.

        Raises:
            InvalidAmountError: target or auto-save amount not positive
            InvariantViolationError: target date not in the future
        """
        now = now or utc_now()
        require_positive(data.target_amount, "target_amount")
        if data.target_date <= now.date():
            raise InvariantViolationError("Goal target date must be in the future")

        goal = Goal(
            owner_id=owner_id,
            name=data.name,
            description=data.description,
            target_amount=data.target_amount,
            target_date=data.target_date,
            category=data.category,
            priority=data.priority,
            milestones=sorted(data.milestones, key=lambda m: m.amount),
            auto_save=self._check_auto_save(data.auto_save or AutoSaveRule(), now),
        )
        saved = await self._goals.save_goal(goal)
        await self._audit.log_entity_created(
            event_type=AuditEventType.GOAL_CREATED,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=saved.id,
            name=saved.name,
        )
        return GoalProgress.of(saved, now.date())

    async def get_goal(self, owner_id: UUID, goal_id: UUID) -> GoalProgress:
        return GoalProgress.of(await self._require_goal(owner_id, goal_id))

    async def list_goals(
        self,
        owner_id: UUID,
        status: Optional[GoalStatus] = None,
    ) -> list[GoalProgress]:
        today = utc_now().date()
        return [
            GoalProgress.of(goal, today)
            for goal in await self._goals.list_goals(owner_id, status)
        ]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, max=1),
        retry=retry_if_exception_type(ConcurrencyError),
        reraise=True,
    )
    async def contribute(
        self,
        owner_id: UUID,
        goal_id: UUID,
        amount: Decimal,
        note: str = "",
        source: ContributionSource = ContributionSource.MANUAL,
        now: Optional[datetime] = None,
    ) -> GoalProgress:
        """
        Add money to an active goal.

        A version conflict re-reads the goal and applies the contribution
        again, so no concurrent contribution is lost.

        Raises:
            InvalidAmountError: amount not positive
            InvariantViolationError: goal is not active
        """
        require_positive(amount)
        goal = await self._require_goal(owner_id, goal_id)
        if goal.status != GoalStatus.ACTIVE:
            raise InvariantViolationError(
                f"Contributions require an active goal (status={goal.status.value})"
            )

        outcome = add_contribution(goal, amount, note, source, now)
        saved = await self._goals.update_goal(outcome.goal)
        outcome.goal = saved
        await audit_contribution(self._audit, outcome)
        return GoalProgress.of(saved)

    async def set_status(
        self,
        owner_id: UUID,
        goal_id: UUID,
        status: GoalStatus,
    ) -> GoalProgress:
        """Pause, resume or cancel a goal."""
        goal = await self._require_goal(owner_id, goal_id)
        if status == goal.status:
            return GoalProgress.of(goal)
        if status not in ALLOWED_TRANSITIONS[goal.status]:
            raise InvariantViolationError(
                f"Cannot change goal status from {goal.status.value} to {status.value}"
            )

        previous = goal.status
        goal.status = status
        saved = await self._goals.update_goal(goal)
        await self._audit.log_entity_changed(
            event_type=AuditEventType.GOAL_STATUS_CHANGED,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Goal status: {previous.value} -> {status.value}",
            details={"from": previous.value, "to": status.value},
        )
        return GoalProgress.of(saved)

    async def configure_auto_save(
        self,
        owner_id: UUID,
        goal_id: UUID,
        enabled: bool,
        amount: Optional[Decimal] = None,
        frequency: Optional[AutoSaveFrequency] = None,
        next_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> GoalProgress:
        """
        Turn auto-save on or off.

        When enabling without a next_date, the first run is one period from now.
        """
        now = now or utc_now()
        goal = await self._require_goal(owner_id, goal_id)
        rule = AutoSaveRule(
            enabled=enabled,
            amount=amount if amount is not None else goal.auto_save.amount,
            frequency=frequency or goal.auto_save.frequency,
            next_date=next_date,
        )
        goal.auto_save = self._check_auto_save(rule, now)
        return GoalProgress.of(await self._goals.update_goal(goal))

    async def update_goal(
        self,
        owner_id: UUID,
        goal_id: UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        target_amount: Optional[Decimal] = None,
        target_date: Optional[date] = None,
        category: Optional[GoalCategory] = None,
        priority: Optional[GoalPriority] = None,
        now: Optional[datetime] = None,
    ) -> GoalProgress:
        """
        Edit a goal. Lowering the target to or below current_amount
        completes an active goal.
        """
        now = now or utc_now()
        goal = await self._require_goal(owner_id, goal_id)

        if target_amount is not None:
            require_positive(target_amount, "target_amount")
            goal.target_amount = target_amount
        if target_date is not None and target_date != goal.target_date:
            if target_date <= now.date():
                raise InvariantViolationError("Goal target date must be in the future")
            goal.target_date = target_date
        if name is not None:
            goal.name = name
        if description is not None:
            goal.description = description
        if category is not None:
            goal.category = category
        if priority is not None:
            goal.priority = priority

        completed = False
        if goal.status == GoalStatus.ACTIVE and goal.current_amount >= goal.target_amount:
            goal.status = GoalStatus.COMPLETED
            completed = True

        saved = await self._goals.update_goal(goal)
        if completed:
            await self._audit.log_goal_completed(owner_id, goal_id)
        return GoalProgress.of(saved, now.date())

    async def delete_goal(self, owner_id: UUID, goal_id: UUID) -> None:
        await self._require_goal(owner_id, goal_id)
        if not await self._goals.delete_goal(goal_id):
            raise ResourceNotFoundError("Goal", goal_id)

    async def get_goal_stats(self, owner_id: UUID) -> GoalStats:
        by_status = {status: GoalStatusTotals() for status in GoalStatus}
        goals = await self._goals.list_goals(owner_id)
        for goal in goals:
            totals = by_status[goal.status]
            totals.count += 1
            totals.total_target += goal.target_amount
            totals.total_current += goal.current_amount

        avg = Decimal("0")
        if goals:
            avg = sum((progress_percentage(g) for g in goals), Decimal("0")) / len(goals)

        return GoalStats(
            by_status=by_status,
            total_goals=len(goals),
            completed_goals=by_status[GoalStatus.COMPLETED].count,
            avg_progress=avg.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        )
