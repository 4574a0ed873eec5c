"""
Planning Models for Finance Core

Category budgets and savings goals.

CRITICAL: Budget.spent and Goal progress are DERIVED values.
Budget.spent is a cached copy of the ledger sum, refreshed on read or on
explicit request. Goal progress only moves through contributions.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finance_core.models.base import Document, utc_now
from finance_core.models.ledger import COLOR_PATTERN


# =============================================================================
# ENUMS
# =============================================================================

class BudgetPeriod(str, Enum):
    """Length of a budget cycle."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BudgetStatus(str, Enum):
    """Derived budget health."""
    ON_TRACK = "on_track"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class GoalCategory(str, Enum):
    """What the user is saving for."""
    EMERGENCY_FUND = "emergency_fund"
    VACATION = "vacation"
    HOUSE = "house"
    CAR = "car"
    EDUCATION = "education"
    RETIREMENT = "retirement"
    WEDDING = "wedding"
    BUSINESS = "business"
    ELECTRONICS = "electronics"
    HEALTH = "health"
    OTHER = "other"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GoalStatus(str, Enum):
    """
    Goal lifecycle status.

    ACTIVE -> COMPLETED happens automatically when the target is reached
    and is never reversed automatically.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class GoalProgressStatus(str, Enum):
    """Derived view of how a goal is doing against its deadline."""
    COMPLETED = "completed"
    OVERDUE = "overdue"
    AT_RISK = "at_risk"
    ON_TRACK = "on_track"
    BEHIND = "behind"


class ContributionSource(str, Enum):
    MANUAL = "manual"
    AUTO_SAVE = "auto_save"
    BONUS = "bonus"
    TRANSFER = "transfer"


class AutoSaveFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetNotifications(BaseModel):
    """Alert settings for a budget."""

    enabled: bool = True
    last_sent: Optional[datetime] = None


class Budget(Document):
    """
    A spending cap for one category over one date range.

    The date range is inclusive on both ends.
    """

    owner_id: UUID
    category_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(
        ...,
        description="Target (maximum) spend for the period"
    )
    spent: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Cached ledger sum, see compute_spent"
    )
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: date
    alert_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Percentage of the amount that triggers a warning"
    )
    is_active: bool = True
    description: Optional[str] = Field(default=None, max_length=500)
    color: str = Field(default="#3B82F6", pattern=COLOR_PATTERN)
    notifications: BudgetNotifications = Field(default_factory=BudgetNotifications)

    def covers(self, day: date) -> bool:
        """Is this day inside the budget's date range?"""
        return self.start_date <= day <= self.end_date

    def overlaps(self, start_date: date, end_date: date) -> bool:
        """Do the two inclusive date ranges share at least one day?"""
        return self.start_date <= end_date and self.end_date >= start_date


class BudgetCreate(BaseModel):
    """Fields a user supplies when creating or editing a budget."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category_id: UUID
    name: Optional[str] = Field(default=None, max_length=200)
    amount: Decimal
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: date
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    description: Optional[str] = Field(default=None, max_length=500)
    notifications_enabled: bool = True


# =============================================================================
# GOALS
# =============================================================================

class Contribution(BaseModel):
    """
    Money added to a goal.

    Appending a contribution is the ONLY way current_amount increases.
    """

    id: UUID = Field(default_factory=uuid4)
    amount: Decimal = Field(..., gt=0)
    date: datetime = Field(default_factory=utc_now)
    note: str = Field(default="", max_length=500)
    source: ContributionSource = ContributionSource.MANUAL


class Milestone(BaseModel):
    """
    A progress threshold within a goal.

    achieved flips from False to True once and never back.
    """

    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Threshold on the cumulative current amount"
    )
    achieved: bool = False
    achieved_date: Optional[datetime] = None
    reward: Optional[str] = Field(default=None, max_length=200)


class AutoSaveRule(BaseModel):
    """Recurring contribution settings for a goal."""

    enabled: bool = False
    amount: Optional[Decimal] = Field(default=None, ge=0)
    frequency: AutoSaveFrequency = AutoSaveFrequency.MONTHLY
    next_date: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return self.enabled and self.next_date is not None and self.next_date <= now


class Goal(Document):
    """A savings goal with contributions, milestones and optional auto-save."""

    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    target_amount: Decimal
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    target_date: date
    category: GoalCategory
    priority: GoalPriority = GoalPriority.MEDIUM
    status: GoalStatus = GoalStatus.ACTIVE
    color: str = Field(default="#3B82F6", pattern=COLOR_PATTERN)
    icon: str = "Target"
    auto_save: AutoSaveRule = Field(default_factory=AutoSaveRule)
    milestones: list[Milestone] = Field(default_factory=list)
    contributions: list[Contribution] = Field(default_factory=list)


class GoalCreate(BaseModel):
    """Fields a user supplies when creating a goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    target_amount: Decimal
    target_date: date
    category: GoalCategory = GoalCategory.OTHER
    priority: GoalPriority = GoalPriority.MEDIUM
    milestones: list[Milestone] = Field(default_factory=list)
    auto_save: Optional[AutoSaveRule] = None
