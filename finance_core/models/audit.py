"""
Audit Models for Finance Core

Every balance-affecting write, goal contribution, budget alert and
auto-save sweep is logged for audit purposes. This provides:
1. Traceability of how each balance came to be
2. Debugging information when a write is rejected or compensated
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_core.models.base import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of a balance-affecting flow has its own event type.
    """
    # Ledger
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Balances
    BALANCE_UPDATED = "balance_updated"
    BALANCE_COMPENSATED = "balance_compensated"

    # Accounts & categories
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    CATEGORY_CREATED = "category_created"
    CATEGORY_DELETED = "category_deleted"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_REFRESHED = "budget_refreshed"
    BUDGET_ALERT = "budget_alert"

    # Goals
    GOAL_CREATED = "goal_created"
    CONTRIBUTION_ADDED = "contribution_added"
    MILESTONE_ACHIEVED = "milestone_achieved"
    GOAL_COMPLETED = "goal_completed"
    GOAL_STATUS_CHANGED = "goal_status_changed"

    # Auto-save
    AUTO_SAVE_FAILED = "auto_save_failed"
    AUTO_SAVE_SWEEP_COMPLETED = "auto_save_sweep_completed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    owner_id: Optional[UUID] = Field(
        default=None,
        description="User the event belongs to (None for system sweeps)"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'goal')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - ties a ledger write to its balance update
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.owner_id) if self.owner_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(entry, correlation_id)
        event = AuditEventBuilder.auto_save_failed(goal_id, owner_id, error)
    """

    @staticmethod
    def transaction_created(
        owner_id: UUID,
        transaction_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction recorded: {kind} of {_money(amount)}",
            details={"kind": kind, "amount": _money(amount)},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        owner_id: UUID,
        transaction_id: UUID,
        old_amount: Decimal,
        new_amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {_money(old_amount)} -> {_money(new_amount)}",
            details={"old_amount": _money(old_amount), "new_amount": _money(new_amount)},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        owner_id: UUID,
        transaction_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def transaction_rejected(
        owner_id: UUID,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Transaction rejected: {error_code}",
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def balance_updated(
        owner_id: UUID,
        changes: dict[UUID, Decimal],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            owner_id=owner_id,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Balances updated on {len(changes)} account(s)",
            details={str(k): _money(v) for k, v in changes.items()},
        )

    @staticmethod
    def balance_compensated(
        owner_id: UUID,
        changes: dict[UUID, Decimal],
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_COMPENSATED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="account",
            correlation_id=correlation_id,
            description="Balance change reversed after a failed ledger write",
            details={str(k): _money(v) for k, v in changes.items()},
            error_message=error_message,
        )

    @staticmethod
    def entity_created(
        event_type: AuditEventType,
        owner_id: Optional[UUID],
        entity_type: str,
        entity_id: UUID,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} created: {name}",
            details={"name": name},
            is_user_action=owner_id is not None,
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        owner_id: Optional[UUID],
        entity_type: str,
        entity_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def budget_alert(
        owner_id: UUID,
        budget_id: UUID,
        percentage_used: Decimal,
        alert_threshold: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget at {percentage_used}% (threshold {alert_threshold}%)",
            details={
                "percentage_used": _money(percentage_used),
                "alert_threshold": alert_threshold,
            },
        )

    @staticmethod
    def contribution_added(
        owner_id: UUID,
        goal_id: UUID,
        amount: Decimal,
        source: str,
        current_amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRIBUTION_ADDED,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Contribution of {_money(amount)} ({source})",
            details={
                "amount": _money(amount),
                "source": source,
                "current_amount": _money(current_amount),
            },
            is_user_action=source != "auto_save",
        )

    @staticmethod
    def milestone_achieved(
        owner_id: UUID,
        goal_id: UUID,
        milestone_name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MILESTONE_ACHIEVED,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Milestone achieved: {milestone_name}",
            details={"milestone": milestone_name},
        )

    @staticmethod
    def goal_completed(owner_id: UUID, goal_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=goal_id,
            description="Goal target reached",
        )

    @staticmethod
    def auto_save_failed(
        owner_id: UUID,
        goal_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTO_SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Auto-save contribution failed",
            error_message=error_message,
        )

    @staticmethod
    def auto_save_sweep_completed(
        selected: int,
        processed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTO_SAVE_SWEEP_COMPLETED,
            severity=AuditSeverity.INFO if selected == processed else AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Auto-save sweep credited {processed} of {selected} goal(s)",
            details={"selected": selected, "processed": processed},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
