"""
Audit Logger

DESIGN DECISION: Every balance-affecting write is logged.
This provides:
1. Traceability of each balance back to the entries that moved it
2. Debugging capability for rejected and compensated writes
3. A history of contributions, alerts and sweeps per user

The audit logger:
- Is async so it fits the engine's call flow
- Gracefully handles failures (a broken audit sheet never fails a ledger write)
- Supports correlation IDs to tie a ledger write to its balance update
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_core.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_created(
            owner_id=owner_id,
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        old_amount: Decimal,
        new_amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            owner_id=owner_id,
            transaction_id=transaction_id,
            old_amount=old_amount,
            new_amount=new_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            owner_id=owner_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_rejected(
        self,
        owner_id: UUID,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a ledger write refused by a business rule."""
        event = AuditEventBuilder.transaction_rejected(
            owner_id=owner_id,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_updated(
        self,
        owner_id: UUID,
        changes: dict[UUID, Decimal],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.balance_updated(
            owner_id=owner_id,
            changes=changes,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_compensated(
        self,
        owner_id: UUID,
        changes: dict[UUID, Decimal],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log the reversal of a balance change whose ledger write failed."""
        event = AuditEventBuilder.balance_compensated(
            owner_id=owner_id,
            changes=changes,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_created(
        self,
        event_type: AuditEventType,
        owner_id: Optional[UUID],
        entity_type: str,
        entity_id: UUID,
        name: str,
    ) -> None:
        event = AuditEventBuilder.entity_created(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            name=name,
        )
        await self.log(event)

    async def log_entity_changed(
        self,
        event_type: AuditEventType,
        owner_id: Optional[UUID],
        entity_type: str,
        entity_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entity_changed(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_alert(
        self,
        owner_id: UUID,
        budget_id: UUID,
        percentage_used: Decimal,
        alert_threshold: int,
    ) -> None:
        event = AuditEventBuilder.budget_alert(
            owner_id=owner_id,
            budget_id=budget_id,
            percentage_used=percentage_used,
            alert_threshold=alert_threshold,
        )
        await self.log(event)

    async def log_contribution_added(
        self,
        owner_id: UUID,
        goal_id: UUID,
        amount: Decimal,
        source: str,
        current_amount: Decimal,
    ) -> None:
        event = AuditEventBuilder.contribution_added(
            owner_id=owner_id,
            goal_id=goal_id,
            amount=amount,
            source=source,
            current_amount=current_amount,
        )
        await self.log(event)

    async def log_milestone_achieved(
        self,
        owner_id: UUID,
        goal_id: UUID,
        milestone_name: str,
    ) -> None:
        event = AuditEventBuilder.milestone_achieved(
            owner_id=owner_id,
            goal_id=goal_id,
            milestone_name=milestone_name,
        )
        await self.log(event)

    async def log_goal_completed(self, owner_id: UUID, goal_id: UUID) -> None:
        await self.log(AuditEventBuilder.goal_completed(owner_id, goal_id))

    async def log_auto_save_failed(
        self,
        owner_id: UUID,
        goal_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.auto_save_failed(
            owner_id=owner_id,
            goal_id=goal_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_auto_save_sweep_completed(
        self,
        selected: int,
        processed: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.auto_save_sweep_completed(
            selected=selected,
            processed=processed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording an entry).
    Pass it through all subsequent operations.
    """
    return uuid4()
