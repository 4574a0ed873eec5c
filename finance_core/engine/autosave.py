"""
Auto-Save Scheduler

Periodically turns due auto-save rules into goal contributions.

For each ACTIVE goal with auto-save enabled and next_date <= now:
- contribute auto_save.amount with source AUTO_SAVE
- advance next_date by one period
- both in ONE compare-and-set write of the goal

CRITICAL: A goal is never credited twice for one occurrence.
- Only one sweep runs at a time per scheduler (asyncio.Lock); an
  overlapping call returns 0 immediately
- Across processes, the goal version decides: the second writer gets
  a ConcurrencyError and skips the goal, and the winner has already
  advanced next_date

Per-goal failures are logged, audited and skipped. They never stop
the sweep.
"""

import asyncio
from datetime import datetime
from typing import Optional

import structlog

from finance_core.audit import AuditLogger, create_correlation_id
from finance_core.config import get_settings
from finance_core.engine.goals import (
    add_contribution,
    audit_contribution,
    next_auto_save_date,
)
from finance_core.models.base import utc_now
from finance_core.models.planning import ContributionSource, Goal
from finance_core.services.storage import GoalStorageInterface

logger = structlog.get_logger(__name__)

AUTO_SAVE_NOTE = "Automatic saving"


class AutoSaveScheduler:
    """
    Runs the auto-save sweep, once or forever.

    Usage:
        scheduler = AutoSaveScheduler(goal_storage, audit_logger)
        credited = await scheduler.process_due_auto_saves()
    """

    def __init__(
        self,
        goal_storage: GoalStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._goals = goal_storage
        self._audit = audit_logger or AuditLogger()
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def _credit(self, goal: Goal, now: datetime) -> None:
        outcome = add_contribution(
            goal,
            goal.auto_save.amount,
            note=AUTO_SAVE_NOTE,
            source=ContributionSource.AUTO_SAVE,
            now=now,
        )
        outcome.goal.auto_save.next_date = next_auto_save_date(goal.auto_save, now)

        # Compare-and-set; a ConcurrencyError means this occurrence was taken
        outcome.goal = await self._goals.update_goal(outcome.goal)
        await audit_contribution(self._audit, outcome)

    async def process_due_auto_saves(self, now: Optional[datetime] = None) -> int:
        """
        Credit every due goal once.

        Returns the number of goals credited. Returns 0 without doing
        anything if a sweep is already running.
        """
        if self._lock.locked():
            logger.info("auto_save_sweep_skipped", reason="sweep already running")
            return 0

        async with self._lock:
            now = now or utc_now()
            correlation_id = create_correlation_id()
            due = await self._goals.list_due_auto_saves(now)
            credited = 0

            for goal in due:
                try:
                    await self._credit(goal, now)
                    credited += 1
                except Exception as e:
                    logger.error(
                        "auto_save_failed",
                        goal_id=str(goal.id),
                        owner_id=str(goal.owner_id),
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    await self._audit.log_auto_save_failed(
                        owner_id=goal.owner_id,
                        goal_id=goal.id,
                        error_message=f"{type(e).__name__}: {e}",
                        correlation_id=correlation_id,
                    )

            await self._audit.log_auto_save_sweep_completed(
                selected=len(due),
                processed=credited,
                correlation_id=correlation_id,
            )
            return credited

    async def run_forever(self, interval_seconds: Optional[float] = None) -> None:
        """
        Sweep every interval until cancelled.

        A sweep that blows up as a whole (e.g. storage unreachable) is
        logged and the loop carries on.
        """
        interval = interval_seconds or get_settings().app.auto_save_sweep_interval_seconds
        logger.info("auto_save_scheduler_started", interval_seconds=interval)
        while True:
            try:
                credited = await self.process_due_auto_saves()
                logger.info("auto_save_sweep_done", credited=credited)
            except Exception as e:
                logger.error("auto_save_sweep_crashed", error=str(e))
                await self._audit.log_error(
                    error_type="auto_save_sweep_crashed",
                    error_message=str(e),
                )
            await asyncio.sleep(interval)
