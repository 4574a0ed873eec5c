"""
Tests for the Auto-Save Scheduler.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from finance_core.engine.autosave import AUTO_SAVE_NOTE
from finance_core.models.audit import AuditEventType
from finance_core.models.planning import (
    AutoSaveFrequency,
    AutoSaveRule,
    ContributionSource,
    GoalCreate,
    GoalStatus,
)
from finance_core.services.storage import StorageError

NOW = datetime(2024, 5, 1, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_goal(app, owner_id):
    async def _make(name, amount="10000", next_date=NOW, frequency=AutoSaveFrequency.MONTHLY):
        view = await app.goals.create_goal(owner_id, GoalCreate(
            name=name,
            target_amount=Decimal("1000000"),
            target_date=date(2025, 1, 1),
            auto_save=AutoSaveRule(
                enabled=True,
                amount=Decimal(amount),
                frequency=frequency,
                next_date=next_date,
            ),
        ), now=NOW - timedelta(days=1))
        return view.goal

    return _make


class TestAutoSaveSweep:
    """Due goals are credited once and advanced."""

    async def test_due_goal_is_credited_and_advanced(self, app, make_goal):
        goal = await make_goal("Emergency")

        assert await app.scheduler.process_due_auto_saves(NOW) == 1

        stored = await app.database.goals.get_goal(goal.id)
        assert stored.current_amount == Decimal("10000")
        assert stored.contributions[0].source == ContributionSource.AUTO_SAVE
        assert stored.contributions[0].note == AUTO_SAVE_NOTE
        assert stored.auto_save.next_date == datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)

    async def test_second_sweep_same_instant_credits_nothing(self, app, make_goal):
        goal = await make_goal("Emergency")
        await app.scheduler.process_due_auto_saves(NOW)

        assert await app.scheduler.process_due_auto_saves(NOW) == 0
        stored = await app.database.goals.get_goal(goal.id)
        assert len(stored.contributions) == 1

    async def test_not_due_is_skipped(self, app, make_goal):
        goal = await make_goal("Later", next_date=NOW + timedelta(minutes=1))
        assert await app.scheduler.process_due_auto_saves(NOW) == 0
        assert (await app.database.goals.get_goal(goal.id)).current_amount == Decimal("0")

    async def test_paused_goal_is_skipped(self, app, owner_id, make_goal):
        goal = await make_goal("Paused")
        await app.goals.set_status(owner_id, goal.id, GoalStatus.PAUSED)
        assert await app.scheduler.process_due_auto_saves(NOW) == 0

    async def test_failure_on_one_goal_does_not_stop_sweep(self, app, make_goal):
        first = await make_goal("First", next_date=NOW - timedelta(hours=2))
        second = await make_goal("Second", next_date=NOW - timedelta(hours=1))

        storage = app.database.goals
        original_update = storage.update_goal

        async def flaky_update(goal):
            if goal.id == second.id:
                raise StorageError("sheet unavailable")
            return await original_update(goal)

        storage.update_goal = flaky_update

        assert await app.scheduler.process_due_auto_saves(NOW) == 1
        assert (await storage.get_goal(first.id)).current_amount == Decimal("10000")
        untouched = await storage.get_goal(second.id)
        assert untouched.current_amount == Decimal("0")
        assert untouched.auto_save.next_date == NOW - timedelta(hours=1)

        events = await app.database.audit.get_recent_events()
        types = [e.event_type for e in events]
        assert AuditEventType.AUTO_SAVE_FAILED in types
        assert AuditEventType.AUTO_SAVE_SWEEP_COMPLETED in types

    async def test_completing_goal_by_auto_save(self, app, make_goal):
        goal = await make_goal("Small", amount="1000000")
        await app.scheduler.process_due_auto_saves(NOW)
        assert (await app.database.goals.get_goal(goal.id)).status == GoalStatus.COMPLETED


class TestSweepExclusivity:
    """Only one sweep runs at a time."""

    async def test_overlapping_call_returns_zero(self, app, make_goal):
        await make_goal("Emergency")
        storage = app.database.goals
        original_list = storage.list_due_auto_saves
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_list(now):
            entered.set()
            await release.wait()
            return await original_list(now)

        storage.list_due_auto_saves = slow_list

        first = asyncio.create_task(app.scheduler.process_due_auto_saves(NOW))
        await entered.wait()
        assert app.scheduler.is_running

        assert await app.scheduler.process_due_auto_saves(NOW) == 0

        release.set()
        assert await first == 1
        assert not app.scheduler.is_running
