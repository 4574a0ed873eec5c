"""
Tests for Finance Core models

Test strategy:
1. Unit tests for models and pure engine functions
2. Service tests against the in-memory backend
3. No real API calls in tests (Google Sheets is faked)
"""

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_core.models.ledger import (
    Account,
    AccountKind,
    Bank,
    Category,
    CategoryKind,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.models.planning import (
    AutoSaveRule,
    Budget,
    GoalStatus,
    Milestone,
)


class TestLedgerModels:
    """Tests for accounts, categories and ledger entries."""

    def test_new_document_starts_unversioned(self):
        """Storage assigns version 1 on insert; a fresh model is at 0."""
        account = Account(owner_id=uuid4(), name="Main", bank=Bank.BOA)
        assert account.version == 0
        assert account.balance == Decimal("0")
        assert account.created_at.tzinfo is not None

    def test_account_name_strips_whitespace(self):
        account = Account(owner_id=uuid4(), name="  Main Account  ", bank=Bank.BOA)
        assert account.name == "Main Account"

    def test_only_credit_accounts_allow_negative(self):
        owner = uuid4()
        for kind in AccountKind:
            account = Account(owner_id=owner, name="A", bank=Bank.UBA, kind=kind)
            assert account.allows_negative == (kind == AccountKind.CREDIT)

    def test_account_rejects_bad_color(self):
        with pytest.raises(ValidationError):
            Account(owner_id=uuid4(), name="A", bank=Bank.UBA, color="blue")

    def test_bank_other_value(self):
        assert Bank("Autre") == Bank.OTHER

    def test_category_visibility(self):
        owner, stranger = uuid4(), uuid4()
        default = Category(name="Food", kind=CategoryKind.EXPENSE, color="#EF4444", is_default=True)
        custom = Category(name="Pets", kind=CategoryKind.EXPENSE, color="#EF4444", owner_id=owner)

        assert default.is_visible_to(stranger)
        assert custom.is_visible_to(owner)
        assert not custom.is_visible_to(stranger)

    def test_transaction_defaults_to_completed(self):
        entry = Transaction(
            owner_id=uuid4(),
            account_id=uuid4(),
            category_id=uuid4(),
            kind=TransactionKind.EXPENSE,
            amount=Decimal("10"),
            description="Lunch",
            date=date(2024, 1, 1),
        )
        assert entry.status == TransactionStatus.COMPLETED
        assert entry.touched_accounts == {entry.account_id}

    def test_transfer_touches_both_accounts(self):
        source, destination = uuid4(), uuid4()
        entry = Transaction(
            owner_id=uuid4(),
            account_id=source,
            category_id=uuid4(),
            kind=TransactionKind.TRANSFER,
            amount=Decimal("10"),
            description="Move",
            date=date(2024, 1, 1),
            transfer_account_id=destination,
        )
        assert entry.touched_accounts == {source, destination}


class TestPlanningModels:
    """Tests for budgets and goals."""

    def _budget(self, start, end):
        return Budget(
            owner_id=uuid4(),
            category_id=uuid4(),
            name="Food",
            amount=Decimal("1000"),
            start_date=start,
            end_date=end,
        )

    def test_budget_range_is_inclusive(self):
        budget = self._budget(date(2024, 3, 1), date(2024, 3, 31))
        assert budget.covers(date(2024, 3, 1))
        assert budget.covers(date(2024, 3, 31))
        assert not budget.covers(date(2024, 4, 1))

    def test_budget_overlap_on_shared_boundary_day(self):
        budget = self._budget(date(2024, 3, 1), date(2024, 3, 31))
        assert budget.overlaps(date(2024, 3, 31), date(2024, 4, 30))
        assert not budget.overlaps(date(2024, 4, 1), date(2024, 4, 30))

    def test_budget_defaults(self):
        budget = self._budget(date(2024, 3, 1), date(2024, 3, 31))
        assert budget.alert_threshold == 80
        assert budget.notifications.enabled is True
        assert budget.notifications.last_sent is None

    def test_budget_threshold_bounds(self):
        with pytest.raises(ValidationError):
            Budget(
                owner_id=uuid4(),
                category_id=uuid4(),
                name="x",
                amount=Decimal("1"),
                start_date=date(2024, 1, 1),
                end_date=date(2024, 2, 1),
                alert_threshold=120,
            )

    def test_auto_save_due(self):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        rule = AutoSaveRule(enabled=True, amount=Decimal("100"), next_date=now)
        assert rule.is_due(now)
        assert not rule.is_due(now - timedelta(seconds=1))
        assert not AutoSaveRule(enabled=False, next_date=now).is_due(now)
        assert not AutoSaveRule(enabled=True).is_due(now)

    def test_milestone_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            Milestone(name="Zero", amount=Decimal("0"))

    def test_goal_status_values(self):
        assert {s.value for s in GoalStatus} == {"active", "completed", "paused", "cancelled"}


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        owner = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT,
            owner_id=owner,
            description="Budget at 90%",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "budget_alert"
        assert log_dict["owner_id"] == str(owner)
        assert log_dict["entity_id"] is None

    def test_audit_event_to_sheets_row(self):
        event = AuditEventBuilder.balance_updated(
            owner_id=uuid4(),
            changes={uuid4(): Decimal("-15000")},
            correlation_id=uuid4(),
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "balance_updated"
        assert "-15000" in json.loads(row[9]).values()

    def test_builder_rejected_is_warning(self):
        event = AuditEventBuilder.transaction_rejected(
            owner_id=uuid4(),
            error_code="insufficient_funds",
            error_message="nope",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "insufficient_funds"

    def test_sweep_event_severity_reflects_failures(self):
        ok = AuditEventBuilder.auto_save_sweep_completed(2, 2, uuid4())
        partial = AuditEventBuilder.auto_save_sweep_completed(2, 1, uuid4())
        assert ok.severity == AuditSeverity.INFO
        assert partial.severity == AuditSeverity.WARNING
