"""
Tests for the audit logger, settings and application wiring.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from finance_core.audit import AuditLogger
from finance_core.config import get_settings, validate_all_settings
from finance_core.models.audit import AuditEvent, AuditEventType
from finance_core.models.ledger import AccountCreate, Bank, CategoryKind
from finance_core.orchestrator import create_app_components, create_database
from finance_core.services.storage import InMemoryAuditStorage, InMemoryDatabase


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("sheet is gone")


class TestAuditLogger:
    """Audit writes never break the caller."""

    async def test_persists_event(self):
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        correlation_id = uuid4()

        await audit.log_balance_updated(
            owner_id=uuid4(),
            changes={uuid4(): Decimal("10")},
            correlation_id=correlation_id,
        )

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.BALANCE_UPDATED]

    async def test_storage_failure_is_swallowed(self):
        audit = AuditLogger(BrokenAuditStorage())
        event = AuditEvent(event_type=AuditEventType.SYSTEM_ERROR, description="boom")
        assert await audit.log(event) is False

    async def test_local_only_logger(self):
        event = AuditEvent(event_type=AuditEventType.GOAL_CREATED, description="Goal created")
        assert await AuditLogger().log(event) is True

    async def test_ledger_write_survives_broken_audit(self, owner_id, make_draft):
        database = InMemoryDatabase()
        database.audit = BrokenAuditStorage()
        app = create_app_components(database=database)
        await app.bootstrap()

        account = await app.accounts.create_account(
            owner_id, AccountCreate(name="Main", bank=Bank.BOA, balance=Decimal("500"))
        )
        food = await app.database.categories.find_category("Food", CategoryKind.EXPENSE, None)
        await app.ledger.create_entry(owner_id, make_draft(account, food, 200))

        assert (await database.accounts.get_account(account.id)).balance == Decimal("300")


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self):
        app_settings = get_settings().app
        assert app_settings.storage_backend == "memory"
        assert app_settings.default_currency == "CFA"
        assert app_settings.budget_alert_cooldown_hours == 24
        assert app_settings.budget_alert_cooldown_seconds == 86400
        assert app_settings.auto_budget_lookback_months == 3

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BUDGET_ALERT_COOLDOWN_HOURS", "6")
        monkeypatch.setenv("DEFAULT_CURRENCY", "EUR")
        app_settings = get_settings().app
        assert app_settings.budget_alert_cooldown_hours == 6
        assert app_settings.default_currency == "EUR"

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_CURRENCY", "GBP")
        with pytest.raises(ValidationError):
            get_settings().app

    def test_validate_all_settings_memory(self):
        assert validate_all_settings() == {"app": True}

    def test_validate_all_settings_reports_missing_sheets_config(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()
        assert results["app"] is True
        assert results["google_sheets"] is False


class TestWiring:
    """create_database and create_app_components."""

    def test_memory_backend(self):
        assert isinstance(create_database("memory"), InMemoryDatabase)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_database("postgres")

    def test_components_share_one_database(self):
        app = create_app_components("memory")
        assert app.audit_logger is not None
        assert app.ledger is not None and app.scheduler is not None
        assert isinstance(app.database, InMemoryDatabase)
