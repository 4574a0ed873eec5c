"""
Account Service

Opening, editing and soft-deleting accounts, plus balance summaries.

IMPORTANT: Nothing here writes a balance after creation.
An opening balance is set once, on the new document; every later
change goes through the ledger and the AccountBalanceUpdater.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from finance_core.audit import AuditLogger
from finance_core.config import get_settings
from finance_core.engine.balances import normalize_balance
from finance_core.engine.errors import InvalidAmountError, ResourceNotFoundError
from finance_core.models.audit import AuditEventType
from finance_core.models.ledger import (
    Account,
    AccountCreate,
    AccountKind,
    Bank,
    Currency,
)
from finance_core.services.storage import AccountStorageInterface


# Created for every new user at signup
DEFAULT_ACCOUNTS = [
    AccountCreate(name="Main Account", bank=Bank.BOA, kind=AccountKind.CHECKING),
    AccountCreate(
        name="Savings",
        bank=Bank.SGBS,
        kind=AccountKind.SAVINGS,
        color="#10B981",
        icon="PiggyBank",
    ),
]

EDITABLE_FIELDS = ("name", "bank", "account_number", "description", "color", "icon")


class AccountKindStats(BaseModel):
    """Aggregate over the active accounts of one kind."""
    kind: AccountKind
    count: int
    total_balance: Decimal
    avg_balance: Decimal


class AccountService:
    """Account lifecycle for one storage backend."""

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = account_storage
        self._audit = audit_logger or AuditLogger()
        self._settings = get_settings().app

    async def create_account(self, owner_id: UUID, data: AccountCreate) -> Account:
        """
        Open an account.

        Raises:
            InvalidAmountError: negative opening balance on a non-credit account
        """
        if data.kind != AccountKind.CREDIT and data.balance < 0:
            raise InvalidAmountError(
                f"Opening balance must not be negative, got {data.balance}"
            )

        account = Account(
            owner_id=owner_id,
            name=data.name,
            bank=data.bank,
            kind=data.kind,
            currency=data.currency or Currency(self._settings.default_currency),
            account_number=data.account_number,
            description=data.description,
            color=data.color,
            icon=data.icon,
        )
        account.balance = normalize_balance(account, data.balance)

        saved = await self._storage.save_account(account)
        await self._audit.log_entity_created(
            event_type=AuditEventType.ACCOUNT_CREATED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=saved.id,
            name=saved.name,
        )
        return saved

    async def create_default_accounts(self, owner_id: UUID) -> list[Account]:
        """The two zero-balance accounts every user starts with."""
        return [
            await self.create_account(owner_id, template)
            for template in DEFAULT_ACCOUNTS
        ]

    async def get_account(self, owner_id: UUID, account_id: UUID) -> Account:
        account = await self._storage.get_account(account_id)
        if account is None or account.owner_id != owner_id:
            raise ResourceNotFoundError("Account", account_id)
        return account

    async def list_accounts(
        self,
        owner_id: UUID,
        include_inactive: bool = False,
    ) -> list[Account]:
        return await self._storage.list_accounts(owner_id, include_inactive)

    async def update_account(
        self,
        owner_id: UUID,
        account_id: UUID,
        name: Optional[str] = None,
        bank: Optional[Bank] = None,
        account_number: Optional[str] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Account:
        """
        Edit descriptive fields.

        Kind, currency and balance are not editable: changing them would
        reinterpret every ledger entry already applied to the account.
        """
        account = await self.get_account(owner_id, account_id)
        changes = {
            "name": name,
            "bank": bank,
            "account_number": account_number,
            "description": description,
            "color": color,
            "icon": icon,
        }
        for field in EDITABLE_FIELDS:
            if changes[field] is not None:
                # validate_assignment runs the field constraints
                setattr(account, field, changes[field])
        return await self._storage.update_account(account)

    async def deactivate_account(self, owner_id: UUID, account_id: UUID) -> Account:
        """Soft delete. Entries stay; the account stops accepting new ones."""
        account = await self.get_account(owner_id, account_id)
        if not account.is_active:
            return account
        account.is_active = False
        saved = await self._storage.update_account(account)
        await self._audit.log_entity_changed(
            event_type=AuditEventType.ACCOUNT_DEACTIVATED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account deactivated: {saved.name}",
        )
        return saved

    async def get_total_balance(self, owner_id: UUID) -> Decimal:
        """Sum of balances over active accounts. No currency conversion."""
        accounts = await self._storage.list_accounts(owner_id)
        return sum((a.balance for a in accounts), Decimal("0"))

    async def get_account_stats(self, owner_id: UUID) -> list[AccountKindStats]:
        """Count, total and average balance per account kind."""
        by_kind: dict[AccountKind, list[Decimal]] = {}
        for account in await self._storage.list_accounts(owner_id):
            by_kind.setdefault(account.kind, []).append(account.balance)

        stats = []
        for kind, balances in by_kind.items():
            total = sum(balances, Decimal("0"))
            stats.append(AccountKindStats(
                kind=kind,
                count=len(balances),
                total_balance=total,
                avg_balance=total / len(balances),
            ))
        stats.sort(key=lambda s: s.kind.value)
        return stats
