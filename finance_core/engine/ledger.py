"""
Ledger Service

Records, edits and removes ledger entries (transactions), keeping
account balances in step with the ledger.

Write protocol (create, update and delete alike):
1. Validate the draft and ownership: typed FinanceError, nothing written
2. Commit the net balance change (AccountBalanceUpdater)
3. Write the ledger entry
4. If step 3 fails, reverse step 2 before the error propagates

DESIGN DECISION: Balances are committed before the entry.
The funds guard has to run against the real balances, and a failed
entry write is easy to compensate. The reverse order would leave an
entry with no effect if the balance commit were refused.

Budgets and goals are NOT touched here. Budget "spent" is recomputed
on read; goal progress only moves through contributions.
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from finance_core.audit import AuditLogger, create_correlation_id
from finance_core.config import get_settings
from finance_core.engine.balances import (
    AccountBalanceUpdater,
    AppliedBalances,
    net_change,
)
from finance_core.engine.errors import FinanceError, ResourceNotFoundError
from finance_core.engine.rules import validate_draft
from finance_core.models.base import utc_now
from finance_core.models.ledger import (
    Account,
    Category,
    Currency,
    Transaction,
    TransactionDraft,
    TransactionKind,
    TransactionStatus,
)
from finance_core.services.storage import (
    AccountStorageInterface,
    CategoryStorageInterface,
    TransactionStorageInterface,
)

logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Entry point for every balance-affecting ledger write.

    All operations take the caller's owner_id explicitly; an entry,
    account or category belonging to someone else is reported as
    not found.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        account_storage: AccountStorageInterface,
        category_storage: CategoryStorageInterface,
        balance_updater: Optional[AccountBalanceUpdater] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transaction_storage
        self._accounts = account_storage
        self._categories = category_storage
        self._balances = balance_updater or AccountBalanceUpdater(account_storage)
        self._audit = audit_logger or AuditLogger()
        self._settings = get_settings().app

    # =========================================================================
    # Ownership checks
    # =========================================================================

    async def _require_account(self, owner_id: UUID, account_id: UUID) -> Account:
        account = await self._accounts.get_account(account_id)
        if account is None or account.owner_id != owner_id or not account.is_active:
            raise ResourceNotFoundError("Account", account_id)
        return account

    async def _require_category(self, owner_id: UUID, category_id: UUID) -> Category:
        category = await self._categories.get_category(category_id)
        if category is None or not category.is_visible_to(owner_id):
            raise ResourceNotFoundError("Category", category_id)
        return category

    async def _require_entry(self, owner_id: UUID, entry_id: UUID) -> Transaction:
        entry = await self._transactions.get_transaction(entry_id)
        if entry is None or entry.owner_id != owner_id:
            raise ResourceNotFoundError("Transaction", entry_id)
        return entry

    async def _check_draft(self, owner_id: UUID, draft: TransactionDraft) -> None:
        validate_draft(draft)
        await self._require_account(owner_id, draft.account_id)
        if draft.transfer_account_id is not None:
            await self._require_account(owner_id, draft.transfer_account_id)
        await self._require_category(owner_id, draft.category_id)

    # =========================================================================
    # Compensation
    # =========================================================================

    async def _compensate(
        self,
        owner_id: UUID,
        applied: AppliedBalances,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Reverse a committed balance change after the ledger write failed."""
        if applied.is_empty:
            return
        try:
            await self._balances.reverse(applied)
        except Exception as e:
            # Balances and ledger now disagree; surface it loudly
            logger.critical(
                "balance_compensation_failed",
                owner_id=str(owner_id),
                correlation_id=str(correlation_id),
                changes={str(k): str(v) for k, v in applied.as_deltas().items()},
                error=str(e),
            )
            await self._audit.log_error(
                error_type="balance_compensation_failed",
                error_message=str(e),
                details={str(k): str(v) for k, v in applied.as_deltas().items()},
                correlation_id=correlation_id,
            )
            raise
        await self._audit.log_balance_compensated(
            owner_id=owner_id,
            changes=applied.as_deltas(),
            error_message=str(error),
            correlation_id=correlation_id,
        )

    async def _reject(
        self,
        owner_id: UUID,
        error: FinanceError,
        correlation_id: UUID,
    ) -> None:
        await self._audit.log_transaction_rejected(
            owner_id=owner_id,
            error_code=error.code,
            error_message=str(error),
            correlation_id=correlation_id,
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def create_entry(
        self,
        owner_id: UUID,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a new ledger entry and apply its balance effect.

        Raises:
            InvalidAmountError, InvalidTransferError: bad draft
            ResourceNotFoundError: account or category not usable by owner
            InsufficientFundsError: a non-credit account would go negative
        """
        correlation_id = correlation_id or create_correlation_id()

        entry = Transaction(
            owner_id=owner_id,
            account_id=draft.account_id,
            category_id=draft.category_id,
            kind=draft.kind,
            amount=draft.amount,
            description=draft.description,
            date=draft.date or utc_now().date(),
            transfer_account_id=draft.transfer_account_id,
            payment_method=draft.payment_method,
            currency=draft.currency or Currency(self._settings.default_currency),
            status=draft.status,
            merchant=draft.merchant,
            tags=draft.tags,
            notes=draft.notes,
        )

        try:
            await self._check_draft(owner_id, draft)
            applied = await self._balances.apply(net_change(None, entry))
        except FinanceError as e:
            await self._reject(owner_id, e, correlation_id)
            raise

        try:
            saved = await self._transactions.save_transaction(entry)
        except Exception as e:
            await self._compensate(owner_id, applied, e, correlation_id)
            raise

        if not applied.is_empty:
            await self._audit.log_balance_updated(
                owner_id=owner_id,
                changes=applied.as_deltas(),
                correlation_id=correlation_id,
            )
        await self._audit.log_transaction_created(
            owner_id=owner_id,
            transaction_id=saved.id,
            kind=saved.kind.value,
            amount=saved.amount,
            correlation_id=correlation_id,
        )
        return saved

    async def update_entry(
        self,
        owner_id: UUID,
        entry_id: UUID,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Replace the editable fields of an entry.

        The old effect is reversed and the new one applied in a single
        net commit. A draft without a date or currency keeps the stored one.
        """
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._require_entry(owner_id, entry_id)

        updated = existing.model_copy(update={
            "account_id": draft.account_id,
            "category_id": draft.category_id,
            "kind": draft.kind,
            "amount": draft.amount,
            "description": draft.description,
            "date": draft.date or existing.date,
            "transfer_account_id": draft.transfer_account_id,
            "payment_method": draft.payment_method,
            "currency": draft.currency or existing.currency,
            "status": draft.status,
            "merchant": draft.merchant,
            "tags": list(draft.tags),
            "notes": draft.notes,
        })

        try:
            await self._check_draft(owner_id, draft)
            applied = await self._balances.apply(net_change(existing, updated))
        except FinanceError as e:
            await self._reject(owner_id, e, correlation_id)
            raise

        try:
            # Compare-and-set on the entry: a concurrent edit fails here
            saved = await self._transactions.update_transaction(updated)
        except Exception as e:
            await self._compensate(owner_id, applied, e, correlation_id)
            raise

        if not applied.is_empty:
            await self._audit.log_balance_updated(
                owner_id=owner_id,
                changes=applied.as_deltas(),
                correlation_id=correlation_id,
            )
        await self._audit.log_transaction_updated(
            owner_id=owner_id,
            transaction_id=saved.id,
            old_amount=existing.amount,
            new_amount=saved.amount,
            correlation_id=correlation_id,
        )
        return saved

    async def delete_entry(
        self,
        owner_id: UUID,
        entry_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Remove an entry and reverse its balance effect."""
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._require_entry(owner_id, entry_id)

        try:
            applied = await self._balances.apply(net_change(existing, None))
        except FinanceError as e:
            await self._reject(owner_id, e, correlation_id)
            raise

        try:
            deleted = await self._transactions.delete_transaction(
                entry_id, expected_version=existing.version
            )
        except Exception as e:
            await self._compensate(owner_id, applied, e, correlation_id)
            raise

        if not deleted:
            # Someone else deleted it first and already reversed its effect
            error = ResourceNotFoundError("Transaction", entry_id)
            await self._compensate(owner_id, applied, error, correlation_id)
            raise error

        if not applied.is_empty:
            await self._audit.log_balance_updated(
                owner_id=owner_id,
                changes=applied.as_deltas(),
                correlation_id=correlation_id,
            )
        await self._audit.log_transaction_deleted(
            owner_id=owner_id,
            transaction_id=entry_id,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_entry(self, owner_id: UUID, entry_id: UUID) -> Transaction:
        return await self._require_entry(owner_id, entry_id)

    async def list_entries(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        kind: Optional[TransactionKind] = None,
        status: Optional[TransactionStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        """Owner's entries, newest first, with optional filters and paging."""
        return await self._transactions.list_transactions(
            owner_id=owner_id,
            account_id=account_id,
            category_id=category_id,
            kind=kind,
            status=status,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )

    async def search_entries(
        self,
        owner_id: UUID,
        query: str,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        """
        Case-insensitive text search over description, merchant, notes and tags.

        Returns (page, total_matches).
        """
        needle = query.strip().lower()
        if not needle:
            return [], 0

        matches = []
        for entry in await self._transactions.list_transactions(owner_id=owner_id):
            haystack = " ".join(
                part for part in (
                    entry.description,
                    entry.merchant or "",
                    entry.notes or "",
                    " ".join(entry.tags),
                )
                if part
            ).lower()
            if needle in haystack:
                matches.append(entry)

        return matches[offset:offset + limit], len(matches)
