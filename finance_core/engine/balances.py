"""
Account Balance Updater

The ONLY code path that moves an account balance.

Effect of a ledger entry on balances:
- income:   account +amount
- expense:  account -amount
- transfer: source -amount, destination +amount
- Only COMPLETED entries have an effect. Pending and cancelled
  entries move nothing until their status changes.

An update is "reverse the old effect, then apply the new one", folded
into ONE net change per account. A delete is the reversal alone.
Folding matters: moving an expense between accounts is checked against
the final balances, never against a transient intermediate state.

CRITICAL: A commit is all-or-nothing. Every touched account is re-read,
checked and written in one compare-and-set batch. A version conflict
means another write got there first: re-read and try again (tenacity).
Business failures (InsufficientFundsError) are never retried.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_core.config import get_settings
from finance_core.engine.errors import InsufficientFundsError, ResourceNotFoundError
from finance_core.models.ledger import (
    Account,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from finance_core.services.storage import (
    AccountStorageInterface,
    BalanceWrite,
    ConcurrencyError,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# PURE HELPERS
# =============================================================================

def effect_of(entry: Optional[Transaction]) -> dict[UUID, Decimal]:
    """Signed balance change this entry causes, per account."""
    if entry is None or entry.status != TransactionStatus.COMPLETED:
        return {}

    effect: dict[UUID, Decimal] = defaultdict(Decimal)
    if entry.kind == TransactionKind.INCOME:
        effect[entry.account_id] += entry.amount
    elif entry.kind == TransactionKind.EXPENSE:
        effect[entry.account_id] -= entry.amount
    else:
        effect[entry.account_id] -= entry.amount
        if entry.transfer_account_id is not None:
            effect[entry.transfer_account_id] += entry.amount
    return dict(effect)


def net_change(
    old: Optional[Transaction],
    new: Optional[Transaction],
) -> dict[UUID, Decimal]:
    """
    Fold "reverse old, apply new" into one change per account.

    Accounts whose net change is zero are dropped.
    """
    changes: dict[UUID, Decimal] = defaultdict(Decimal)
    for account_id, amount in effect_of(old).items():
        changes[account_id] -= amount
    for account_id, amount in effect_of(new).items():
        changes[account_id] += amount
    return {account_id: amount for account_id, amount in changes.items() if amount != 0}


def normalize_balance(account: Account, balance: Decimal) -> Decimal:
    """Credit accounts store a negative raw balance as its absolute value."""
    if account.allows_negative and balance < 0:
        return abs(balance)
    return balance


# =============================================================================
# RESULT MODELS
# =============================================================================

class BalanceChange(BaseModel):
    """One account's balance before and after a committed write."""

    account_id: UUID
    before: Decimal
    after: Decimal


class AppliedBalances(BaseModel):
    """Everything a single commit changed. Needed to compensate it."""

    changes: list[BalanceChange] = []

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def as_deltas(self) -> dict[UUID, Decimal]:
        return {c.account_id: c.after - c.before for c in self.changes}


# =============================================================================
# UPDATER
# =============================================================================

class AccountBalanceUpdater:
    """
    Commits balance changes with optimistic concurrency.

    Usage:
        applied = await updater.apply(net_change(old_entry, new_entry))
        ...
        await updater.reverse(applied)   # if the ledger write then fails
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        max_attempts: Optional[int] = None,
        retry_wait_seconds: Optional[float] = None,
    ):
        settings = get_settings().app
        self._storage = account_storage
        self._max_attempts = max_attempts or settings.balance_update_max_attempts
        self._retry_wait = (
            settings.balance_retry_wait_seconds
            if retry_wait_seconds is None
            else retry_wait_seconds
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=self._retry_wait * 8),
            retry=retry_if_exception_type(ConcurrencyError),
            reraise=True,
        )

    async def _commit_once(
        self,
        changes: dict[UUID, Decimal],
        enforce_guard: bool,
    ) -> AppliedBalances:
        writes = []
        applied = AppliedBalances()

        # Stable order keeps conflicting batches comparable in logs
        for account_id in sorted(changes, key=str):
            delta = changes[account_id]
            account = await self._storage.get_account(account_id)
            if account is None:
                raise ResourceNotFoundError("Account", account_id)

            raw = account.balance + delta
            if enforce_guard and not account.allows_negative and raw < 0:
                raise InsufficientFundsError(account_id, account.balance, delta)

            new_balance = normalize_balance(account, raw)
            writes.append(BalanceWrite(
                account_id=account_id,
                expected_version=account.version,
                balance=new_balance,
            ))
            applied.changes.append(BalanceChange(
                account_id=account_id,
                before=account.balance,
                after=new_balance,
            ))

        await self._storage.commit_balances(writes)
        return applied

    async def apply(
        self,
        changes: dict[UUID, Decimal],
        enforce_guard: bool = True,
    ) -> AppliedBalances:
        """
        Apply signed changes to account balances as one atomic unit.

        Raises:
            InsufficientFundsError: a non-credit balance would go negative
            ResourceNotFoundError: an account disappeared
            ConcurrencyError: conflicts persisted through every attempt
        """
        changes = {k: v for k, v in changes.items() if v != 0}
        if not changes:
            return AppliedBalances()

        async for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "balance_commit_retry",
                        attempt=attempt.retry_state.attempt_number,
                        accounts=[str(a) for a in changes],
                    )
                return await self._commit_once(changes, enforce_guard)

    async def reverse(self, applied: AppliedBalances) -> AppliedBalances:
        """
        Undo a previous apply.

        Restores the exact prior balance when nothing else wrote in between,
        otherwise removes just this commit's contribution. The funds guard
        is not enforced: undoing must always be possible.
        """
        deltas = {account_id: -delta for account_id, delta in applied.as_deltas().items()}
        return await self.apply(deltas, enforce_guard=False)
