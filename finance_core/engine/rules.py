"""
Business Rules

Checks every write must pass BEFORE anything is committed.

IMPORTANT: These functions never fix input. They either return
quietly or raise a typed FinanceError.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finance_core.engine.errors import (
    InvalidAmountError,
    InvalidTransferError,
    InvariantViolationError,
)
from finance_core.models.ledger import TransactionDraft, TransactionKind


def require_positive(amount: Optional[Decimal], field: str = "amount") -> None:
    """Raise InvalidAmountError unless amount > 0."""
    if amount is None or amount <= 0:
        raise InvalidAmountError(f"{field} must be greater than zero, got {amount}")


def validate_transfer(
    kind: TransactionKind,
    account_id: UUID,
    transfer_account_id: Optional[UUID],
) -> None:
    """
    Transfer semantics.

    A transfer needs a destination distinct from its source.
    Income and expense entries must not carry a destination.
    """
    if kind == TransactionKind.TRANSFER:
        if transfer_account_id is None:
            raise InvalidTransferError("A transfer requires a destination account")
        if transfer_account_id == account_id:
            raise InvalidTransferError("Source and destination accounts must differ")
    elif transfer_account_id is not None:
        raise InvalidTransferError(
            f"Only transfers may have a destination account (kind={kind.value})"
        )


def validate_draft(draft: TransactionDraft) -> None:
    """Amount first, then transfer semantics."""
    require_positive(draft.amount)
    validate_transfer(draft.kind, draft.account_id, draft.transfer_account_id)


def validate_date_range(start_date: date, end_date: date) -> None:
    """Budget ranges need start strictly before end."""
    if start_date >= end_date:
        raise InvariantViolationError(
            f"start_date ({start_date}) must be before end_date ({end_date})"
        )
