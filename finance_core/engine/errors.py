"""
Business Errors for Finance Core

Every business rule the engine enforces fails with one of these.
They are always raised BEFORE anything is committed, so a caller
that catches a FinanceError can assume balances are unchanged.

Storage failures are a separate hierarchy (see services.storage).
"""

from typing import Optional
from uuid import UUID


class FinanceError(Exception):
    """Base exception for business rule violations."""

    code = "finance_error"


class InvalidAmountError(FinanceError):
    """An amount that must be strictly positive was not."""

    code = "invalid_amount"


class InvalidTransferError(FinanceError):
    """Transfer destination missing, equal to the source, or given on a non-transfer."""

    code = "invalid_transfer"


class InsufficientFundsError(FinanceError):
    """A non-credit account balance would go below zero."""

    code = "insufficient_funds"

    def __init__(self, account_id: UUID, balance, required, message: Optional[str] = None):
        self.account_id = account_id
        self.balance = balance
        self.required = required
        super().__init__(
            message or f"Insufficient funds on account {account_id}: "
            f"balance {balance}, change {required}"
        )


class ResourceNotFoundError(FinanceError):
    """The entity does not exist or does not belong to the caller."""

    code = "not_found"

    def __init__(self, entity_type: str, entity_id: Optional[UUID] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity_type} not found")
        else:
            super().__init__(f"{entity_type} not found: {entity_id}")


class DuplicateResourceError(FinanceError):
    """A uniqueness rule was broken (category name, overlapping budget)."""

    code = "duplicate"


class InvariantViolationError(FinanceError):
    """Any other rule: date ordering, protected deletes, goal state changes."""

    code = "invariant_violation"
