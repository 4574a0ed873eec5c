"""
Ledger Models for Finance Core

Accounts, categories and ledger entries (transactions).

DESIGN DECISION: Amount fields are plain Decimals here.
Positivity, transfer distinctness and date ordering are business rules,
checked by the engine so that callers get typed errors (InvalidAmountError,
InvalidTransferError) rather than a generic schema failure.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from finance_core.models.base import Document

COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountKind(str, Enum):
    """
    Kinds of bank account.

    CRITICAL: Only CREDIT accounts may carry a negative raw balance,
    and even then it is stored as its absolute value.
    """
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"


class Bank(str, Enum):
    """Issuing institutions."""
    CBAO = "CBAO"
    SGBS = "SGBS"
    BOA = "BOA"
    ECOBANK = "Ecobank"
    UBA = "UBA"
    BHS = "BHS"
    BICIS = "BICIS"
    BANQUE_ATLANTIQUE = "Banque Atlantique"
    BNDE = "BNDE"
    CREDIT_DU_SENEGAL = "Crédit du Sénégal"
    OTHER = "Autre"


class Currency(str, Enum):
    """Supported currencies. No conversion is ever performed."""
    CFA = "CFA"
    EUR = "EUR"
    USD = "USD"


class TransactionKind(str, Enum):
    """Direction of a ledger entry."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    """
    Ledger entry status.

    Only COMPLETED entries move balances or count towards budgets.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """How the money moved."""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    MOBILE_MONEY = "mobile_money"
    CHECK = "check"
    OTHER = "other"


class CategoryKind(str, Enum):
    """Categories are either for income or for expenses."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(Document):
    """
    A bank account owned by one user.

    The balance is never edited directly: it only moves through
    the AccountBalanceUpdater.
    """

    owner_id: UUID = Field(
        ...,
        description="Owner of this account"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    bank: Bank = Field(
        ...,
        description="Issuing institution"
    )
    kind: AccountKind = Field(
        default=AccountKind.CHECKING,
        description="Account kind"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Current balance"
    )
    currency: Currency = Currency.CFA
    account_number: Optional[str] = Field(
        default=None,
        max_length=50
    )
    is_active: bool = True
    description: Optional[str] = Field(
        default=None,
        max_length=500
    )
    color: str = Field(default="#3B82F6", pattern=COLOR_PATTERN)
    icon: str = "CreditCard"

    @property
    def allows_negative(self) -> bool:
        """Credit accounts are exempt from the non-negative guard."""
        return self.kind == AccountKind.CREDIT


class AccountCreate(BaseModel):
    """Fields a user supplies when opening an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    bank: Bank
    kind: AccountKind = AccountKind.CHECKING
    balance: Decimal = Decimal("0")
    currency: Optional[Currency] = None
    account_number: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    color: str = Field(default="#3B82F6", pattern=COLOR_PATTERN)
    icon: str = "CreditCard"


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(Document):
    """
    A transaction category.

    Default categories have no owner and are shared by every user.
    """

    name: str = Field(..., min_length=1, max_length=100)
    kind: CategoryKind
    color: str = Field(..., pattern=COLOR_PATTERN)
    icon: str = "Tag"
    description: Optional[str] = Field(default=None, max_length=500)
    is_default: bool = False
    owner_id: Optional[UUID] = Field(
        default=None,
        description="None for default categories"
    )
    is_active: bool = True
    order: int = 0

    def is_visible_to(self, owner_id: UUID) -> bool:
        """Default categories are visible to everyone, custom ones to their owner."""
        return self.is_default or self.owner_id == owner_id


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class Transaction(Document):
    """
    A single recorded money movement.

    For transfers, account_id is the source and transfer_account_id
    the destination.
    """

    owner_id: UUID
    account_id: UUID = Field(
        ...,
        description="Source account"
    )
    category_id: UUID
    kind: TransactionKind
    amount: Decimal = Field(
        ...,
        description="Always positive; the kind carries the direction"
    )
    description: str = Field(..., min_length=1, max_length=500)
    date: dt.date
    transfer_account_id: Optional[UUID] = Field(
        default=None,
        description="Destination account (transfers only)"
    )
    payment_method: PaymentMethod = PaymentMethod.CASH
    currency: Currency = Currency.CFA
    status: TransactionStatus = TransactionStatus.COMPLETED
    merchant: Optional[str] = Field(default=None, max_length=200)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @property
    def touched_accounts(self) -> set[UUID]:
        """Accounts whose balance this entry can move."""
        accounts = {self.account_id}
        if self.transfer_account_id is not None:
            accounts.add(self.transfer_account_id)
        return accounts


class TransactionDraft(BaseModel):
    """
    A proposed ledger entry, before the engine accepts it.

    Also used for updates: the engine replaces every editable field
    of the stored entry with the draft's values.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    category_id: UUID
    kind: TransactionKind
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=500)
    date: Optional[dt.date] = None
    transfer_account_id: Optional[UUID] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    currency: Optional[Currency] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    merchant: Optional[str] = Field(default=None, max_length=200)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)
