"""
Core Data Models for Finance Pro

These models define the schemas for everything the ledger owns and persists:
accounts, stock holdings, transactions and the per-user bundle that holds them.

DESIGN DECISION: Python attributes are snake_case, but the persisted document
uses camelCase keys (bankName, averageCost, accountId, ...). An alias
generator bridges the two, and either form is accepted on input, so a bundle
written by any client of the same store loads unchanged.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of bank account a user can track."""
    SAVING = "saving"
    CHECKING = "checking"
    INVESTMENT = "investment"
    CASH = "cash"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    Amounts are always stored positive; the type decides the sign of the
    effect on the account balance.
    """
    INCOME = "income"
    EXPENSE = "expense"


class TradeAction(str, Enum):
    """Stock trade direction."""
    BUY = "buy"
    SELL = "sell"


# Category every trade is filed under
INVESTMENT_CATEGORY = "Investment"

DEFAULT_CATEGORIES = [
    "Food",
    "Transport",
    "Salary",
    "Entertainment",
    "Housing",
    INVESTMENT_CATEGORY,
    "Other",
]


def generate_id() -> str:
    """Generate a fresh unique entity id."""
    return uuid4().hex


# Shared config for everything that is persisted
_DOCUMENT_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
)


# =============================================================================
# PERSISTED ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A bank account (or cash wallet).

    The id is assigned once at creation and never changes. The balance is
    signed: nothing stops it going negative.
    """
    model_config = _DOCUMENT_CONFIG

    id: str = Field(
        default_factory=generate_id,
        min_length=1,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, e.g. 'Salary account'"
    )
    bank_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Bank holding the account"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Current balance (may be negative)"
    )
    currency: str = Field(
        default="TWD",
        min_length=3,
        max_length=3,
        description="ISO currency code"
    )
    account_type: AccountType = Field(
        default=AccountType.CHECKING,
        alias="type",
    )

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class StockHolding(BaseModel):
    """
    A position in one stock, keyed by symbol.

    averageCost only moves on buys. A holding whose quantity reaches zero is
    removed from the portfolio rather than kept around empty.
    """
    model_config = _DOCUMENT_CONFIG

    symbol: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Ticker symbol, e.g. 'AAPL' or '2330.TW'"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="Short display name"
    )
    quantity: int = Field(
        ...,
        ge=0,
        description="Number of shares held"
    )
    average_cost: Decimal = Field(
        ...,
        ge=0,
        description="Weighted average purchase price per share"
    )
    current_price: Decimal = Field(
        ...,
        ge=0,
        description="Latest known price per share"
    )
    last_updated: Optional[datetime] = Field(
        default=None,
        description="When the price was last refreshed from the advisory service"
    )

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.upper()

    @property
    def market_value(self) -> Decimal:
        return self.current_price * self.quantity

    @property
    def cost_basis(self) -> Decimal:
        return self.average_cost * self.quantity

    @property
    def profit_loss(self) -> Decimal:
        return self.market_value - self.cost_basis


class Transaction(BaseModel):
    """
    A single income or expense entry against an account.

    Transactions are append-only: once recorded they are never edited or
    deleted.
    """
    model_config = _DOCUMENT_CONFIG

    id: str = Field(
        default_factory=generate_id,
        min_length=1,
        description="Unique transaction ID"
    )
    account_id: str = Field(
        ...,
        description="ID of the account this transaction belongs to"
    )
    transaction_date: date = Field(
        default_factory=date.today,
        alias="date",
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Always positive; direction comes from the type"
    )
    transaction_type: TransactionType = Field(
        ...,
        alias="type",
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Free text category, e.g. 'Food'"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=500,
    )

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on its account balance."""
        if self.transaction_type == TransactionType.INCOME:
            return self.amount
        return -self.amount


class User(BaseModel):
    """Session-scoped user identity. There is no authentication behind it."""
    model_config = _DOCUMENT_CONFIG

    username: str = Field(..., min_length=1, max_length=100)
    is_logged_in: bool = True


class UserData(BaseModel):
    """
    Everything persisted for one username.

    Loaded wholesale at login and saved wholesale on every change.
    """
    model_config = _DOCUMENT_CONFIG

    accounts: list[Account] = Field(default_factory=list)
    stocks: list[StockHolding] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    last_updated: Optional[datetime] = None

    def to_document(self) -> dict:
        """Convert to the JSON-safe document stored remotely."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_parts(cls, document: dict[str, Any]) -> tuple["UserData", list[str]]:
        """
        Validate each part of a stored document on its own.

        A part that fails validation loads as empty (or None for
        lastUpdated) and is reported in the returned list of keys, so one
        unreadable collection never costs the others.
        """
        values = {}
        rejected = []
        for name, field in cls.model_fields.items():
            key = field.alias or name
            raw = document.get(key)
            if raw is None:
                continue
            try:
                values[name] = getattr(cls.model_validate({key: raw}), name)
            except ValueError:
                rejected.append(key)
        return cls(**values), rejected


# =============================================================================
# ADVISORY MODELS
# =============================================================================

class PriceUpdate(BaseModel):
    """One item of a price-estimate response."""
    model_config = _DOCUMENT_CONFIG

    symbol: str = Field(..., min_length=1)
    current_price: Decimal = Field(..., ge=0)
    name: str = ""

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.upper()


# =============================================================================
# DERIVED VIEWS - computed, never persisted
# =============================================================================

class DashboardStats(BaseModel):
    """Headline numbers for the dashboard."""

    total_cash: Decimal
    stock_value: Decimal
    net_worth: Decimal
    monthly_income: Decimal
    monthly_expense: Decimal
    expense_by_category: dict[str, Decimal] = Field(default_factory=dict)
    top_expense_category: Optional[str] = None
    recent_transactions: list[Transaction] = Field(default_factory=list)


class HoldingPerformance(BaseModel):
    """Profit/loss breakdown for a single holding."""

    symbol: str
    name: str
    quantity: int
    average_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal


class PortfolioSummary(BaseModel):
    """Totals across all holdings."""

    total_cost: Decimal
    market_value: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    holdings: list[HoldingPerformance] = Field(default_factory=list)
