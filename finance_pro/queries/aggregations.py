"""
Derived Views

DESIGN DECISION: Every number the dashboard and portfolio pages show is
computed here from ledger state, DETERMINISTICALLY, and never stored.
The advisory agent is handed these numbers; it never computes them.

All functions are pure. They take lists of models and return new values.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from finance_pro.models.finance import (
    Account,
    DashboardStats,
    HoldingPerformance,
    PortfolioSummary,
    StockHolding,
    Transaction,
    TransactionType,
)


RECENT_TRANSACTION_LIMIT = 5
UNKNOWN_ACCOUNT_NAME = "Unknown"


def month_key(day: date) -> str:
    """'YYYY-MM' key used to bucket transactions by month."""
    return day.strftime("%Y-%m")


def total_cash(accounts: Iterable[Account]) -> Decimal:
    return sum((a.balance for a in accounts), Decimal("0"))


def stock_value(stocks: Iterable[StockHolding]) -> Decimal:
    return sum((s.market_value for s in stocks), Decimal("0"))


def net_worth(accounts: Iterable[Account], stocks: Iterable[StockHolding]) -> Decimal:
    return total_cash(accounts) + stock_value(stocks)


def transactions_in_month(
    transactions: Iterable[Transaction],
    month: str,
) -> list[Transaction]:
    """Transactions whose date falls in the given 'YYYY-MM' month."""
    return [t for t in transactions if month_key(t.transaction_date) == month]


def monthly_totals(transactions: Iterable[Transaction]) -> tuple[Decimal, Decimal]:
    """(income, expense) totals of the given transactions."""
    income = Decimal("0")
    expense = Decimal("0")
    for t in transactions:
        if t.transaction_type == TransactionType.INCOME:
            income += t.amount
        else:
            expense += t.amount
    return income, expense


def expense_by_category(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    """Expense totals per category, largest first."""
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for t in transactions:
        if t.transaction_type == TransactionType.EXPENSE:
            totals[t.category] += t.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def top_expense_category(transactions: Iterable[Transaction]) -> Optional[str]:
    """Category with the largest expense total, or None if nothing was spent."""
    breakdown = expense_by_category(transactions)
    return next(iter(breakdown), None)


def sorted_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Newest first. Same-day entries keep their recording order reversed."""
    ordered = list(transactions)
    ordered.reverse()
    ordered.sort(key=lambda t: t.transaction_date, reverse=True)
    return ordered


def account_name_lookup(accounts: Iterable[Account]) -> dict[str, str]:
    """Map of account ID to display name."""
    return {a.id: a.name for a in accounts}


def account_name(accounts: Iterable[Account], account_id: str) -> str:
    """Display name for an account ID, 'Unknown' for deleted accounts."""
    return account_name_lookup(accounts).get(account_id, UNKNOWN_ACCOUNT_NAME)


def build_dashboard_stats(
    accounts: list[Account],
    stocks: list[StockHolding],
    transactions: list[Transaction],
    today: Optional[date] = None,
) -> DashboardStats:
    """Headline numbers for the month containing `today`."""
    today = today or date.today()
    current = transactions_in_month(transactions, month_key(today))
    income, expense = monthly_totals(current)
    breakdown = expense_by_category(current)
    cash = total_cash(accounts)
    holdings = stock_value(stocks)

    return DashboardStats(
        total_cash=cash,
        stock_value=holdings,
        net_worth=cash + holdings,
        monthly_income=income,
        monthly_expense=expense,
        expense_by_category=breakdown,
        top_expense_category=next(iter(breakdown), None),
        recent_transactions=sorted_transactions(current)[:RECENT_TRANSACTION_LIMIT],
    )


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal("0")
    return part / whole * 100


def holding_performance(holding: StockHolding) -> HoldingPerformance:
    return HoldingPerformance(
        symbol=holding.symbol,
        name=holding.name,
        quantity=holding.quantity,
        average_cost=holding.average_cost,
        current_price=holding.current_price,
        market_value=holding.market_value,
        cost_basis=holding.cost_basis,
        profit_loss=holding.profit_loss,
        profit_loss_percent=_percent(holding.profit_loss, holding.cost_basis),
    )


def portfolio_summary(stocks: list[StockHolding]) -> PortfolioSummary:
    """Cost, market value and unrealised P/L across all holdings."""
    holdings = [holding_performance(s) for s in stocks]
    total_cost = sum((h.cost_basis for h in holdings), Decimal("0"))
    market_value = sum((h.market_value for h in holdings), Decimal("0"))
    profit_loss = market_value - total_cost

    return PortfolioSummary(
        total_cost=total_cost,
        market_value=market_value,
        profit_loss=profit_loss,
        profit_loss_percent=_percent(profit_loss, total_cost),
        holdings=holdings,
    )
