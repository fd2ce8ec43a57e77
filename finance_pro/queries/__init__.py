"""Derived views package."""

from finance_pro.queries.aggregations import (
    account_name,
    account_name_lookup,
    build_dashboard_stats,
    expense_by_category,
    monthly_totals,
    net_worth,
    portfolio_summary,
    sorted_transactions,
    stock_value,
    top_expense_category,
    total_cash,
    transactions_in_month,
)

__all__ = [
    "account_name",
    "account_name_lookup",
    "build_dashboard_stats",
    "expense_by_category",
    "monthly_totals",
    "net_worth",
    "portfolio_summary",
    "sorted_transactions",
    "stock_value",
    "top_expense_category",
    "total_cash",
    "transactions_in_month",
]
