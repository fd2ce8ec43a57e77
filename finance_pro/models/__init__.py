"""
Data Models Package

This package contains all Pydantic models used in Finance Pro.
All data flowing through the system must conform to these schemas.
"""

from finance_pro.models.finance import (
    DEFAULT_CATEGORIES,
    INVESTMENT_CATEGORY,
    Account,
    AccountType,
    DashboardStats,
    HoldingPerformance,
    PortfolioSummary,
    PriceUpdate,
    StockHolding,
    TradeAction,
    Transaction,
    TransactionType,
    User,
    UserData,
    generate_id,
)
from finance_pro.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_pro.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Finance models
    "DEFAULT_CATEGORIES",
    "INVESTMENT_CATEGORY",
    "Account",
    "AccountType",
    "DashboardStats",
    "HoldingPerformance",
    "PortfolioSummary",
    "PriceUpdate",
    "StockHolding",
    "TradeAction",
    "Transaction",
    "TransactionType",
    "User",
    "UserData",
    "generate_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
