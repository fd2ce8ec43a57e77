"""
Form Validation

DESIGN DECISION: The ledger trusts its inputs. Everything a user types is
checked here first, and the form is only submitted when there are no
error-level issues.

Two severities:
- ERROR: the ledger would reject or corrupt state (missing account, selling
  a symbol that isn't held, non-positive amounts)
- WARNING: allowed but probably a mistake (a date far in the future,
  selling more shares than held)

IMPORTANT: Validation NEVER silently fixes input.
It reports issues for the user to correct.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel

from finance_pro.config import get_settings
from finance_pro.models.finance import Account, StockHolding, TradeAction, Transaction
from finance_pro.models.validation import ValidationIssue, ValidationResult


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def max_length(model: type[BaseModel], field_name: str) -> Optional[int]:
    """The max_length constraint declared on a model field, if any."""
    for constraint in model.model_fields[field_name].metadata:
        limit = getattr(constraint, "max_length", None)
        if limit is not None:
            return limit
    return None


def _check_length(
    issues: list[ValidationIssue],
    value: Optional[str],
    model: type[BaseModel],
    field_name: str,
    label: str,
) -> None:
    # Same limits the models enforce, so an accepted form never fails in the ledger
    limit = max_length(model, field_name)
    if value is None or limit is None:
        return
    length = len(value.strip())
    if length > limit:
        issues.append(ValidationIssue(
            field=field_name,
            issue_type="too_long",
            message=f"{label} is {length} characters; the limit is {limit}",
            severity="error",
            suggested_fix=f"Shorten it to {limit} characters or fewer",
        ))


class FormValidator:
    """Validates the account, transaction and trade forms."""

    def __init__(self, future_date_tolerance_days: Optional[int] = None):
        """
        Initialize validator.

        Args:
            future_date_tolerance_days: How far ahead a transaction date may be
                before it is flagged. Defaults to the app setting.
        """
        if future_date_tolerance_days is None:
            future_date_tolerance_days = get_settings().app.app_future_date_tolerance_days
        self._future_tolerance = timedelta(days=future_date_tolerance_days)

    def validate_account_form(
        self,
        name: Optional[str],
        bank_name: Optional[str],
        currency: Optional[str] = "TWD",
    ) -> ValidationResult:
        issues = []

        if _blank(name):
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Account name is required",
                severity="error",
                suggested_fix="Give the account a name, e.g. 'Salary account'",
            ))

        if _blank(bank_name):
            issues.append(ValidationIssue(
                field="bank_name",
                issue_type="missing",
                message="Bank name is required",
                severity="error",
            ))

        _check_length(issues, name, Account, "name", "Account name")
        _check_length(issues, bank_name, Account, "bank_name", "Bank name")

        code = (currency or "").strip()
        if len(code) != 3 or not code.isalpha():
            issues.append(ValidationIssue(
                field="currency",
                issue_type="invalid_format",
                message=f"'{currency}' is not a 3-letter currency code",
                severity="error",
                suggested_fix="Use an ISO code such as TWD or USD",
            ))

        return ValidationResult(form="account", issues=issues)

    def validate_transaction_form(
        self,
        account_id: Optional[str],
        amount: Optional[Decimal],
        category: Optional[str],
        transaction_date: Optional[date],
        accounts: Iterable[Account],
        today: Optional[date] = None,
        note: Optional[str] = None,
    ) -> ValidationResult:
        issues = []
        today = today or date.today()
        known_ids = {a.id for a in accounts}

        if _blank(account_id):
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="Choose the account for this transaction",
                severity="error",
                suggested_fix="Add an account first if you have none",
            ))
        elif account_id not in known_ids:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_account",
                message="The selected account no longer exists",
                severity="error",
            ))

        if amount is None or amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount as a positive number; pick expense or income for the direction",
            ))

        if _blank(category):
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
            ))

        _check_length(issues, category, Transaction, "category", "Category")
        _check_length(issues, note, Transaction, "note", "Note")

        if transaction_date and transaction_date > today + self._future_tolerance:
            issues.append(ValidationIssue(
                field="transaction_date",
                issue_type="future_date",
                message=f"Date ({transaction_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        return ValidationResult(form="transaction", issues=issues)

    def validate_trade_form(
        self,
        action: TradeAction,
        symbol: Optional[str],
        name: Optional[str],
        quantity: Optional[int],
        price: Optional[Decimal],
        account_id: Optional[str],
        stocks: Iterable[StockHolding],
    ) -> ValidationResult:
        issues = []
        action = TradeAction(action)
        symbol = (symbol or "").strip().upper()
        held = {s.symbol: s for s in stocks}

        if not symbol:
            issues.append(ValidationIssue(
                field="symbol",
                issue_type="missing",
                message="Stock symbol is required",
                severity="error",
                suggested_fix="e.g. AAPL or 2330.TW",
            ))

        if action == TradeAction.BUY and _blank(name) and symbol not in held:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Stock name is required for a new holding",
                severity="error",
            ))

        _check_length(issues, symbol, StockHolding, "symbol", "Symbol")
        _check_length(issues, name, StockHolding, "name", "Stock name")

        if quantity is not None and not isinstance(quantity, int):
            issues.append(ValidationIssue(
                field="quantity",
                issue_type="invalid_value",
                message="Quantity must be a whole number of shares",
                severity="error",
            ))
        elif quantity is None or quantity <= 0:
            issues.append(ValidationIssue(
                field="quantity",
                issue_type="invalid_value",
                message="Quantity must be at least 1 share",
                severity="error",
            ))

        if price is None or price <= 0:
            issues.append(ValidationIssue(
                field="price",
                issue_type="invalid_value",
                message="Price must be greater than zero",
                severity="error",
            ))

        if _blank(account_id):
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="Choose the account to settle this trade",
                severity="error",
            ))

        if action == TradeAction.SELL and symbol:
            holding = held.get(symbol)
            if holding is None:
                issues.append(ValidationIssue(
                    field="symbol",
                    issue_type="not_held",
                    message=f"You don't hold any {symbol}",
                    severity="error",
                    suggested_fix="Only held stocks can be sold",
                ))
            elif quantity and quantity > holding.quantity:
                issues.append(ValidationIssue(
                    field="quantity",
                    issue_type="exceeds_holding",
                    message=(
                        f"Selling {quantity} shares but only {holding.quantity} are held; "
                        "the whole position will be closed"
                    ),
                    severity="warning",
                    suggested_fix=f"Sell at most {holding.quantity} shares",
                ))

        return ValidationResult(form="trade", issues=issues)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the form.
        """
        if not result.issues:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
