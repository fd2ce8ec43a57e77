"""
Portfolio Ledger

Owns the in-memory state of one user: accounts, stock holdings and
transactions, and the rules for changing them.

DESIGN DECISION: State is copy-on-write. Every mutation builds new lists
(and new model instances for the entities it touches), then commits them in
a single step and notifies listeners once. A trade touches holdings, an
account balance and the transaction list; nobody can observe one of those
changes without the other two.

The ledger never persists anything itself. Listeners (the save queue) get a
snapshot after every committed change.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

import structlog

from finance_pro.agents import AdvisoryAgent
from finance_pro.audit import AuditLogger
from finance_pro.models.audit import AuditEvent, AuditEventBuilder
from finance_pro.models.finance import (
    INVESTMENT_CATEGORY,
    Account,
    AccountType,
    StockHolding,
    TradeAction,
    Transaction,
    TransactionType,
    UserData,
)
from finance_pro.queries import aggregations


logger = structlog.get_logger(__name__)

Number = Union[Decimal, int, float, str]
LedgerListener = Callable[[UserData], None]


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""
    pass


class PositionNotHeldError(LedgerError):
    """Attempted to sell a symbol with no holding."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Cannot sell unheld position: {symbol}")


class InvalidTradeError(LedgerError):
    """Trade quantity or price is out of range."""
    pass


class AccountNotFoundError(LedgerError):
    """No account with the requested ID."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 keep their printed value
    return Decimal(str(value))


def _adjust_balance(
    accounts: list[Account],
    account_id: str,
    delta: Decimal,
) -> tuple[list[Account], bool]:
    """Return a new account list with one balance moved by delta."""
    matched = False
    adjusted = []
    for account in accounts:
        if account.id == account_id:
            account = account.model_copy(update={"balance": account.balance + delta})
            matched = True
        adjusted.append(account)
    return adjusted, matched


class PortfolioLedger:
    """
    In-memory accounts, holdings and transactions for the logged-in user.

    All mutations happen on one logical thread in response to user actions.
    """

    def __init__(
        self,
        advisor: Optional[AdvisoryAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        default_currency: str = "TWD",
        today: Callable[[], date] = date.today,
    ):
        self._advisor = advisor
        self._audit_logger = audit_logger
        self._default_currency = default_currency
        self._today = today

        self._accounts: list[Account] = []
        self._stocks: list[StockHolding] = []
        self._transactions: list[Transaction] = []
        self._listeners: list[LedgerListener] = []

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts)

    @property
    def stocks(self) -> list[StockHolding]:
        return list(self._stocks)

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    def find_account(self, account_id: str) -> Optional[Account]:
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None

    def get_account(self, account_id: str) -> Account:
        account = self.find_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def get_holding(self, symbol: str) -> Optional[StockHolding]:
        symbol = symbol.strip().upper()
        for holding in self._stocks:
            if holding.symbol == symbol:
                return holding
        return None

    def snapshot(self) -> UserData:
        """Current state as a persistable bundle."""
        return UserData(
            accounts=list(self._accounts),
            stocks=list(self._stocks),
            transactions=list(self._transactions),
        )

    def net_worth(self) -> Decimal:
        """Cash across all accounts plus market value of all holdings."""
        return aggregations.net_worth(self._accounts, self._stocks)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load(self, data: UserData) -> None:
        """Replace all state with a loaded bundle. Listeners are not notified."""
        self._accounts = list(data.accounts)
        self._stocks = list(data.stocks)
        self._transactions = list(data.transactions)

    def clear(self) -> None:
        self._accounts = []
        self._stocks = []
        self._transactions = []

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(
        self,
        accounts: Optional[list[Account]] = None,
        stocks: Optional[list[StockHolding]] = None,
        transactions: Optional[list[Transaction]] = None,
    ) -> None:
        """Swap in new state in one step, then notify listeners once."""
        if accounts is not None:
            self._accounts = accounts
        if stocks is not None:
            self._stocks = stocks
        if transactions is not None:
            self._transactions = transactions

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("ledger_listener_failed")

    def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def add_account(
        self,
        name: str,
        bank_name: str,
        balance: Number = 0,
        account_type: AccountType = AccountType.CHECKING,
        currency: Optional[str] = None,
    ) -> Account:
        """Append a new account with a freshly generated ID."""
        account = Account(
            name=name,
            bank_name=bank_name,
            balance=_to_decimal(balance),
            account_type=account_type,
            currency=currency or self._default_currency,
        )
        self._commit(accounts=self._accounts + [account])
        self._audit(AuditEventBuilder.account_added(account.id, account.name, str(account.balance)))
        return account

    def edit_account(self, account: Account) -> bool:
        """Replace the account with the same ID. False if there is none."""
        if self.find_account(account.id) is None:
            logger.info("edit_account_missing", account_id=account.id)
            return False

        self._commit(accounts=[
            account if existing.id == account.id else existing
            for existing in self._accounts
        ])
        self._audit(AuditEventBuilder.account_updated(account.id, account.name))
        return True

    def delete_account(self, account_id: str) -> bool:
        """
        Remove an account. False if there is none.

        Transactions referring to it are kept as they are.
        """
        remaining = [a for a in self._accounts if a.id != account_id]
        if len(remaining) == len(self._accounts):
            return False

        self._commit(accounts=remaining)
        self._audit(AuditEventBuilder.account_deleted(account_id))
        return True

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def record_transaction(
        self,
        account_id: str,
        amount: Number,
        transaction_type: TransactionType,
        category: str,
        transaction_date: Optional[date] = None,
        note: Optional[str] = None,
    ) -> Transaction:
        """
        Append a transaction and move the owning account's balance.

        Income adds the amount, expense subtracts it. If the account does not
        exist the transaction is still recorded; only the balance change is
        skipped.
        """
        transaction = Transaction(
            account_id=account_id,
            transaction_date=transaction_date or self._today(),
            amount=_to_decimal(amount),
            transaction_type=transaction_type,
            category=category,
            note=note or None,
        )
        accounts, matched = _adjust_balance(
            self._accounts, account_id, transaction.signed_amount
        )

        self._commit(
            accounts=accounts,
            transactions=self._transactions + [transaction],
        )

        self._audit(AuditEventBuilder.transaction_recorded(
            transaction_id=transaction.id,
            account_id=account_id,
            transaction_type=transaction.transaction_type.value,
            amount=str(transaction.amount),
            category=transaction.category,
        ))
        if not matched:
            logger.warning(
                "transaction_account_missing",
                transaction_id=transaction.id,
                account_id=account_id,
            )
            self._audit(AuditEventBuilder.balance_adjustment_skipped(transaction.id, account_id))

        return transaction

    # -------------------------------------------------------------------------
    # Trading
    # -------------------------------------------------------------------------

    def execute_trade(
        self,
        action: TradeAction,
        symbol: str,
        name: str,
        quantity: int,
        price: Number,
        account_id: str,
    ) -> Transaction:
        """
        Buy or sell shares, paying from / crediting to an account.

        Buying updates the weighted average cost; selling never does. Selling
        down to zero (or past it) removes the holding. The holding change,
        the balance change and the trade's transaction are committed together.

        Returns:
            The transaction recording the trade

        Raises:
            PositionNotHeldError: Selling a symbol with no holding (no state change)
            InvalidTradeError: Non-integer or non-positive quantity, or negative price
        """
        action = TradeAction(action)
        symbol = symbol.strip().upper()
        price = _to_decimal(price)

        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidTradeError(f"Quantity must be a whole number of shares, got {quantity!r}")
        if quantity <= 0:
            raise InvalidTradeError(f"Quantity must be positive, got {quantity}")
        if price < 0:
            raise InvalidTradeError(f"Price cannot be negative, got {price}")

        total_amount = price * quantity
        existing = self.get_holding(symbol)
        holding_removed = False

        if action == TradeAction.BUY:
            if existing is not None:
                new_quantity = existing.quantity + quantity
                total_cost = existing.quantity * existing.average_cost + total_amount
                updated = existing.model_copy(update={
                    "quantity": new_quantity,
                    "average_cost": total_cost / new_quantity,
                    "current_price": price,
                })
                stocks = [updated if h.symbol == symbol else h for h in self._stocks]
            else:
                stocks = self._stocks + [StockHolding(
                    symbol=symbol,
                    name=name,
                    quantity=quantity,
                    average_cost=price,
                    current_price=price,
                )]
        else:
            if existing is None:
                error = PositionNotHeldError(symbol)
                logger.warning("trade_rejected", action=action.value, symbol=symbol)
                self._audit(AuditEventBuilder.trade_rejected(action.value, symbol, str(error)))
                raise error

            new_quantity = existing.quantity - quantity
            if new_quantity <= 0:
                stocks = [h for h in self._stocks if h.symbol != symbol]
                holding_removed = True
            else:
                # Average cost stays; only buys move it
                updated = existing.model_copy(update={
                    "quantity": new_quantity,
                    "current_price": price,
                })
                stocks = [updated if h.symbol == symbol else h for h in self._stocks]

        is_buy = action == TradeAction.BUY
        accounts, matched = _adjust_balance(
            self._accounts,
            account_id,
            -total_amount if is_buy else total_amount,
        )
        if not matched:
            logger.warning("trade_account_missing", symbol=symbol, account_id=account_id)

        transaction = Transaction(
            account_id=account_id,
            transaction_date=self._today(),
            amount=total_amount,
            transaction_type=TransactionType.EXPENSE if is_buy else TransactionType.INCOME,
            category=INVESTMENT_CATEGORY,
            note=f"{'Buy' if is_buy else 'Sell'} {symbol} {quantity} shares @ {price}",
        )

        self._commit(
            accounts=accounts,
            stocks=stocks,
            transactions=self._transactions + [transaction],
        )

        self._audit(AuditEventBuilder.trade_executed(
            action=action.value,
            symbol=symbol,
            quantity=quantity,
            price=str(price),
            account_id=account_id,
            holding_removed=holding_removed,
        ))
        return transaction

    async def refresh_prices(self) -> int:
        """
        Refresh current prices of all holdings from the advisory service.

        Updates are matched by symbol against the holdings present when the
        response arrives, so a holding sold in the meantime is not revived.
        Returns the number of holdings updated.
        """
        if self._advisor is None or not self._stocks:
            return 0

        requested = [h.symbol for h in self._stocks]
        updates = await self._advisor.estimate_prices(requested)
        by_symbol = {u.symbol: u for u in updates}

        now = datetime.now(timezone.utc)
        refreshed = []
        stocks = []
        for holding in self._stocks:
            update = by_symbol.get(holding.symbol)
            if update is not None:
                holding = holding.model_copy(update={
                    "current_price": update.current_price,
                    "name": update.name or holding.name,
                    "last_updated": now,
                })
                refreshed.append(holding.symbol)
            stocks.append(holding)

        if refreshed:
            self._commit(stocks=stocks)

        self._audit(AuditEventBuilder.prices_refreshed(len(requested), refreshed))
        return len(refreshed)
