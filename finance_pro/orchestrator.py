"""
Main Orchestrator for Finance Pro

This module ties together all the components and defines the
session-level flows:
1. Login (username → load bundle or seed → ledger → save queue)
2. Dashboard (ledger state → derived stats → advice when numbers change)
3. Logout (flush pending saves → clear everything)

DESIGN DECISION: Session state is an explicit object, not module globals.
The UI holds one AppSession and calls into it; the session owns the wiring
between the ledger (in-memory truth), the save queue (persistence) and the
advisory agent (best-effort suggestions).

The orchestrator enforces the boundaries:
- Only the ledger mutates data
- Every ledger change reaches storage through the save queue
- Every session step is audited
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional

import structlog
from pydantic import BaseModel

from finance_pro.agents import NOT_CONFIGURED_ADVICE, AdvisoryAgent
from finance_pro.audit import AuditLogger
from finance_pro.config import AppSettings, get_settings
from finance_pro.ledger import PortfolioLedger
from finance_pro.models.audit import AuditEventBuilder
from finance_pro.models.finance import (
    Account,
    AccountType,
    DashboardStats,
    StockHolding,
    Transaction,
    TransactionType,
    User,
    UserData,
)
from finance_pro.queries import build_dashboard_stats
from finance_pro.services.storage import (
    LocalKeyValueStore,
    SaveQueue,
    SessionStore,
    StorageLoadError,
    UserDataStorageInterface,
    create_storage,
)
from finance_pro.validation import FormValidator


logger = structlog.get_logger(__name__)

DEFAULT_USERNAME = "User"


def demo_data() -> UserData:
    """Starter bundle for a user with nothing saved yet."""
    return UserData(
        accounts=[
            Account(
                id="1",
                name="Salary account",
                bank_name="Taipei Fubon Bank",
                balance=Decimal("150000"),
                currency="TWD",
                account_type=AccountType.CHECKING,
            ),
            Account(
                id="2",
                name="Emergency fund",
                bank_name="Cathay United Bank",
                balance=Decimal("300000"),
                currency="TWD",
                account_type=AccountType.SAVING,
            ),
        ],
        stocks=[
            StockHolding(
                symbol="2330.TW",
                name="TSMC",
                quantity=1000,
                average_cost=Decimal("500"),
                current_price=Decimal("580"),
            ),
            StockHolding(
                symbol="AAPL",
                name="Apple Inc.",
                quantity=50,
                average_cost=Decimal("150"),
                current_price=Decimal("180"),
            ),
        ],
        transactions=[
            Transaction(
                id="t1",
                account_id="1",
                transaction_date=date(2023, 10, 1),
                amount=Decimal("50000"),
                transaction_type=TransactionType.INCOME,
                category="Salary",
                note="October salary",
            ),
            Transaction(
                id="t2",
                account_id="1",
                transaction_date=date(2023, 10, 5),
                amount=Decimal("3000"),
                transaction_type=TransactionType.EXPENSE,
                category="Food",
                note="Dinner with friends",
            ),
            Transaction(
                id="t3",
                account_id="2",
                transaction_date=date(2023, 10, 10),
                amount=Decimal("1500"),
                transaction_type=TransactionType.EXPENSE,
                category="Transport",
                note="Fuel",
            ),
        ],
    )


class SessionState(BaseModel):
    """What the UI needs to know about the current session."""

    user: Optional[User] = None
    data_loaded: bool = False
    load_error: Optional[str] = None
    advice: Optional[str] = None


class AppSession:
    """
    One user's session from login to logout.

    Flow:
    1. Login → Remember user on this device, load bundle (seed if none)
    2. Work → UI mutates the ledger, the save queue persists snapshots
    3. Dashboard → Stats every time, advice only when the numbers move
    4. Logout → Flush, detach, forget

    Must be driven from a single event loop: the save queue schedules its
    timers on the running loop.
    """

    def __init__(
        self,
        ledger: PortfolioLedger,
        storage: UserDataStorageInterface,
        session_store: SessionStore,
        advisor: Optional[AdvisoryAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        self._ledger = ledger
        self._storage = storage
        self._session_store = session_store
        self._advisor = advisor
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = app_settings or get_settings().app
        self._today = today

        self.state = SessionState()
        self._save_queue: Optional[SaveQueue] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._advice_key: Optional[tuple] = None

    @property
    def ledger(self) -> PortfolioLedger:
        return self._ledger

    @property
    def storage(self) -> UserDataStorageInterface:
        return self._storage

    @property
    def save_queue(self) -> Optional[SaveQueue]:
        return self._save_queue

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    @property
    def is_logged_in(self) -> bool:
        return self.state.user is not None

    @property
    def saving_suspended(self) -> bool:
        """Saved data could not be read at login, so changes are not saved."""
        return self.state.load_error is not None

    @property
    def is_syncing(self) -> bool:
        return self._save_queue is not None and self._save_queue.is_syncing

    async def login(self, username: str) -> User:
        """
        Start a session for a username.

        There is no authentication: any name is accepted, a blank one
        becomes "User". When saved data cannot be read the session still
        starts, as for a new user, but nothing is saved until the next login
        so the stored data is left untouched.
        """
        if self.is_logged_in:
            await self.logout()

        user = User(username=(username or "").strip() or DEFAULT_USERNAME)
        self._session_store.set_user(user)
        self._audit_logger.start_session()
        self._audit_logger.log(AuditEventBuilder.user_logged_in(user.username, self._storage.name))

        load_error = None
        try:
            data = await self._storage.load(user.username)
        except StorageLoadError as e:
            load_error = str(e)
            data = None
            self._audit_logger.log(AuditEventBuilder.load_failed(
                user.username, self._storage.name, load_error
            ))

        source = self._storage.name
        if data is None:
            if self._settings.app_seed_demo_data:
                data, source = demo_data(), "seed"
            else:
                data, source = UserData(), "empty"

        self._ledger.load(data)

        if load_error is None:
            self._save_queue = SaveQueue(
                self._storage,
                user.username,
                delay_seconds=self._settings.app_save_debounce_seconds,
                audit_logger=self._audit_logger,
            )
            self._unsubscribe = self._ledger.subscribe(self._save_queue.schedule)

            # A new user's starting bundle is written once so they exist in storage
            if source != self._storage.name:
                self._save_queue.schedule(self._ledger.snapshot())
        else:
            # Stored data could not be read; saving now would overwrite it
            logger.warning("saving_suspended", username=user.username, error=load_error)

        self.state = SessionState(user=user, data_loaded=True, load_error=load_error)
        self._advice_key = None

        self._audit_logger.log(AuditEventBuilder.data_loaded(
            user.username,
            source,
            {
                "accounts": len(data.accounts),
                "stocks": len(data.stocks),
                "transactions": len(data.transactions),
            },
        ))
        logger.info("session_started", username=user.username, source=source)
        return user

    async def restore(self) -> Optional[User]:
        """Resume the session remembered on this device, if any."""
        stored = self._session_store.get_user()
        if stored is None:
            return None
        return await self.login(stored.username)

    async def logout(self) -> None:
        """Flush pending saves and forget the user."""
        username = self.state.user.username if self.state.user else None

        if self._save_queue is not None:
            await self._save_queue.close()
        if self._unsubscribe is not None:
            self._unsubscribe()

        self._save_queue = None
        self._unsubscribe = None
        self._advice_key = None
        self._ledger.clear()
        self._session_store.clear()
        self.state = SessionState()

        if username:
            self._audit_logger.log(AuditEventBuilder.user_logged_out(username))
        self._audit_logger.end_session()

    async def dashboard(self) -> tuple[DashboardStats, str]:
        """
        Headline stats for the current month plus one line of advice.

        The advisory agent is only asked again when net worth, monthly
        expense or top category changed since the last time.
        """
        stats = build_dashboard_stats(
            self._ledger.accounts,
            self._ledger.stocks,
            self._ledger.transactions,
            today=self._today(),
        )

        key = (stats.net_worth, stats.monthly_expense, stats.top_expense_category)
        if key != self._advice_key or self.state.advice is None:
            self._advice_key = key
            if self._advisor is None:
                self.state.advice = NOT_CONFIGURED_ADVICE
            else:
                self.state.advice = await self._advisor.summarize(*key)
                self._audit_logger.log(AuditEventBuilder.advice_generated(
                    str(stats.net_worth), str(stats.monthly_expense)
                ))

        return stats, self.state.advice

    async def refresh_prices(self) -> int:
        """Ask the advisory agent for fresh prices. Returns holdings updated."""
        return await self._ledger.refresh_prices()


def create_app_components(
    app_settings: Optional[AppSettings] = None,
) -> tuple[AppSession, FormValidator]:
    """
    Factory function to create all application components.

    Storage is Google Sheets when configured, otherwise local files. The
    advisory agent disables itself when Gemini is not configured.

    Returns:
        (session, form_validator)
    """
    app_settings = app_settings or get_settings().app

    local_store = LocalKeyValueStore(app_settings.data_dir)
    audit_logger = AuditLogger(history_size=app_settings.app_audit_history_size)
    storage = create_storage(app_settings, local_store=local_store)
    advisor = AdvisoryAgent(audit_logger=audit_logger)

    ledger = PortfolioLedger(
        advisor=advisor,
        audit_logger=audit_logger,
        default_currency=app_settings.app_default_currency,
    )

    session = AppSession(
        ledger=ledger,
        storage=storage,
        session_store=SessionStore(local_store),
        advisor=advisor,
        audit_logger=audit_logger,
        app_settings=app_settings,
    )
    validator = FormValidator(app_settings.app_future_date_tolerance_days)

    logger.info("app_components_created", storage=storage.name, advisor=advisor.is_configured)
    return session, validator
