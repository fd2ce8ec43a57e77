"""
Integration tests for the session flow.

Real ledger and local storage in a temp directory; the advisory agent is
mocked.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

from finance_pro.agents import NOT_CONFIGURED_ADVICE
from finance_pro.config import AppSettings
from finance_pro.ledger import PortfolioLedger
from finance_pro.models.audit import AuditEventType
from finance_pro.models.finance import Account, PriceUpdate, TransactionType, User, UserData
from finance_pro.orchestrator import AppSession, create_app_components, demo_data
from finance_pro.services.storage import (
    LocalKeyValueStore,
    LocalUserDataStorage,
    SessionStore,
    StorageLoadError,
)
from finance_pro.services.storage.local import KEY_STOCKS, user_scope
from finance_pro.audit import AuditLogger
from finance_pro.validation import FormValidator


TODAY = date(2023, 10, 20)


def make_advisor(advice="Keep going."):
    advisor = MagicMock()
    advisor.summarize = AsyncMock(return_value=advice)
    advisor.estimate_prices = AsyncMock(return_value=[])
    return advisor


def make_session(tmp_path, advisor=None, seed=True) -> AppSession:
    store = LocalKeyValueStore(tmp_path)
    audit_logger = AuditLogger()
    ledger = PortfolioLedger(advisor=advisor, audit_logger=audit_logger, today=lambda: TODAY)
    return AppSession(
        ledger=ledger,
        storage=LocalUserDataStorage(store),
        session_store=SessionStore(store),
        advisor=advisor,
        audit_logger=audit_logger,
        app_settings=AppSettings(app_save_debounce_seconds=60, app_seed_demo_data=seed),
        today=lambda: TODAY,
    )


class TestLogin:
    """Tests for starting a session."""

    @pytest.mark.asyncio
    async def test_blank_username_becomes_user(self, tmp_path):
        """Test the default username."""
        session = make_session(tmp_path)
        user = await session.login("   ")
        assert user.username == "User"
        assert session.is_logged_in
        assert session.state.data_loaded is True

    @pytest.mark.asyncio
    async def test_new_user_gets_seed_data(self, tmp_path):
        """Test the demo bundle for a user with nothing saved."""
        session = make_session(tmp_path)
        await session.login("alice")

        assert len(session.ledger.accounts) == 2
        assert len(session.ledger.stocks) == 2
        assert len(session.ledger.transactions) == 3
        assert session.save_queue.pending is True

    @pytest.mark.asyncio
    async def test_seed_disabled_starts_empty(self, tmp_path):
        """Test the empty bundle option."""
        session = make_session(tmp_path, seed=False)
        await session.login("alice")
        assert session.ledger.snapshot() == UserData()

    @pytest.mark.asyncio
    async def test_returning_user_loads_saved_data(self, tmp_path):
        """Test stored data wins over the seed."""
        storage = LocalUserDataStorage(LocalKeyValueStore(tmp_path))
        await storage.save("alice", UserData())
        session = make_session(tmp_path)

        await session.login("alice")

        assert session.ledger.accounts == []
        assert session.save_queue.pending is False

    @pytest.mark.asyncio
    async def test_login_remembers_user(self, tmp_path):
        """Test the session user is stored on the device."""
        session = make_session(tmp_path)
        await session.login("alice")
        stored = SessionStore(LocalKeyValueStore(tmp_path)).get_user()
        assert stored.username == "alice"

    @pytest.mark.asyncio
    async def test_login_is_audited(self, tmp_path):
        """Test login and load events."""
        session = make_session(tmp_path)
        await session.login("alice")
        types = [e.event_type for e in session.audit_logger.recent_events()]
        assert AuditEventType.USER_LOGGED_IN in types
        assert AuditEventType.DATA_LOADED in types


class TestPersistenceFlow:
    """Tests that ledger changes reach storage."""

    @pytest.mark.asyncio
    async def test_changes_survive_logout_and_login(self, tmp_path):
        """Test mutations are flushed on logout and reloaded."""
        session = make_session(tmp_path, seed=False)
        await session.login("alice")
        account = session.ledger.add_account("Wallet", "Cash", Decimal("100"))
        session.ledger.record_transaction(account.id, Decimal("30"), TransactionType.EXPENSE, "Food")
        await session.logout()

        await session.login("alice")
        assert [a.name for a in session.ledger.accounts] == ["Wallet"]
        assert session.ledger.accounts[0].balance == Decimal("70")
        assert len(session.ledger.transactions) == 1

    @pytest.mark.asyncio
    async def test_seed_is_written_once(self, tmp_path):
        """Test a seeded user exists in storage after the first flush."""
        session = make_session(tmp_path)
        await session.login("alice")
        await session.save_queue.flush()

        stored = await session.storage.load("alice")
        assert stored is not None
        assert len(stored.accounts) == len(demo_data().accounts)


class TestLoadFailures:
    """Tests that unreadable saved data is never replaced by the demo bundle."""

    @pytest.mark.asyncio
    async def test_corrupt_stocks_file_keeps_accounts(self, tmp_path):
        """Test a returning user with one corrupt file keeps their accounts."""
        storage = LocalUserDataStorage(LocalKeyValueStore(tmp_path))
        await storage.save("alice", UserData(
            accounts=[Account(id="a1", name="Real", bank_name="My Bank", balance=Decimal("10"))],
        ))
        path = tmp_path / f"{user_scope('alice')}_{KEY_STOCKS}.json"
        path.write_text("[{", encoding="utf-8")

        session = make_session(tmp_path, seed=True)
        await session.login("alice")
        assert session.save_queue.pending is False
        await session.logout()
        await session.login("alice")

        assert [a.name for a in session.ledger.accounts] == ["Real"]
        assert session.ledger.stocks == []

    @pytest.mark.asyncio
    async def test_unreadable_storage_suspends_saving(self, tmp_path):
        """Test a failed read starts the session but never writes."""
        storage = MagicMock()
        storage.name = "google_sheets"
        storage.load = AsyncMock(side_effect=StorageLoadError("503"))
        storage.save = AsyncMock(return_value=True)
        store = LocalKeyValueStore(tmp_path)
        session = AppSession(
            ledger=PortfolioLedger(today=lambda: TODAY),
            storage=storage,
            session_store=SessionStore(store),
            app_settings=AppSettings(app_save_debounce_seconds=0, app_seed_demo_data=True),
            today=lambda: TODAY,
        )

        await session.login("alice")

        assert session.is_logged_in is True
        assert session.saving_suspended is True
        assert session.save_queue is None
        assert len(session.ledger.accounts) == len(demo_data().accounts)

        session.ledger.add_account("Wallet", "Cash")
        await session.logout()

        storage.save.assert_not_awaited()
        types = [e.event_type for e in session.audit_logger.recent_events(limit=50)]
        assert AuditEventType.LOAD_FAILED in types

    @pytest.mark.asyncio
    async def test_next_login_saves_again(self, tmp_path):
        """Test saving resumes once storage can be read."""
        session = make_session(tmp_path)
        flaky = MagicMock()
        flaky.name = "local"
        flaky.load = AsyncMock(side_effect=[StorageLoadError("busy"), None])
        flaky.save = AsyncMock(return_value=True)
        session._storage = flaky

        await session.login("alice")
        assert session.saving_suspended is True
        await session.logout()
        flaky.save.assert_not_awaited()

        await session.login("alice")
        assert session.saving_suspended is False
        assert session.save_queue.pending is True


class TestLogout:
    """Tests for ending a session."""

    @pytest.mark.asyncio
    async def test_logout_clears_everything(self, tmp_path):
        """Test state, ledger and remembered user are reset."""
        session = make_session(tmp_path)
        await session.login("alice")
        ledger_listener_count = len(session.ledger._listeners)

        await session.logout()

        assert session.is_logged_in is False
        assert session.state.data_loaded is False
        assert session.save_queue is None
        assert session.ledger.snapshot() == UserData()
        assert len(session.ledger._listeners) == ledger_listener_count - 1
        assert SessionStore(LocalKeyValueStore(tmp_path)).get_user() is None

    @pytest.mark.asyncio
    async def test_logout_when_logged_out_is_safe(self, tmp_path):
        """Test idempotent logout."""
        session = make_session(tmp_path)
        await session.logout()
        assert session.is_logged_in is False


class TestRestore:
    """Tests for resuming a remembered session."""

    @pytest.mark.asyncio
    async def test_restore_logs_in_stored_user(self, tmp_path):
        """Test restore uses the remembered username."""
        SessionStore(LocalKeyValueStore(tmp_path)).set_user(User(username="bob"))
        session = make_session(tmp_path)

        user = await session.restore()

        assert user.username == "bob"
        assert session.state.user.username == "bob"

    @pytest.mark.asyncio
    async def test_restore_without_stored_user(self, tmp_path):
        """Test nothing to restore."""
        session = make_session(tmp_path)
        assert await session.restore() is None
        assert session.is_logged_in is False


class TestDashboard:
    """Tests for dashboard stats and advice caching."""

    @pytest.mark.asyncio
    async def test_stats_for_current_month(self, tmp_path):
        """Test dashboard numbers on the seed bundle."""
        session = make_session(tmp_path, advisor=make_advisor())
        await session.login("alice")

        stats, advice = await session.dashboard()

        assert stats.total_cash == Decimal("450000")
        assert stats.stock_value == Decimal("589000")
        assert stats.net_worth == Decimal("1039000")
        assert stats.monthly_income == Decimal("50000")
        assert stats.monthly_expense == Decimal("4500")
        assert stats.top_expense_category == "Food"
        assert [t.id for t in stats.recent_transactions] == ["t3", "t2", "t1"]
        assert advice == "Keep going."

    @pytest.mark.asyncio
    async def test_advice_only_requested_when_numbers_change(self, tmp_path):
        """Test the advisory call is skipped for unchanged inputs."""
        advisor = make_advisor()
        session = make_session(tmp_path, advisor=advisor)
        await session.login("alice")

        await session.dashboard()
        await session.dashboard()
        assert advisor.summarize.await_count == 1
        advisor.summarize.assert_awaited_with(Decimal("1039000"), Decimal("4500"), "Food")

        session.ledger.record_transaction("1", Decimal("10"), TransactionType.EXPENSE, "Food")
        await session.dashboard()
        assert advisor.summarize.await_count == 2

    @pytest.mark.asyncio
    async def test_no_advisor_placeholder(self, tmp_path):
        """Test the dashboard without an advisory agent."""
        session = make_session(tmp_path)
        await session.login("alice")
        _, advice = await session.dashboard()
        assert advice == NOT_CONFIGURED_ADVICE


class TestRefreshPrices:
    """Tests for the price refresh delegation."""

    @pytest.mark.asyncio
    async def test_refresh_updates_holdings(self, tmp_path):
        """Test prices flow from the advisor into the ledger."""
        advisor = make_advisor()
        advisor.estimate_prices.return_value = [
            PriceUpdate(symbol="AAPL", current_price=Decimal("200"), name="Apple Inc."),
        ]
        session = make_session(tmp_path, advisor=advisor)
        await session.login("alice")

        assert await session.refresh_prices() == 1
        assert session.ledger.get_holding("AAPL").current_price == Decimal("200")
        assert session.ledger.get_holding("2330.TW").current_price == Decimal("580")


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_local_mode_wiring(self, tmp_path):
        """Test the factory without remote services configured."""
        settings = MagicMock()
        type(settings).google_sheets = PropertyMock(side_effect=ValueError("missing"))
        app_settings = AppSettings(app_data_dir=str(tmp_path))

        with patch("finance_pro.services.storage.get_settings", return_value=settings), \
                patch("finance_pro.agents.advisor.get_settings", side_effect=ValueError("missing")):
            session, validator = create_app_components(app_settings)

        assert isinstance(session, AppSession)
        assert isinstance(validator, FormValidator)
        assert session.storage.is_remote is False
        assert session.is_logged_in is False
