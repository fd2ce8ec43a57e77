"""
Tests for the storage layer.

Local storage runs against a real temp directory; Google Sheets is mocked.
"""

import json
import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, PropertyMock, patch

from finance_pro.models.finance import (
    Account,
    StockHolding,
    Transaction,
    TransactionType,
    User,
    UserData,
)
from finance_pro.services.storage import (
    GoogleSheetsUserDataStorage,
    LocalKeyValueStore,
    LocalUserDataStorage,
    SessionStore,
    StorageLoadError,
    create_storage,
)
from finance_pro.services.storage.google_sheets import CELL_CHAR_LIMIT, USER_COLUMNS
from finance_pro.services.storage.local import KEY_ACCOUNTS, KEY_STOCKS, KEY_USER, user_scope


def sample_data() -> UserData:
    return UserData(
        accounts=[Account(id="1", name="Salary", bank_name="Fubon", balance=Decimal("150000"))],
        stocks=[StockHolding(
            symbol="AAPL",
            name="Apple Inc.",
            quantity=50,
            average_cost=Decimal("150"),
            current_price=Decimal("180.25"),
        )],
        transactions=[Transaction(
            id="t1",
            account_id="1",
            transaction_date=date(2023, 10, 1),
            amount=Decimal("50000"),
            transaction_type=TransactionType.INCOME,
            category="Salary",
            note="October salary",
        )],
    )


def same_content(left: UserData, right: UserData) -> bool:
    return left.model_copy(update={"last_updated": None}) == right.model_copy(update={"last_updated": None})


class TestLocalKeyValueStore:
    """Tests for the JSON file store."""

    def test_get_missing_returns_none(self, tmp_path):
        """Test missing keys."""
        store = LocalKeyValueStore(tmp_path)
        assert store.get("nothing") is None

    def test_set_get_remove(self, tmp_path):
        """Test basic key lifecycle."""
        store = LocalKeyValueStore(tmp_path / "nested")
        store.set("key", {"a": [1, 2]})
        assert store.get("key") == {"a": [1, 2]}
        store.remove("key")
        assert store.get("key") is None
        store.remove("key")


class TestLocalUserDataStorage:
    """Tests for local persistence."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        """Test save then load returns the same bundle."""
        storage = LocalUserDataStorage(LocalKeyValueStore(tmp_path))
        data = sample_data()

        assert await storage.save("alice", data) is True
        loaded = await storage.load("alice")

        assert loaded is not None
        assert loaded.last_updated is not None
        assert same_content(loaded, data)

    @pytest.mark.asyncio
    async def test_unknown_user_is_absent(self, tmp_path):
        """Test load for a user with nothing saved."""
        storage = LocalUserDataStorage(LocalKeyValueStore(tmp_path))
        assert await storage.load("nobody") is None

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, tmp_path):
        """Test keys are scoped per username."""
        storage = LocalUserDataStorage(LocalKeyValueStore(tmp_path))
        await storage.save("alice", sample_data())
        assert await storage.load("bob") is None

    @pytest.mark.asyncio
    async def test_missing_kind_loads_empty(self, tmp_path):
        """Test a partially written bundle."""
        store = LocalKeyValueStore(tmp_path)
        store.set(f"{user_scope('alice')}_{KEY_ACCOUNTS}", [
            {"id": "1", "name": "Salary", "bankName": "Fubon", "balance": 10, "type": "checking"},
        ])
        loaded = await LocalUserDataStorage(store).load("alice")
        assert len(loaded.accounts) == 1
        assert loaded.stocks == []
        assert loaded.transactions == []

    @pytest.mark.asyncio
    async def test_corrupt_kind_loads_empty_and_keeps_others(self, tmp_path):
        """Test one unreadable file does not cost the other kinds."""
        store = LocalKeyValueStore(tmp_path)
        storage = LocalUserDataStorage(store)
        await storage.save("alice", sample_data())
        path = tmp_path / f"{user_scope('alice')}_{KEY_STOCKS}.json"
        path.write_text("[{", encoding="utf-8")

        loaded = await storage.load("alice")

        assert loaded is not None
        assert loaded.stocks == []
        assert [a.name for a in loaded.accounts] == ["Salary"]
        assert len(loaded.transactions) == 1

    @pytest.mark.asyncio
    async def test_invalid_kind_loads_empty(self, tmp_path):
        """Test well-formed JSON that fails model validation."""
        store = LocalKeyValueStore(tmp_path)
        scope = user_scope("alice")
        store.set(f"{scope}_{KEY_ACCOUNTS}", [{"id": "1", "name": "Salary", "bankName": "Fubon"}])
        store.set(f"{scope}_{KEY_STOCKS}", [{"symbol": "AAPL", "quantity": 1.5}])

        loaded = await LocalUserDataStorage(store).load("alice")

        assert len(loaded.accounts) == 1
        assert loaded.stocks == []

    @pytest.mark.asyncio
    async def test_unreadable_directory_raises(self, tmp_path):
        """Test a failed read is reported, not mistaken for a new user."""
        store = MagicMock()
        store.get.side_effect = PermissionError("denied")
        with pytest.raises(StorageLoadError):
            await LocalUserDataStorage(store).load("alice")

    def test_user_scope_distinguishes_similar_names(self):
        """Test that punctuation-only differences don't collide."""
        assert user_scope("a.b") != user_scope("ab")

    def test_is_not_remote(self, tmp_path):
        """Test capability flag."""
        assert LocalUserDataStorage(LocalKeyValueStore(tmp_path)).is_remote is False


class TestSessionStore:
    """Tests for the remembered login."""

    def test_set_get_clear(self, tmp_path):
        """Test session user lifecycle."""
        store = LocalKeyValueStore(tmp_path)
        session = SessionStore(store)
        assert session.get_user() is None

        session.set_user(User(username="alice"))
        assert store.get(KEY_USER) == {"username": "alice", "isLoggedIn": True}
        assert session.get_user().username == "alice"

        session.clear()
        assert session.get_user() is None


def make_sheets_storage(rows):
    sheet = MagicMock()
    sheet.get_all_values.return_value = rows
    client = MagicMock()
    client.get_users_sheet.return_value = sheet
    return GoogleSheetsUserDataStorage(client), sheet


class TestGoogleSheetsUserDataStorage:
    """Tests for Sheets persistence with a mocked worksheet."""

    @pytest.mark.asyncio
    async def test_save_appends_new_user(self):
        """Test first save appends a row."""
        storage, sheet = make_sheets_storage([USER_COLUMNS])

        assert await storage.save("alice", sample_data()) is True

        sheet.append_row.assert_called_once()
        row = sheet.append_row.call_args.args[0]
        assert row[0] == "alice"
        assert row[1]
        assert json.loads(row[2])[0]["bankName"] == "Fubon"
        sheet.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_updates_existing_row(self):
        """Test saving an existing user rewrites their row only."""
        storage, sheet = make_sheets_storage([
            USER_COLUMNS,
            ["bob", "", "[]", "[]", "[]"],
            ["alice", "", "[]", "[]", "[]"],
        ])

        assert await storage.save("alice", sample_data()) is True

        sheet.append_row.assert_not_called()
        sheet.update.assert_called_once()
        assert sheet.update.call_args.kwargs["range_name"] == "A3:E3"

    @pytest.mark.asyncio
    async def test_load_round_trips_saved_row(self):
        """Test a saved row loads back into the same bundle."""
        storage, sheet = make_sheets_storage([USER_COLUMNS])
        data = sample_data()
        await storage.save("alice", data)
        saved_row = sheet.append_row.call_args.args[0]

        sheet.get_all_values.return_value = [USER_COLUMNS, saved_row]
        loaded = await storage.load("alice")

        assert same_content(loaded, data)
        assert loaded.last_updated is not None

    @pytest.mark.asyncio
    async def test_load_unknown_user(self):
        """Test a user with no row."""
        storage, _ = make_sheets_storage([USER_COLUMNS, ["bob", "", "[]", "[]", "[]"]])
        assert await storage.load("alice") is None

    @pytest.mark.asyncio
    async def test_load_tolerates_short_rows(self):
        """Test missing trailing cells load as empty collections."""
        storage, _ = make_sheets_storage([USER_COLUMNS, ["alice"]])
        loaded = await storage.load("alice")
        assert loaded == UserData()

    @pytest.mark.asyncio
    async def test_malformed_cell_loads_empty_and_keeps_others(self):
        """Test one bad cell does not cost the rest of the row."""
        storage, sheet = make_sheets_storage([USER_COLUMNS])
        await storage.save("alice", sample_data())
        saved_row = list(sheet.append_row.call_args.args[0])
        saved_row[3] = "[{"

        sheet.get_all_values.return_value = [USER_COLUMNS, saved_row]
        loaded = await storage.load("alice")

        assert loaded.stocks == []
        assert len(loaded.accounts) == 1
        assert len(loaded.transactions) == 1

    @pytest.mark.asyncio
    async def test_unreachable_store(self):
        """Test a failed read raises and a failed write returns False."""
        client = MagicMock()
        client.get_users_sheet.side_effect = RuntimeError("network down")
        storage = GoogleSheetsUserDataStorage(client)

        with pytest.raises(StorageLoadError):
            await storage.load("alice")
        assert await storage.save("alice", sample_data()) is False

    @pytest.mark.asyncio
    async def test_transient_read_error_raises(self):
        """Test a failing get_all_values is not reported as a new user."""
        storage, sheet = make_sheets_storage([USER_COLUMNS])
        sheet.get_all_values.side_effect = RuntimeError("503")
        with pytest.raises(StorageLoadError):
            await storage.load("alice")

    @pytest.mark.asyncio
    async def test_oversized_cell_refused(self):
        """Test the per-cell size limit."""
        storage, sheet = make_sheets_storage([USER_COLUMNS])
        long_note = "x" * 400
        data = UserData(transactions=[
            Transaction(
                account_id="1",
                amount=Decimal("1"),
                transaction_type=TransactionType.EXPENSE,
                category="Food",
                note=long_note,
            )
            for _ in range(CELL_CHAR_LIMIT // 400 + 1)
        ])

        assert await storage.save("alice", data) is False
        sheet.append_row.assert_not_called()


class TestCreateStorage:
    """Tests for backend selection."""

    def test_falls_back_to_local(self, tmp_path):
        """Test local storage when Sheets is not configured."""
        settings = MagicMock()
        type(settings).google_sheets = PropertyMock(side_effect=ValueError("missing"))
        with patch("finance_pro.services.storage.get_settings", return_value=settings):
            storage = create_storage(local_store=LocalKeyValueStore(tmp_path))
        assert isinstance(storage, LocalUserDataStorage)

    def test_uses_sheets_when_configured(self, tmp_path):
        """Test remote storage when Sheets settings validate."""
        settings = MagicMock()
        with patch("finance_pro.services.storage.get_settings", return_value=settings):
            storage = create_storage(local_store=LocalKeyValueStore(tmp_path))
        assert isinstance(storage, GoogleSheetsUserDataStorage)
        assert storage.is_remote is True
