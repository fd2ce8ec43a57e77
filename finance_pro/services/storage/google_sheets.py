"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote document store because:
1. Users can look at (and back up) their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each user is one row. The three collections are stored as JSON documents in
their own cells, so a row is effectively a document keyed by username.

TRADEOFFS:
- A cell holds at most 50,000 characters; very long transaction histories
  will not fit (save() refuses and logs instead of truncating)
- No transactions; the whole row is rewritten on every save (last write wins)
"""

import json
from datetime import datetime, timezone
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_pro.config import GoogleSheetsSettings, get_settings
from finance_pro.models.finance import UserData
from finance_pro.services.storage.interface import (
    ConnectionError,
    StorageLoadError,
    UserDataStorageInterface,
)


logger = structlog.get_logger(__name__)

# Column mappings for the Users sheet
USER_COLUMNS = [
    "username",
    "last_updated",
    "accounts_json",
    "stocks_json",
    "transactions_json",
]

# Google Sheets per-cell limit
CELL_CHAR_LIMIT = 50000


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for establishing the
    connection.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_users_sheet(self) -> gspread.Worksheet:
        """Get or create the Users worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.users_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.users_sheet_name,
                rows=100,
                cols=len(USER_COLUMNS),
            )
            sheet.append_row(USER_COLUMNS)
        return sheet


class GoogleSheetsUserDataStorage(UserDataStorageInterface):
    """
    Google Sheets implementation of user data storage.

    One row per username; collections are JSON-serialized into cells.
    """

    name = "google_sheets"

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @property
    def is_remote(self) -> bool:
        return True

    def _data_to_row(self, username: str, data: UserData) -> list:
        """Convert a bundle to a spreadsheet row."""
        document = data.to_document()
        return [
            username,
            document["lastUpdated"] or "",
            json.dumps(document["accounts"], ensure_ascii=False),
            json.dumps(document["stocks"], ensure_ascii=False),
            json.dumps(document["transactions"], ensure_ascii=False),
        ]

    def _row_to_data(self, row: list) -> UserData:
        """
        Convert a spreadsheet row to a bundle.

        A cell that does not parse loads as an empty collection; the other
        cells are kept.
        """
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        document = {"lastUpdated": safe_get(1) or None}
        for index, kind in enumerate(("accounts", "stocks", "transactions"), start=2):
            cell = safe_get(index)
            if not cell:
                continue
            try:
                document[kind] = json.loads(cell)
            except ValueError:
                logger.warning("sheets_cell_unreadable", username=safe_get(0), kind=kind)

        data, rejected = UserData.from_parts(document)
        for kind in rejected:
            logger.warning("sheets_cell_invalid", username=safe_get(0), kind=kind)
        return data

    async def load(self, username: str) -> Optional[UserData]:
        """Load the bundle stored in the username's row."""
        try:
            sheet = self._client.get_users_sheet()
            # Get all data (excluding header)
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            logger.error("sheets_load_failed", username=username, error=str(e))
            raise StorageLoadError(f"Could not read Google Sheets: {e}")

        for row in all_rows:
            if row and row[0] == username:
                return self._row_to_data(row)

        return None

    async def save(self, username: str, data: UserData) -> bool:
        """Overwrite the username's row, appending one if it does not exist."""
        stamped = data.model_copy(update={"last_updated": datetime.now(timezone.utc)})
        row = self._data_to_row(username, stamped)

        oversized = [
            USER_COLUMNS[idx] for idx, value in enumerate(row)
            if len(value) > CELL_CHAR_LIMIT
        ]
        if oversized:
            logger.error(
                "sheets_save_failed",
                username=username,
                error="cell limit exceeded",
                columns=oversized,
            )
            return False

        try:
            sheet = self._client.get_users_sheet()
            all_rows = sheet.get_all_values()

            # Row 1 is the header
            for idx, existing in enumerate(all_rows[1:], start=2):
                if existing and existing[0] == username:
                    sheet.update(
                        range_name=f"A{idx}:E{idx}",
                        values=[row],
                        value_input_option="RAW",
                    )
                    return True

            sheet.append_row(row, value_input_option="RAW")
            return True
        except Exception as e:
            logger.error("sheets_save_failed", username=username, error=str(e))
            return False
