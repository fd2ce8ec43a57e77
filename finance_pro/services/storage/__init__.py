"""
Storage Services Package

Provides the abstract storage interface and its two implementations:
Google Sheets (remote) and a local JSON key-value store (fallback).
Which one is used is decided once, by create_storage().
"""

from typing import Optional

import structlog

from finance_pro.config import AppSettings, get_settings
from finance_pro.services.storage.interface import (
    ConnectionError,
    StorageError,
    StorageLoadError,
    UserDataStorageInterface,
)
from finance_pro.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsUserDataStorage,
)
from finance_pro.services.storage.local import (
    LocalKeyValueStore,
    LocalUserDataStorage,
    SessionStore,
)
from finance_pro.services.storage.save_queue import SaveQueue, SaveQueueClosedError


logger = structlog.get_logger(__name__)


def create_storage(
    app_settings: Optional[AppSettings] = None,
    local_store: Optional[LocalKeyValueStore] = None,
) -> UserDataStorageInterface:
    """
    Pick the storage backend for this process.

    Google Sheets is used when its settings validate; anything else silently
    degrades to local storage.
    """
    try:
        sheets_settings = get_settings().google_sheets
    except Exception as e:
        logger.warning("remote_storage_not_configured", reason=str(e))
    else:
        return GoogleSheetsUserDataStorage(GoogleSheetsClient(sheets_settings))

    if local_store is None:
        app_settings = app_settings or get_settings().app
        local_store = LocalKeyValueStore(app_settings.data_dir)
    return LocalUserDataStorage(local_store)


__all__ = [
    # Interfaces
    "UserDataStorageInterface",
    # Exceptions
    "ConnectionError",
    "SaveQueueClosedError",
    "StorageError",
    "StorageLoadError",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsUserDataStorage",
    # Local implementation
    "LocalKeyValueStore",
    "LocalUserDataStorage",
    "SessionStore",
    # Persistence scheduling
    "SaveQueue",
    "create_storage",
]
