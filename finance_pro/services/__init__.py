"""Services package."""

from finance_pro.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsUserDataStorage,
    LocalKeyValueStore,
    LocalUserDataStorage,
    SaveQueue,
    SaveQueueClosedError,
    SessionStore,
    StorageError,
    StorageLoadError,
    UserDataStorageInterface,
    create_storage,
)

__all__ = [
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsUserDataStorage",
    "LocalKeyValueStore",
    "LocalUserDataStorage",
    "SaveQueue",
    "SaveQueueClosedError",
    "SessionStore",
    "StorageError",
    "StorageLoadError",
    "UserDataStorageInterface",
    "create_storage",
]
