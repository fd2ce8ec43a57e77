"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for persisting a user's
bundle of accounts, holdings and transactions. This allows us to:
1. Use Google Sheets when it is configured
2. Fall back to a local key-value store when it is not
3. Use in-memory fakes for testing
4. Keep the ledger decoupled from where its state lives

The backend is picked once at startup; callers only ever see this contract.

CONTRACT: load() returns None only for a user with nothing saved. A backend
that cannot be read raises StorageLoadError, so a failed read is never
mistaken for a new user. save() never raises: a failed write returns False.
Failures are logged where they happen.
"""

from abc import ABC, abstractmethod
from typing import Optional

from finance_pro.models.finance import UserData


class UserDataStorageInterface(ABC):
    """
    Abstract interface for per-user bundle storage.

    Any storage implementation (Google Sheets, local files, etc.)
    must implement these methods.
    """

    name: str = "storage"

    @property
    @abstractmethod
    def is_remote(self) -> bool:
        """Whether data leaves this machine."""
        pass

    @abstractmethod
    async def load(self, username: str) -> Optional[UserData]:
        """
        Load the saved bundle for a username.

        Args:
            username: Owner of the bundle

        Returns:
            The bundle, or None for a user with nothing saved

        Raises:
            StorageLoadError: The backend could not be read
        """
        pass

    @abstractmethod
    async def save(self, username: str, data: UserData) -> bool:
        """
        Save the bundle for a username, stamping last_updated.

        Args:
            username: Owner of the bundle
            data: Accounts, holdings and transactions to store

        Returns:
            True if saved, False if the write failed (already logged)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class StorageLoadError(StorageError):
    """Saved data exists or may exist, but could not be read."""
    pass
