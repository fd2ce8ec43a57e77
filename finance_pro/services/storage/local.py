"""
Local Storage Implementation

Used when no remote store is configured. Data lives in a small key-value
store on disk: one JSON file per key. Each data kind (accounts, stocks,
transactions) has its own key, scoped to the username, plus one key for the
logged-in user of the current device.
"""

import hashlib
import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from finance_pro.models.finance import User, UserData
from finance_pro.services.storage.interface import (
    StorageLoadError,
    UserDataStorageInterface,
)


logger = structlog.get_logger(__name__)

KEY_ACCOUNTS = "pfp_accounts"
KEY_STOCKS = "pfp_stocks"
KEY_TRANSACTIONS = "pfp_transactions"
KEY_LAST_UPDATED = "pfp_last_updated"
KEY_USER = "pfp_user"


class LocalKeyValueStore:
    """Persistent JSON key-value store backed by a directory."""

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self._directory / f"{safe}.json"

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is missing."""
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value, replacing the file atomically."""
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(value, f, ensure_ascii=False)
        os.replace(tmp_path, path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def user_scope(username: str) -> str:
    """Filesystem-safe, collision-free prefix for a username's keys."""
    slug = re.sub(r"[^A-Za-z0-9]", "", username)[:24] or "user"
    digest = hashlib.sha256(username.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}"


class LocalUserDataStorage(UserDataStorageInterface):
    """
    Local implementation of user data storage.

    Same contract as the remote store: load() returns None for a user with
    nothing saved and raises StorageLoadError when the directory cannot be
    read. save() never raises.
    """

    name = "local"

    def __init__(self, store: LocalKeyValueStore):
        self._store = store

    @property
    def is_remote(self) -> bool:
        return False

    def _keys(self, username: str) -> dict[str, str]:
        scope = user_scope(username)
        return {
            "accounts": f"{scope}_{KEY_ACCOUNTS}",
            "stocks": f"{scope}_{KEY_STOCKS}",
            "transactions": f"{scope}_{KEY_TRANSACTIONS}",
            "lastUpdated": f"{scope}_{KEY_LAST_UPDATED}",
        }

    async def load(self, username: str) -> Optional[UserData]:
        """
        Load each data kind from its own key.

        A kind whose file is corrupt loads as empty and the other kinds are
        kept. Only a user with no keys at all is reported as absent.
        """
        document = {}
        unreadable = []
        try:
            for kind, key in self._keys(username).items():
                try:
                    document[kind] = self._store.get(key)
                except ValueError as e:
                    unreadable.append(kind)
                    logger.warning("local_kind_unreadable", username=username, kind=kind, error=str(e))
        except OSError as e:
            logger.error("local_load_failed", username=username, error=str(e))
            raise StorageLoadError(f"Could not read local data for {username}: {e}")

        if not unreadable and all(value is None for value in document.values()):
            return None

        data, rejected = UserData.from_parts(document)
        for kind in rejected:
            logger.warning("local_kind_invalid", username=username, kind=kind)
        return data

    async def save(self, username: str, data: UserData) -> bool:
        """Write each data kind to its own key."""
        stamped = data.model_copy(update={"last_updated": datetime.now(timezone.utc)})
        document = stamped.to_document()
        keys = self._keys(username)
        try:
            for field, key in keys.items():
                self._store.set(key, document[field])
            return True
        except (OSError, TypeError) as e:
            logger.error("local_save_failed", username=username, error=str(e))
            return False


class SessionStore:
    """Remembers which user is logged in on this device."""

    def __init__(self, store: LocalKeyValueStore):
        self._store = store

    def get_user(self) -> Optional[User]:
        try:
            raw = self._store.get(KEY_USER)
            return User.model_validate(raw) if raw else None
        except (OSError, ValueError) as e:
            logger.warning("session_restore_failed", error=str(e))
            return None

    def set_user(self, user: User) -> None:
        try:
            self._store.set(KEY_USER, user.model_dump(mode="json", by_alias=True))
        except OSError as e:
            logger.warning("session_store_failed", error=str(e))

    def clear(self) -> None:
        try:
            self._store.remove(KEY_USER)
        except OSError as e:
            logger.warning("session_clear_failed", error=str(e))
