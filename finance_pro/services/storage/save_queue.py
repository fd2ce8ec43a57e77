"""
Debounced Save Queue

DESIGN DECISION: Every ledger change produces a full snapshot, but writing
each one would hammer the remote store while the user clicks through a form.
The queue coalesces bursts: a write is scheduled after a quiet period, and
any newer snapshot cancels and replaces the pending one. Only the latest
snapshot is ever written (last write wins).

Runs on the asyncio event loop. There is no locking; a snapshot is an
immutable copy taken when it was scheduled.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog

from finance_pro.audit import AuditLogger
from finance_pro.models.audit import AuditEventBuilder
from finance_pro.models.finance import UserData
from finance_pro.services.storage.interface import UserDataStorageInterface


logger = structlog.get_logger(__name__)


class SaveQueueClosedError(RuntimeError):
    """Raised when scheduling on a queue that was already closed."""


class SaveQueue:
    """
    Write-coalescing persistence for one user's bundle.

    schedule() is cheap and can be called after every change; flush() forces
    the pending snapshot out now; close() flushes and stops accepting work.
    """

    def __init__(
        self,
        storage: UserDataStorageInterface,
        username: str,
        delay_seconds: float = 1.0,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._username = username
        self._delay = delay_seconds
        self._audit_logger = audit_logger

        self._pending: Optional[UserData] = None
        self._timer: Optional[asyncio.Task] = None
        self._in_flight = 0
        self._closed = False

        self.last_saved_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def username(self) -> str:
        return self._username

    @property
    def pending(self) -> bool:
        """A snapshot is waiting for its quiet period to end."""
        return self._pending is not None

    @property
    def is_syncing(self) -> bool:
        return self.pending or self._in_flight > 0

    def schedule(self, snapshot: UserData) -> None:
        """Queue a snapshot, restarting the quiet period."""
        if self._closed:
            raise SaveQueueClosedError(f"Save queue for {self._username} is closed")

        self._pending = snapshot
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._save_after_delay())

    async def flush(self) -> bool:
        """Write the pending snapshot immediately. True if nothing failed."""
        self._cancel_timer()
        return await self._write_pending()

    async def close(self) -> bool:
        """Flush and refuse further schedules."""
        result = await self.flush()
        self._closed = True
        return result

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _save_after_delay(self) -> None:
        await asyncio.sleep(self._delay)
        # Detach so a schedule() during the write starts a fresh timer
        self._timer = None
        await self._write_pending()

    async def _write_pending(self) -> bool:
        snapshot = self._pending
        if snapshot is None:
            return True
        self._pending = None

        self._in_flight += 1
        try:
            saved = await self._storage.save(self._username, snapshot)
        finally:
            self._in_flight -= 1

        if saved:
            self.last_saved_at = datetime.now(timezone.utc)
            self.last_error = None
            if self._audit_logger:
                self._audit_logger.log(
                    AuditEventBuilder.data_saved(self._username, self._storage.name)
                )
        else:
            self.last_error = f"Could not save to {self._storage.name}"
            logger.warning("save_failed", username=self._username, storage=self._storage.name)
            if self._audit_logger:
                self._audit_logger.log(
                    AuditEventBuilder.save_failed(self._username, self._storage.name)
                )
        return saved
