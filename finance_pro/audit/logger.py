"""
Audit Logger

DESIGN DECISION: Every state change and every external-service failure is
logged as a structured event. This provides:
1. Traceability of balances and holdings
2. Debugging capability when a remote service misbehaves
3. A short activity history for the UI

The audit logger:
- Never raises; a logging problem must not break a user action
- Stamps events with the current session's correlation ID
- Keeps a bounded in-memory history of recent events
"""

from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_pro.models.audit import AuditEvent, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and remembers the most recent
    ones so the UI can show what just happened.
    """

    def __init__(self, history_size: int = 200):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to keep in memory.
        """
        self._history: deque[AuditEvent] = deque(maxlen=history_size)
        self._correlation_id: Optional[UUID] = None
        self._logger = structlog.get_logger(__name__)

    @property
    def correlation_id(self) -> Optional[UUID]:
        return self._correlation_id

    def start_session(self) -> UUID:
        """Begin a new correlation scope (one per login)."""
        self._correlation_id = create_correlation_id()
        return self._correlation_id

    def end_session(self) -> None:
        self._correlation_id = None

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at its own severity."""
        if event.correlation_id is None and self._correlation_id is not None:
            event = event.model_copy(update={"correlation_id": self._correlation_id})

        self._history.append(event)
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def recent_events(self, limit: int = 20) -> list[AuditEvent]:
        """Most recent events, newest first."""
        events = list(self._history)
        events.reverse()
        return events[:limit]


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new login session.
    """
    return uuid4()
