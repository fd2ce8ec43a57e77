"""
Audit Models for Finance Pro

Every state change in the ledger and every call to an external service is
recorded as an audit event. This provides:
1. Traceability of how a balance or holding got to its current value
2. Debugging information when a remote service misbehaves
3. A short activity history the UI can show

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    USER_LOGGED_IN = "user_logged_in"
    USER_LOGGED_OUT = "user_logged_out"

    # Persistence
    DATA_LOADED = "data_loaded"
    DATA_SAVED = "data_saved"
    LOAD_FAILED = "load_failed"
    SAVE_FAILED = "save_failed"

    # Accounts
    ACCOUNT_ADDED = "account_added"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Transactions
    TRANSACTION_RECORDED = "transaction_recorded"
    BALANCE_ADJUSTMENT_SKIPPED = "balance_adjustment_skipped"

    # Trading
    TRADE_EXECUTED = "trade_executed"
    TRADE_REJECTED = "trade_rejected"
    PRICES_REFRESHED = "prices_refreshed"

    # Advisory
    ADVICE_GENERATED = "advice_generated"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'holding', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID (or symbol) of the entity this event relates to"
    )

    # Correlation - all events of one login session share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_added(account_id, name)
        event = AuditEventBuilder.trade_rejected("sell", "AAPL", reason)
    """

    @staticmethod
    def user_logged_in(username: str, storage: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_LOGGED_IN,
            entity_type="user",
            entity_id=username,
            description=f"User logged in: {username}",
            details={"storage": storage},
            is_user_action=True,
        )

    @staticmethod
    def user_logged_out(username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_LOGGED_OUT,
            entity_type="user",
            entity_id=username,
            description=f"User logged out: {username}",
            is_user_action=True,
        )

    @staticmethod
    def data_loaded(username: str, source: str, counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_LOADED,
            entity_type="user",
            entity_id=username,
            description=f"Loaded data for {username} from {source}",
            details={"source": source, **counts},
        )

    @staticmethod
    def data_saved(username: str, storage: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="user",
            entity_id=username,
            description=f"Saved data for {username}",
            details={"storage": storage},
        )

    @staticmethod
    def load_failed(username: str, storage: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="user",
            entity_id=username,
            description=f"Could not load data for {username}",
            details={"storage": storage},
            error_message=error_message,
        )

    @staticmethod
    def save_failed(username: str, storage: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=username,
            description=f"Could not save data for {username}",
            details={"storage": storage},
        )

    @staticmethod
    def account_added(account_id: str, name: str, balance: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_ADDED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account added: {name}",
            details={"name": name, "balance": balance},
            is_user_action=True,
        )

    @staticmethod
    def account_updated(account_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account updated: {name}",
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account deleted: {account_id}",
            is_user_action=True,
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: str,
        account_id: str,
        transaction_type: str,
        amount: str,
        category: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Recorded {transaction_type} of {amount} ({category})",
            details={
                "account_id": account_id,
                "type": transaction_type,
                "amount": amount,
                "category": category,
            },
            is_user_action=True,
        )

    @staticmethod
    def balance_adjustment_skipped(transaction_id: str, account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTMENT_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"No account {account_id}; balance left unchanged",
            details={"account_id": account_id},
        )

    @staticmethod
    def trade_executed(
        action: str,
        symbol: str,
        quantity: int,
        price: str,
        account_id: str,
        holding_removed: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRADE_EXECUTED,
            entity_type="holding",
            entity_id=symbol,
            description=f"{action.capitalize()} {quantity} {symbol} @ {price}",
            details={
                "action": action,
                "quantity": quantity,
                "price": price,
                "account_id": account_id,
                "holding_removed": holding_removed,
            },
            is_user_action=True,
        )

    @staticmethod
    def trade_rejected(action: str, symbol: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRADE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="holding",
            entity_id=symbol,
            description=f"{action.capitalize()} {symbol} rejected",
            error_message=reason,
            details={"action": action},
            is_user_action=True,
        )

    @staticmethod
    def prices_refreshed(requested: int, updated: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PRICES_REFRESHED,
            entity_type="portfolio",
            description=f"Refreshed prices for {len(updated)} of {requested} holdings",
            details={"requested": requested, "updated": updated},
        )

    @staticmethod
    def advice_generated(net_worth: str, monthly_expense: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_GENERATED,
            severity=AuditSeverity.DEBUG,
            entity_type="dashboard",
            description="Dashboard advice refreshed",
            details={"net_worth": net_worth, "monthly_expense": monthly_expense},
        )

    @staticmethod
    def external_service_error(service: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
        )
