"""
Audit Models for the Register Engine

Every ledger mutation is recorded as an audit event.
This provides:
1. Traceability of how each balance came to be
2. Provenance for conversions (which bank row replaced which manual entry)
3. Debugging information when a sync misbehaves

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_ADDED = "account_added"
    ACTIVE_ACCOUNT_CHANGED = "active_account_changed"
    STARTING_BALANCE_SET = "starting_balance_set"

    # Manual register activity
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    RECONCILED_TOGGLED = "reconciled_toggled"
    MUTATION_REJECTED = "mutation_rejected"

    # Bank sync
    BANK_BATCH_INGESTED = "bank_batch_ingested"
    TRANSACTION_CONVERTED = "transaction_converted"
    DUPLICATES_SKIPPED = "duplicates_skipped"
    SYNC_FAILED = "sync_failed"

    # Side effects
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_FAILED = "notification_failed"

    # Persistence
    STATE_SAVED = "state_saved"
    STATE_RESTORED = "state_restored"
    PREFERENCES_UPDATED = "preferences_updated"

    # Advisor
    ADVISOR_FALLBACK = "advisor_fallback"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

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
        description="Type of entity (e.g., 'transaction', 'account', 'batch')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one sync)"
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

    error_code: Optional[str] = None
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
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(txn_id, account_id, "-45.20")
        event = AuditEventBuilder.batch_ingested(account_id, 3, 1, 0, correlation_id)
    """

    @staticmethod
    def account_added(account_id: UUID, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_ADDED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def active_account_changed(account_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTIVE_ACCOUNT_CHANGED,
            entity_type="account",
            entity_id=account_id,
            description="Active account changed",
            is_user_action=True,
        )

    @staticmethod
    def starting_balance_set(account_id: UUID, amount: str, as_of: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STARTING_BALANCE_SET,
            entity_type="account",
            entity_id=account_id,
            description=f"Starting balance set to {amount} as of {as_of}",
            details={"amount": amount, "as_of": as_of},
            is_user_action=True,
        )

    @staticmethod
    def transaction_added(
        transaction_id: UUID,
        account_id: UUID,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Manual transaction added: {amount}",
            details={"account_id": str(account_id), "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {', '.join(fields) or 'no changes'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(transaction_id: UUID, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Manual transaction deleted: {amount}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def reconciled_toggled(transaction_id: UUID, reconciled: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILED_TOGGLED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Reconciled flag set to {reconciled}",
            details={"reconciled": reconciled},
            is_user_action=True,
        )

    @staticmethod
    def mutation_rejected(
        operation: str,
        reason: str,
        entity_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=entity_id,
            description=f"{operation} rejected",
            error_message=reason,
            details={"operation": operation},
            is_user_action=True,
        )

    @staticmethod
    def batch_ingested(
        account_id: UUID,
        converted: int,
        inserted: int,
        duplicates: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BANK_BATCH_INGESTED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=(
                f"Bank batch ingested: {converted} converted, "
                f"{inserted} inserted, {duplicates} duplicates skipped"
            ),
            details={
                "converted": converted,
                "inserted": inserted,
                "duplicates": duplicates,
            },
        )

    @staticmethod
    def transaction_converted(
        transaction_id: UUID,
        external_id: str,
        method: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CONVERTED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Manual entry converted to bank transaction {external_id}",
            details={"external_id": external_id, "method": method},
        )

    @staticmethod
    def duplicates_skipped(
        account_id: UUID,
        external_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATES_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Skipped {len(external_ids)} redelivered bank transactions",
            details={"external_ids": external_ids},
        )

    @staticmethod
    def sync_failed(
        account_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Bank sync failed; ledger left unchanged",
            error_message=error_message,
        )

    @staticmethod
    def notification_sent(kind: str, details: dict[str, Any]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_SENT,
            entity_type="notification",
            description=f"Notification sent: {kind}",
            details={"kind": kind, **details},
        )

    @staticmethod
    def notification_failed(kind: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="notification",
            description=f"Notification delivery failed: {kind}",
            error_message=error_message,
            details={"kind": kind},
        )

    @staticmethod
    def state_saved(accounts: int, transactions: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_SAVED,
            entity_type="ledger",
            description=f"Ledger saved: {accounts} accounts, {transactions} transactions",
            details={"accounts": accounts, "transactions": transactions},
        )

    @staticmethod
    def state_restored(accounts: int, transactions: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_RESTORED,
            entity_type="ledger",
            description=f"Ledger restored: {accounts} accounts, {transactions} transactions",
            details={"accounts": accounts, "transactions": transactions},
        )

    @staticmethod
    def preferences_updated(fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PREFERENCES_UPDATED,
            entity_type="ledger",
            description=f"Preferences updated: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def advisor_fallback(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVISOR_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="advisor",
            description=f"Advisor unavailable for {operation}; using rule-based matching",
            error_message=error_message,
            details={"operation": operation},
        )
