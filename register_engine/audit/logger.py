"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of balances and conversions
2. Debugging capability for sync problems
3. A history the user can review

The audit logger:
- Is synchronous, because ledger mutations are synchronous
- Gracefully handles failures (a failed audit write never fails a mutation)
- Supports correlation IDs to trace the events of one sync
"""

import logging
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from register_engine.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from register_engine.services.storage import AuditStorageInterface


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


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at `level`."""
    logging.basicConfig(format="%(message)s", level=level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("register_engine.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_rejected(
        self,
        operation: str,
        reason: str,
        entity_id: Optional[UUID] = None,
    ) -> None:
        """Log a mutation the store refused."""
        self.log(AuditEventBuilder.mutation_rejected(operation, reason, entity_id))

    def log_notification(self, kind: str, **details: Any) -> None:
        """Log a delivered notification."""
        self.log(AuditEventBuilder.notification_sent(
            kind,
            {k: str(v) for k, v in details.items()},
        ))

    def log_notification_failed(self, kind: str, error_message: str) -> None:
        """Log a notification the sink failed to deliver."""
        self.log(AuditEventBuilder.notification_failed(kind, error_message))

    def log_sync_failed(
        self,
        account_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a bank sync that never reached the ledger."""
        self.log(AuditEventBuilder.sync_failed(account_id, error_message, correlation_id))

    def log_advisor_fallback(self, operation: str, error_message: str) -> None:
        """Log an advisor call that degraded to rule-based matching."""
        self.log(AuditEventBuilder.advisor_fallback(operation, error_message))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new sync. Pass it through all
    subsequent operations.
    """
    return uuid4()
