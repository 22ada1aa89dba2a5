"""
Abstract Storage Interface

DESIGN DECISION: The engine only needs a flat key-value mapping with
durable save/restore. Defining that as an interface allows us to:
1. Use in-memory storage for testing
2. Use a JSON file for a single-user install
3. Swap in a real database or device storage later
4. Keep ledger logic decoupled from storage technology

The interface is intentionally small - we're not building a database.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from register_engine.models.audit import AuditEvent


class KeyValueStorageInterface(ABC):
    """
    Abstract interface for flat key-value persistence.

    Keys and values are plain strings. Implementations must make
    `replace_namespace` atomic: readers see either the old or the new
    namespace contents, never a mix.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read one value.

        Returns:
            The stored value, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write one value.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Remove one key.

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    def read_namespace(self, prefix: str) -> dict[str, str]:
        """
        Read every key starting with `prefix`.

        Args:
            prefix: Namespace prefix, including its separator

        Returns:
            Mapping of full key to value
        """
        pass

    @abstractmethod
    def replace_namespace(self, prefix: str, items: dict[str, str]) -> None:
        """
        Atomically replace every key under `prefix` with `items`.

        Keys under `prefix` that are not in `items` are removed.

        Raises:
            StorageError: If the write fails (old contents are kept)
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one bank sync).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptStateError(StorageError):
    """Persisted data could not be decoded."""
    pass

