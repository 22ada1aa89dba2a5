"""
In-memory storage backends.

Used by tests and by callers that persist through their own host
(e.g. a mobile app handing the flat mapping to device storage).
"""

import threading
from typing import Optional
from uuid import UUID

from register_engine.models.audit import AuditEvent
from register_engine.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStorageInterface,
)


class InMemoryKeyValueStorage(KeyValueStorageInterface):
    """Dict-backed key-value storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def read_namespace(self, prefix: str) -> dict[str, str]:
        with self._lock:
            return {k: v for k, v in self._data.items() if k.startswith(prefix)}

    def replace_namespace(self, prefix: str, items: dict[str, str]) -> None:
        with self._lock:
            kept = {k: v for k, v in self._data.items() if not k.startswith(prefix)}
            kept.update(items)
            self._data = kept

    def dump(self) -> dict[str, str]:
        """Copy of the full mapping."""
        with self._lock:
            return dict(self._data)


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.correlation_id == correlation_id]

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        with self._lock:
            return [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        if limit <= 0:
            return []
        with self._lock:
            return list(reversed(self._events[-limit:]))
