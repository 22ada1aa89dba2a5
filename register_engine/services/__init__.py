"""Services package."""

from register_engine.services.notifications import (
    LoggingNotificationSink,
    NotificationSink,
)
from register_engine.services.storage import (
    AuditStorageInterface,
    CorruptStateError,
    InMemoryAuditStorage,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    KeyValueStorageInterface,
    LedgerRepository,
    StorageError,
)
from register_engine.services.sync import (
    BankSyncSource,
    PlaidPayloadSource,
    SyncTransportError,
)

__all__ = [
    # Notifications
    "LoggingNotificationSink",
    "NotificationSink",
    # Storage services
    "AuditStorageInterface",
    "CorruptStateError",
    "InMemoryAuditStorage",
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
    "KeyValueStorageInterface",
    "LedgerRepository",
    "StorageError",
    # Bank sync
    "BankSyncSource",
    "PlaidPayloadSource",
    "SyncTransportError",
]
