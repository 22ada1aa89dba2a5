"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger is persisted as a flat key-value mapping; any backend that
implements KeyValueStorageInterface can hold it.
"""

from register_engine.services.storage.interface import (
    AuditStorageInterface,
    CorruptStateError,
    KeyValueStorageInterface,
    StorageError,
)
from register_engine.services.storage.json_file import JsonFileKeyValueStorage
from register_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryKeyValueStorage,
)
from register_engine.services.storage.repository import LedgerRepository

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStorageInterface",
    # Exceptions
    "CorruptStateError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
    "LedgerRepository",
]
