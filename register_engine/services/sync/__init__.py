"""Bank sync services package."""

from register_engine.services.sync.interface import (
    BankSyncSource,
    PlaidPayloadSource,
    SyncTransportError,
)

__all__ = ["BankSyncSource", "PlaidPayloadSource", "SyncTransportError"]
