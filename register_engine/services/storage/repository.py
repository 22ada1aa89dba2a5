"""
Ledger Repository

Maps a LedgerSnapshot to and from a flat key-value namespace:

    <prefix>:meta                  schema version, active account, account order,
                                   sequence
    <prefix>:preferences           alerting preferences
    <prefix>:alerts                edge-trigger state per account
    <prefix>:account:<uuid>        one account
    <prefix>:transaction:<uuid>    one transaction

Derived fields (running_balance, current_balance) are never written.
They are recomputed by the ledger store after a restore.
"""

import json
from typing import Optional
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from register_engine.config import get_settings
from register_engine.models.ledger import (
    Account,
    BalanceAlertState,
    LedgerPreferences,
    LedgerSnapshot,
    Transaction,
)
from register_engine.services.storage.interface import (
    CorruptStateError,
    KeyValueStorageInterface,
)


_ALERTS_ADAPTER = TypeAdapter(dict[UUID, BalanceAlertState])


class LedgerRepository:
    """Saves and restores ledger snapshots through a key-value storage."""

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        key_prefix: Optional[str] = None,
    ):
        self._storage = storage
        self._prefix = key_prefix or get_settings().storage.key_prefix

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix, *parts))

    @property
    def namespace(self) -> str:
        return f"{self._prefix}:"

    def to_flat(self, snapshot: LedgerSnapshot) -> dict[str, str]:
        """Encode a snapshot as flat string pairs."""
        items: dict[str, str] = {
            self._key("meta"): json.dumps({
                "schema_version": snapshot.schema_version,
                "active_account_id": (
                    str(snapshot.active_account_id) if snapshot.active_account_id else None
                ),
                "next_sequence": snapshot.next_sequence,
                "account_order": [str(a.id) for a in snapshot.accounts],
            }),
            self._key("preferences"): snapshot.preferences.model_dump_json(),
            self._key("alerts"): _ALERTS_ADAPTER.dump_json(snapshot.alert_states).decode(),
        }
        for account in snapshot.accounts:
            items[self._key("account", str(account.id))] = account.model_dump_json(
                exclude={"current_balance"}
            )
        for txn in snapshot.transactions:
            items[self._key("transaction", str(txn.id))] = txn.model_dump_json(
                exclude={"running_balance"}
            )
        return items

    def from_flat(self, items: dict[str, str]) -> Optional[LedgerSnapshot]:
        """
        Decode flat string pairs into a snapshot.

        Returns None if the namespace holds no ledger.
        """
        meta_raw = items.get(self._key("meta"))
        if meta_raw is None:
            return None

        account_prefix = self._key("account", "")
        txn_prefix = self._key("transaction", "")

        try:
            meta = json.loads(meta_raw)
            prefs_raw = items.get(self._key("preferences"))
            alerts_raw = items.get(self._key("alerts"))

            accounts = [
                Account.model_validate_json(v)
                for k, v in items.items() if k.startswith(account_prefix)
            ]
            # Accounts come back in the order they were added
            order = {a: i for i, a in enumerate(meta.get("account_order", []))}
            accounts.sort(key=lambda a: (order.get(str(a.id), len(order)), str(a.id)))
            transactions = [
                Transaction.model_validate_json(v)
                for k, v in items.items() if k.startswith(txn_prefix)
            ]
            # Store iteration order is creation order
            transactions.sort(key=lambda t: t.sequence)

            return LedgerSnapshot(
                schema_version=meta.get("schema_version", 1),
                accounts=accounts,
                transactions=transactions,
                preferences=(
                    LedgerPreferences.model_validate_json(prefs_raw)
                    if prefs_raw else LedgerPreferences()
                ),
                alert_states=(
                    _ALERTS_ADAPTER.validate_json(alerts_raw) if alerts_raw else {}
                ),
                active_account_id=meta.get("active_account_id"),
                next_sequence=meta.get("next_sequence", 1),
            )
        except (json.JSONDecodeError, PydanticValidationError, AttributeError) as e:
            raise CorruptStateError(f"Persisted ledger could not be decoded: {e}")

    def save(self, snapshot: LedgerSnapshot) -> None:
        """Persist a snapshot, replacing whatever was stored before."""
        self._storage.replace_namespace(self.namespace, self.to_flat(snapshot))

    def load(self) -> Optional[LedgerSnapshot]:
        """Read the stored snapshot, or None if nothing was saved yet."""
        return self.from_flat(self._storage.read_namespace(self.namespace))
