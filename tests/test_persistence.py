"""Tests for key-value persistence and restore."""

import json
from datetime import date
from decimal import Decimal

import pytest

from register_engine.ledger import LedgerError, LedgerStore
from register_engine.models.ledger import LedgerPreferences, LedgerSnapshot
from register_engine.services.storage import (
    CorruptStateError,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    LedgerRepository,
)


@pytest.fixture
def populate(make_bank, clock):
    """Factory for a store holding one account with mixed history."""

    def _populate(repository):
        store = LedgerStore(repository=repository, preferences=LedgerPreferences(), clock=clock)
        account = store.add_account("Checking", starting_balance=Decimal("2500.00"))
        store.set_starting_balance(account.id, Decimal("2500.00"), date(2024, 1, 1))
        store.add_manual_transaction(account.id, date(2024, 1, 5), "Gas Station", Decimal("-45.20"), notes="fill up")
        store.add_manual_transaction(account.id, date(2024, 1, 5), "Coffee", Decimal("-4.50"))
        store.ingest_bank_batch(account.id, [
            make_bank(account.id, date(2024, 1, 6), "SHELL OIL #4521", "-45.20", "b1"),
            make_bank(account.id, date(2024, 1, 6), "PAYROLL", "1500", "b2"),
        ])
        return store, account

    return _populate


class TestRepository:
    """Tests for the flat key layout."""

    def test_flat_keys(self, populate):
        """Test the snapshot is stored under namespaced flat keys."""
        storage = InMemoryKeyValueStorage()
        store, account = populate(LedgerRepository(storage, key_prefix="ledger"))
        store.save()

        keys = set(storage.dump())
        assert "ledger:meta" in keys
        assert "ledger:preferences" in keys
        assert f"ledger:account:{account.id}" in keys
        assert sum(1 for k in keys if k.startswith("ledger:transaction:")) == 4

    def test_derived_fields_not_persisted(self, populate):
        """Test running and current balances are never written."""
        storage = InMemoryKeyValueStorage()
        store, account = populate(LedgerRepository(storage, key_prefix="ledger"))
        store.save()

        account_json = json.loads(storage.get(f"ledger:account:{account.id}"))
        assert "current_balance" not in account_json
        for key, value in storage.dump().items():
            if key.startswith("ledger:transaction:"):
                assert "running_balance" not in json.loads(value)

    def test_empty_namespace_loads_none(self):
        """Test loading with nothing saved returns None."""
        assert LedgerRepository(InMemoryKeyValueStorage(), key_prefix="ledger").load() is None

    def test_corrupt_entry_raises(self):
        """Test undecodable state is reported, not silently dropped."""
        storage = InMemoryKeyValueStorage({
            "ledger:meta": "{\"schema_version\": 1}",
            "ledger:transaction:x": "not json",
        })
        with pytest.raises(CorruptStateError):
            LedgerRepository(storage, key_prefix="ledger").load()

    def test_other_namespaces_untouched(self, populate):
        """Test saving replaces only the ledger's own keys."""
        storage = InMemoryKeyValueStorage({"other:key": "keep"})
        store, _ = populate(LedgerRepository(storage, key_prefix="ledger"))
        store.save()
        store.save()
        assert storage.get("other:key") == "keep"


class TestRestore:
    """Tests for LedgerStore.restore."""

    def test_round_trip_restores_state_and_balances(self, populate):
        """Test a restored store matches the saved one, balances included."""
        repository = LedgerRepository(InMemoryKeyValueStorage(), key_prefix="ledger")
        store, account = populate(repository)
        store.save()

        restored = LedgerStore(repository=repository, preferences=LedgerPreferences())
        assert restored.restore() is True

        assert restored.transactions(account.id) == store.transactions(account.id)
        assert restored.get_account(account.id).current_balance == Decimal("3950.30")
        assert restored.active_account.id == account.id

    def test_restore_never_notifies(self, populate, sink, clock):
        """Test historical transactions are not re-announced on restore."""
        repository = LedgerRepository(InMemoryKeyValueStorage(), key_prefix="ledger")
        store, _ = populate(repository)
        store.save()

        restored = LedgerStore(
            notifier=sink,
            repository=repository,
            preferences=LedgerPreferences(),
            clock=clock,
        )
        restored.restore()
        assert sink.calls == []

    def test_sequence_continues_after_restore(self, populate):
        """Test new entries sort after restored ones on the same date."""
        repository = LedgerRepository(InMemoryKeyValueStorage(), key_prefix="ledger")
        store, account = populate(repository)
        store.save()

        restored = LedgerStore(repository=repository, preferences=LedgerPreferences())
        restored.restore()
        new = restored.add_manual_transaction(account.id, date(2024, 1, 6), "Late", Decimal("-1"))

        assert restored.transactions(account.id)[-1].id == new.id

    def test_redelivery_after_restore_is_deduplicated(self, populate, make_bank):
        """Test the dedup guard works across a restart."""
        repository = LedgerRepository(InMemoryKeyValueStorage(), key_prefix="ledger")
        store, account = populate(repository)
        store.save()

        restored = LedgerStore(repository=repository, preferences=LedgerPreferences())
        restored.restore()
        result = restored.ingest_bank_batch(account.id, [
            make_bank(account.id, date(2024, 1, 6), "PAYROLL", "1500", "b2"),
        ])
        assert result.posted_count == 0

    def test_restore_with_nothing_saved(self):
        """Test restore reports when there was nothing to load."""
        repository = LedgerRepository(InMemoryKeyValueStorage(), key_prefix="ledger")
        assert LedgerStore(repository=repository).restore() is False

    def test_save_without_repository(self):
        """Test save needs a repository."""
        with pytest.raises(LedgerError):
            LedgerStore().save()

    def test_restore_from_snapshot(self, populate):
        """Test restoring directly from a snapshot object."""
        store, account = populate(None)
        restored = LedgerStore()
        restored.restore(store.snapshot())
        assert len(restored) == len(store)

    def test_orphan_transaction_is_corrupt(self, populate):
        """Test a transaction without its account is rejected."""
        store, _ = populate(None)
        snapshot = store.snapshot()
        broken = LedgerSnapshot(transactions=snapshot.transactions)
        with pytest.raises(CorruptStateError):
            LedgerStore().restore(broken)


class TestJsonFileStorage:
    """Tests for the JSON file key-value storage."""

    def test_survives_new_instance(self, tmp_path, populate):
        """Test state written by one instance is read by another."""
        path = tmp_path / "state.json"
        store, account = populate(
            LedgerRepository(JsonFileKeyValueStorage(path), key_prefix="ledger")
        )
        store.save()

        restored = LedgerStore(repository=LedgerRepository(JsonFileKeyValueStorage(path), key_prefix="ledger"))
        assert restored.restore() is True
        assert restored.get_account(account.id).current_balance == store.get_account(account.id).current_balance

    def test_account_order_survives_round_trip(self, tmp_path):
        """Test accounts restore in the order they were added, not key order."""
        path = tmp_path / "state.json"
        store = LedgerStore(repository=LedgerRepository(JsonFileKeyValueStorage(path), key_prefix="ledger"))
        added = [store.add_account(f"Account {i}", starting_balance=Decimal("10")) for i in range(6)]
        store.save()

        storage = JsonFileKeyValueStorage(path)
        meta = json.loads(storage.get("ledger:meta"))
        meta["active_account_id"] = None
        storage.set("ledger:meta", json.dumps(meta))

        restored = LedgerStore(repository=LedgerRepository(JsonFileKeyValueStorage(path), key_prefix="ledger"))
        restored.restore()

        assert [a.id for a in restored.accounts()] == [a.id for a in added]
        assert restored.active_account.id == added[0].id

    def test_missing_file_is_empty(self, tmp_path):
        """Test a missing state file reads as an empty namespace."""
        storage = JsonFileKeyValueStorage(tmp_path / "missing.json")
        assert storage.read_namespace("ledger:") == {}

    def test_corrupt_file_raises(self, tmp_path):
        """Test a garbled state file is reported."""
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CorruptStateError):
            JsonFileKeyValueStorage(path).read_namespace("ledger:")

    def test_set_get_delete(self, tmp_path):
        """Test single-key writes reach the file."""
        path = tmp_path / "state.json"
        storage = JsonFileKeyValueStorage(path)
        storage.set("ledger:meta", "{}")

        assert JsonFileKeyValueStorage(path).get("ledger:meta") == "{}"
        assert storage.delete("ledger:meta") is True
        assert storage.delete("ledger:meta") is False
        assert JsonFileKeyValueStorage(path).get("ledger:meta") is None


class TestInMemoryStorage:
    """Tests for the in-memory backends."""

    def test_set_get_delete(self):
        """Test the basic key-value operations."""
        storage = InMemoryKeyValueStorage()
        storage.set("a", "1")
        assert storage.get("a") == "1"
        assert storage.delete("a") is True
        assert storage.delete("a") is False
        assert storage.get("a") is None

    def test_audit_events_by_entity(self, store, account, audit_storage):
        """Test an account's audit trail can be read back."""
        store.set_starting_balance(account.id, Decimal("10"), date(2024, 1, 1))

        events = audit_storage.get_events_by_entity("account", account.id)
        assert [e.event_type.value for e in events] == ["account_added", "starting_balance_set"]
