"""
Shared fixtures for register engine tests.

No real network or file I/O unless a test asks for tmp_path.
"""

import datetime as dt
from decimal import Decimal

import pytest

from register_engine.audit import AuditLogger
from register_engine.ledger import LedgerStore
from register_engine.models.ledger import LedgerPreferences, RawBankTransaction
from register_engine.services.notifications import NotificationSink
from register_engine.services.storage import InMemoryAuditStorage


FIXED_NOW = dt.datetime(2024, 1, 6, 12, 0, tzinfo=dt.timezone.utc)


class RecordingSink(NotificationSink):
    """Remembers every notification it receives."""

    def __init__(self):
        self.calls = []

    def notify_deposit(self, amount, payee, new_balance):
        self.calls.append(("deposit", amount, payee, new_balance))

    def notify_debit(self, amount, payee, new_balance):
        self.calls.append(("debit", amount, payee, new_balance))

    def notify_low_balance(self, balance, threshold):
        self.calls.append(("low_balance", balance, threshold))

    def notify_overdraft(self, balance):
        self.calls.append(("overdraft", balance))

    def kinds(self):
        return [call[0] for call in self.calls]

    def alerts(self):
        return [call for call in self.calls if call[0] in ("low_balance", "overdraft")]


class FailingSink(NotificationSink):
    """Every delivery fails."""

    def notify_deposit(self, amount, payee, new_balance):
        raise RuntimeError("push service down")

    def notify_debit(self, amount, payee, new_balance):
        raise RuntimeError("push service down")

    def notify_low_balance(self, balance, threshold):
        raise RuntimeError("push service down")

    def notify_overdraft(self, balance):
        raise RuntimeError("push service down")


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def store(sink, audit_logger, clock):
    return LedgerStore(
        notifier=sink,
        audit_logger=audit_logger,
        preferences=LedgerPreferences(),
        clock=clock,
    )


@pytest.fixture
def account(store):
    """Checking account opened with $2500.00 on 2024-01-01."""
    return store.add_account(
        "Everyday Checking",
        starting_balance=Decimal("2500.00"),
        starting_balance_date=dt.date(2024, 1, 1),
    )


@pytest.fixture
def make_bank():
    """Factory for bank sync rows."""

    def _make(account_id, day, payee, amount, external_id):
        return RawBankTransaction(
            account_id=account_id,
            date=day,
            payee=payee,
            amount=Decimal(amount),
            external_transaction_id=external_id,
        )

    return _make
