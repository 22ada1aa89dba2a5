"""Ledger core: errors, balance calculation, matching and the store."""

from register_engine.ledger.errors import (
    ImmutableFieldError,
    ImmutableRecordError,
    LedgerError,
    TransactionNotFoundError,
    UnknownAccountError,
    ValidationError,
)
from register_engine.ledger.balance import BalanceCalculator, register_order_key
from register_engine.ledger.matcher import (
    TransactionMatcher,
    append_conversion_marker,
    payee_similarity,
    payees_agree,
)
from register_engine.ledger.store import OPENING_BALANCE_PAYEE, LedgerStore

__all__ = [
    # Errors
    "ImmutableFieldError",
    "ImmutableRecordError",
    "LedgerError",
    "TransactionNotFoundError",
    "UnknownAccountError",
    "ValidationError",
    # Balance
    "BalanceCalculator",
    "register_order_key",
    # Matching
    "TransactionMatcher",
    "append_conversion_marker",
    "payee_similarity",
    "payees_agree",
    # Store
    "LedgerStore",
    "OPENING_BALANCE_PAYEE",
]
