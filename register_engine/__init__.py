"""
Register Engine - Source Package

A digital check register that reconciles user-entered transactions
against a bank feed into one ordered register with a running balance.

DESIGN PRINCIPLES:
1. Bank data is authoritative → Manual entries convert, never duplicate
2. Fail early, fail visibly
3. No silent corrections
4. Every mutation must be auditable
5. Storage and AI layers are swappable and optional
"""

# The ledger package is imported first: validation depends on its errors,
# and the store depends on validation.
from register_engine.ledger import (
    ImmutableFieldError,
    ImmutableRecordError,
    LedgerError,
    LedgerStore,
    TransactionNotFoundError,
    UnknownAccountError,
    ValidationError,
)

__version__ = "1.0.0"
__author__ = "Register Engine Team"

__all__ = [
    "ImmutableFieldError",
    "ImmutableRecordError",
    "LedgerError",
    "LedgerStore",
    "TransactionNotFoundError",
    "UnknownAccountError",
    "ValidationError",
]
