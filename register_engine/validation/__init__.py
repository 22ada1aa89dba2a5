"""Input validation package."""

from register_engine.validation.validator import EntryValidation, TransactionValidator

__all__ = ["EntryValidation", "TransactionValidator"]
