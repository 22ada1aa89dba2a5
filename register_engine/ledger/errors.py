"""
Ledger error taxonomy.

Every error here is raised synchronously by the operation that detected it,
before any state changes. None of them is fatal to the process.
"""

from typing import Optional
from uuid import UUID

from register_engine.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger store operations."""
    pass


class ValidationError(LedgerError):
    """
    Malformed input to a mutating call.

    Carries the individual issues so callers can show all of them at once.
    """

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        self.issues = issues or []
        super().__init__(message)


class UnknownAccountError(ValidationError):
    """The account id does not exist in the ledger."""

    def __init__(self, account_id: UUID):
        self.account_id = account_id
        super().__init__(
            f"Unknown account: {account_id}",
            [ValidationIssue(
                field="account_id",
                issue_type="unknown",
                message=f"Account {account_id} does not exist",
                severity="error",
            )],
        )


class TransactionNotFoundError(ValidationError):
    """The transaction id does not exist in the ledger."""

    def __init__(self, transaction_id: UUID):
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction not found: {transaction_id}",
            [ValidationIssue(
                field="id",
                issue_type="unknown",
                message=f"Transaction {transaction_id} does not exist",
                severity="error",
            )],
        )


class ImmutableRecordError(LedgerError):
    """Attempt to delete or rewrite a bank-sourced transaction."""

    def __init__(self, transaction_id: UUID, message: str):
        self.transaction_id = transaction_id
        super().__init__(message)


class ImmutableFieldError(ImmutableRecordError):
    """Attempt to change amount, date or payee of a bank-sourced transaction."""

    def __init__(self, transaction_id: UUID, fields: list[str]):
        self.fields = fields
        super().__init__(
            transaction_id,
            f"Bank transaction {transaction_id} cannot change: {', '.join(fields)}",
        )
