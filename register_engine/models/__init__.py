"""
Data Models Package

This package contains all Pydantic models used by the register engine.
All data flowing through the engine must conform to these schemas.
"""

from register_engine.models.ledger import (
    Account,
    AccountType,
    BalanceAlertState,
    Conversion,
    IngestResult,
    LedgerPreferences,
    LedgerSnapshot,
    MatchMethod,
    MatchProposal,
    RawBankTransaction,
    ReconciliationPlan,
    RegisterFilter,
    RegisterQuery,
    RegisterSummary,
    RegisterView,
    Transaction,
    TransactionKind,
    TransactionSource,
    ValidationIssue,
)
from register_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountType",
    "BalanceAlertState",
    "Conversion",
    "IngestResult",
    "LedgerPreferences",
    "LedgerSnapshot",
    "MatchMethod",
    "MatchProposal",
    "RawBankTransaction",
    "ReconciliationPlan",
    "RegisterFilter",
    "RegisterQuery",
    "RegisterSummary",
    "RegisterView",
    "Transaction",
    "TransactionKind",
    "TransactionSource",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
