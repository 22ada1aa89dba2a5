"""
Core Data Models for the Register Engine

These models define the strict schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Keep amounts exact (Decimal, never float)
3. Be serializable for key-value persistence and logging
4. Separate authoritative fields from derived ones (running balances)

SIGN CONVENTION: positive amounts are credits (deposits), negative amounts
are debits. Bank feeds that use the opposite convention are converted on
the way in (see RawBankTransaction.from_plaid).
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def _to_decimal(value: Any) -> Any:
    """Coerce floats through str so 0.1 stays 0.1."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return value
    return value


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"


class TransactionSource(str, Enum):
    """
    Where a transaction came from.

    CRITICAL: BANK transactions are authoritative. Their amount, date and
    payee never change once posted, and they are never deleted.
    """
    MANUAL = "manual"
    BANK = "bank"


class TransactionKind(str, Enum):
    """
    Explicit variant for the opening-balance entry.

    An account has at most one OPENING_BALANCE transaction. It seeds the
    running balance instead of contributing to it.
    """
    REGULAR = "regular"
    OPENING_BALANCE = "opening_balance"


class MatchMethod(str, Enum):
    """How a manual entry was paired with its bank counterpart."""
    PAYEE_RULE = "payee_rule"      # amount + date + payee acceptance
    AMOUNT_DATE = "amount_date"    # unique amount + date candidate
    ADVISOR = "advisor"            # accepted advisor proposal


class RegisterFilter(str, Enum):
    """Register view filters."""
    ALL = "all"
    MANUAL = "manual"
    BANK = "bank"
    RECONCILED = "reconciled"
    UNRECONCILED = "unreconciled"


# =============================================================================
# CORE LEDGER MODELS
# =============================================================================

class Account(BaseModel):
    """
    A register account.

    `current_balance` is derived. It is recomputed by the balance calculator
    after every mutation and is never trusted when merging persisted state.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    account_type: AccountType = Field(
        default=AccountType.CHECKING,
        description="Checking, savings or credit"
    )
    starting_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance before the first register entry"
    )
    starting_balance_date: dt.date = Field(
        default_factory=dt.date.today,
        description="Date the starting balance applies from"
    )
    current_balance: Decimal = Field(
        default=Decimal("0"),
        description="Derived: balance after the last transaction"
    )
    bank_link_token: Optional[str] = Field(
        default=None,
        description="Opaque bank linkage token"
    )
    bank_name: Optional[str] = Field(
        default=None,
        max_length=100,
    )
    account_mask: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}$",
        description="Last four digits of the bank account number"
    )

    @field_validator('starting_balance', 'current_balance', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Any:
        return _to_decimal(v)

    @property
    def is_bank_linked(self) -> bool:
        return bool(self.bank_link_token)


class Transaction(BaseModel):
    """
    A single register entry.

    `id` is assigned once and never reused. `sequence` is a monotonically
    increasing creation counter; it orders same-date entries deterministically.
    `running_balance` is derived and recomputed on every mutation.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique, immutable transaction ID"
    )
    account_id: UUID = Field(
        ...,
        description="Owning account"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date (no time-of-day semantics)"
    )
    payee: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    amount: Decimal = Field(
        ...,
        allow_inf_nan=False,
        description="Signed amount: negative = debit, positive = credit"
    )
    source: TransactionSource = Field(
        default=TransactionSource.MANUAL,
    )
    kind: TransactionKind = Field(
        default=TransactionKind.REGULAR,
    )
    reconciled: bool = Field(
        default=False,
        description="Settled against the bank's record"
    )
    check_number: Optional[str] = Field(
        default=None,
        max_length=20,
    )
    notes: Optional[str] = Field(
        default=None,
        description="Free text; conversion markers are appended here"
    )
    external_id: Optional[str] = Field(
        default=None,
        description="Bank-side transaction identifier, if bank-sourced"
    )
    sequence: int = Field(
        default=0,
        ge=0,
        description="Creation order, used as the same-date tie-break"
    )
    created_at: dt.datetime = Field(default_factory=_utcnow)
    updated_at: dt.datetime = Field(default_factory=_utcnow)

    running_balance: Decimal = Field(
        default=Decimal("0"),
        description="Derived: account balance after this entry"
    )

    @field_validator('amount', 'running_balance', mode='before')
    @classmethod
    def coerce_amounts(cls, v: Any) -> Any:
        return _to_decimal(v)

    @property
    def is_bank(self) -> bool:
        return self.source == TransactionSource.BANK

    @property
    def is_manual(self) -> bool:
        return self.source == TransactionSource.MANUAL

    @property
    def is_opening_balance(self) -> bool:
        return self.kind == TransactionKind.OPENING_BALANCE

    @property
    def is_posted(self) -> bool:
        """Manual entries count as posted once reconciled."""
        return self.is_bank or self.reconciled

    def ledger_key(self) -> tuple[dt.date, Decimal, str]:
        """Identity used by the duplicate-delivery guard."""
        return (self.date, self.amount, self.payee)


class RawBankTransaction(BaseModel):
    """
    One row of a bank sync batch, before it touches the ledger.

    Amounts follow the engine convention (positive = credit).
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    account_id: UUID
    date: dt.date
    payee: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., allow_inf_nan=False)
    external_transaction_id: str = Field(..., min_length=1)

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        return _to_decimal(v)

    @classmethod
    def from_plaid(cls, payload: dict[str, Any], account_id: UUID) -> "RawBankTransaction":
        """
        Build from a Plaid transaction dict.

        Plaid reports money leaving the account as a positive amount,
        so the sign is flipped.
        """
        payee = payload.get("merchant_name") or payload.get("name") or ""
        amount = _to_decimal(payload["amount"])
        return cls(
            account_id=account_id,
            date=dt.date.fromisoformat(payload["date"]),
            payee=payee,
            amount=-amount,
            external_transaction_id=payload["transaction_id"],
        )

    def ledger_key(self) -> tuple[dt.date, Decimal, str]:
        return (self.date, self.amount, self.payee)


# =============================================================================
# RECONCILIATION MODELS
# =============================================================================

class MatchProposal(BaseModel):
    """
    A suggested pairing from the match advisor.

    Proposals are suggestions only. They are applied through the same
    ingestion path as rule-based matches.
    """

    manual_id: UUID
    bank_id: str = Field(
        ...,
        min_length=1,
        description="external_transaction_id of the bank transaction"
    )
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str = Field(default="")


class Conversion(BaseModel):
    """A manual entry paired with the bank transaction that replaces its data."""
    model_config = ConfigDict(frozen=True)

    manual_id: UUID
    bank: RawBankTransaction
    method: MatchMethod


class ReconciliationPlan(BaseModel):
    """
    Disjoint partition of a bank batch produced by the matcher.

    Every incoming bank transaction lands in exactly one of
    `conversions`, `unmatched` or `duplicates`.
    """

    conversions: list[Conversion] = Field(default_factory=list)
    unmatched: list[RawBankTransaction] = Field(default_factory=list)
    duplicates: list[RawBankTransaction] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.conversions and not self.unmatched


class IngestResult(BaseModel):
    """Outcome of one bank batch ingestion."""

    account_id: UUID
    converted: list[Transaction] = Field(default_factory=list)
    inserted: list[Transaction] = Field(default_factory=list)
    duplicates: list[RawBankTransaction] = Field(default_factory=list)
    current_balance: Decimal

    @property
    def posted_count(self) -> int:
        return len(self.converted) + len(self.inserted)


# =============================================================================
# PREFERENCES AND PERSISTED STATE
# =============================================================================

class LedgerPreferences(BaseModel):
    """User alerting preferences, persisted with the ledger."""
    model_config = ConfigDict(validate_assignment=True)

    deposits_enabled: bool = True
    debits_enabled: bool = True
    balance_alerts_enabled: bool = True
    low_balance_threshold: Decimal = Decimal("100")
    recent_window_hours: int = Field(default=24, ge=1)

    @field_validator('low_balance_threshold', mode='before')
    @classmethod
    def coerce_threshold(cls, v: Any) -> Any:
        return _to_decimal(v)


class BalanceAlertState(BaseModel):
    """
    Edge-trigger memory for one account.

    An alert is armed while the balance is above its threshold and
    disarmed once it fires, so it fires once per crossing.
    """

    low_balance_armed: bool = True
    overdraft_armed: bool = True


class LedgerSnapshot(BaseModel):
    """Everything the engine needs to restore its state."""

    schema_version: int = 1
    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    preferences: LedgerPreferences = Field(default_factory=LedgerPreferences)
    alert_states: dict[UUID, BalanceAlertState] = Field(default_factory=dict)
    active_account_id: Optional[UUID] = None
    next_sequence: int = Field(default=1, ge=1)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'non_finite', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


# =============================================================================
# QUERY MODELS (register views)
# =============================================================================

class RegisterQuery(BaseModel):
    """Filter and search parameters for a register view."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: Optional[UUID] = Field(
        default=None,
        description="Defaults to the active account"
    )
    filter_type: RegisterFilter = RegisterFilter.ALL
    search: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Case-insensitive match against payee and notes"
    )
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    include_opening_balance: bool = True
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class RegisterSummary(BaseModel):
    """Totals over a register view, excluding the opening balance."""

    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    transaction_count: int = 0
    unreconciled_count: int = 0
    manual_count: int = 0


class RegisterView(BaseModel):
    """Result of executing a RegisterQuery."""

    account_id: UUID
    transactions: list[Transaction] = Field(default_factory=list)
    total_matching: int = Field(ge=0)
    current_balance: Decimal
    summary: RegisterSummary = Field(default_factory=RegisterSummary)
