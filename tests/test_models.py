"""
Tests for the Register Engine

Test strategy:
1. Unit tests for individual components (models, matcher, calculator, validator)
2. Integration tests for the store and flows (with fake collaborators)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from register_engine.models.ledger import (
    Account,
    AccountType,
    Conversion,
    LedgerPreferences,
    MatchMethod,
    MatchProposal,
    RawBankTransaction,
    ReconciliationPlan,
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


class TestLedgerModels:
    """Tests for account and transaction Pydantic models."""

    def test_account_defaults(self):
        """Test Account defaults to a checking account at zero."""
        account = Account(name="Checking")
        assert account.account_type == AccountType.CHECKING
        assert account.starting_balance == Decimal("0")
        assert account.is_bank_linked is False

    def test_account_strips_whitespace(self):
        """Test that whitespace is stripped from the account name."""
        account = Account(name="  Joint Checking  ")
        assert account.name == "Joint Checking"

    def test_account_mask_must_be_four_digits(self):
        """Test that the account mask only accepts four digits."""
        with pytest.raises(PydanticValidationError):
            Account(name="Checking", account_mask="12a4")

    def test_account_float_balance_keeps_cents(self):
        """Test floats are converted to Decimal through their text form."""
        account = Account(name="Checking", starting_balance=0.1)
        assert account.starting_balance == Decimal("0.1")

    def test_transaction_defaults_to_manual_unreconciled(self):
        """Test a new Transaction is a manual, unreconciled, regular entry."""
        txn = Transaction(
            account_id=uuid4(),
            date=date(2024, 1, 5),
            payee="Gas Station",
            amount=Decimal("-45.20"),
        )
        assert txn.source == TransactionSource.MANUAL
        assert txn.kind == TransactionKind.REGULAR
        assert txn.reconciled is False
        assert txn.is_manual and not txn.is_bank
        assert txn.is_posted is False

    def test_transaction_ids_are_unique(self):
        """Test every transaction gets its own id."""
        account_id = uuid4()
        a = Transaction(account_id=account_id, date=date(2024, 1, 5), payee="A", amount=1)
        b = Transaction(account_id=account_id, date=date(2024, 1, 5), payee="A", amount=1)
        assert a.id != b.id

    def test_transaction_rejects_non_finite_amount(self):
        """Test NaN and infinite amounts are rejected."""
        for bad in ("NaN", "Infinity"):
            with pytest.raises(PydanticValidationError):
                Transaction(
                    account_id=uuid4(),
                    date=date(2024, 1, 5),
                    payee="Bad",
                    amount=Decimal(bad),
                )

    def test_transaction_rejects_empty_payee(self):
        """Test an empty payee is rejected."""
        with pytest.raises(PydanticValidationError):
            Transaction(account_id=uuid4(), date=date(2024, 1, 5), payee="   ", amount=1)

    def test_bank_transaction_is_posted(self):
        """Test bank-sourced entries count as posted even if unreconciled."""
        txn = Transaction(
            account_id=uuid4(),
            date=date(2024, 1, 5),
            payee="SHELL OIL",
            amount=Decimal("-45.20"),
            source=TransactionSource.BANK,
        )
        assert txn.is_posted is True

    def test_ledger_key(self):
        """Test the dedup identity is (date, amount, payee)."""
        txn = Transaction(
            account_id=uuid4(),
            date=date(2024, 1, 6),
            payee="SHELL OIL #4521",
            amount=Decimal("-45.20"),
        )
        assert txn.ledger_key() == (date(2024, 1, 6), Decimal("-45.20"), "SHELL OIL #4521")


class TestBankModels:
    """Tests for bank-side models."""

    def test_from_plaid_flips_sign(self):
        """Test Plaid's positive-is-outflow amounts become debits."""
        account_id = uuid4()
        row = RawBankTransaction.from_plaid(
            {
                "transaction_id": "plaid-1",
                "date": "2024-01-06",
                "name": "SHELL OIL 4521",
                "merchant_name": "Shell",
                "amount": 45.2,
            },
            account_id,
        )
        assert row.amount == Decimal("-45.2")
        assert row.payee == "Shell"
        assert row.date == date(2024, 1, 6)
        assert row.external_transaction_id == "plaid-1"
        assert row.account_id == account_id

    def test_from_plaid_falls_back_to_name(self):
        """Test the Plaid name is used when there is no merchant name."""
        row = RawBankTransaction.from_plaid(
            {"transaction_id": "p2", "date": "2024-01-06", "name": "PAYROLL", "amount": -1500},
            uuid4(),
        )
        assert row.payee == "PAYROLL"
        assert row.amount == Decimal("1500")

    def test_raw_bank_transaction_is_frozen(self):
        """Test bank rows cannot be modified after creation."""
        row = RawBankTransaction(
            account_id=uuid4(),
            date=date(2024, 1, 6),
            payee="SHELL",
            amount=Decimal("-1"),
            external_transaction_id="x",
        )
        with pytest.raises(PydanticValidationError):
            row.payee = "OTHER"

    def test_match_proposal_confidence_bounds(self):
        """Test proposal confidence must be within 0-100."""
        with pytest.raises(PydanticValidationError):
            MatchProposal(manual_id=uuid4(), bank_id="b1", confidence=101)

    def test_reconciliation_plan_is_empty_with_only_duplicates(self):
        """Test a plan holding only duplicates changes nothing."""
        row = RawBankTransaction(
            account_id=uuid4(),
            date=date(2024, 1, 6),
            payee="SHELL",
            amount=Decimal("-1"),
            external_transaction_id="x",
        )
        assert ReconciliationPlan(duplicates=[row]).is_empty
        assert not ReconciliationPlan(
            conversions=[Conversion(manual_id=uuid4(), bank=row, method=MatchMethod.PAYEE_RULE)]
        ).is_empty

    def test_preferences_coerce_threshold(self):
        """Test the low-balance threshold is stored as Decimal."""
        prefs = LedgerPreferences(low_balance_threshold="250.50")
        assert prefs.low_balance_threshold == Decimal("250.50")

    def test_validation_issue_severity_pattern(self):
        """Test only known severities are accepted."""
        with pytest.raises(PydanticValidationError):
            ValidationIssue(field="amount", issue_type="x", message="m", severity="fatal")


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.TRANSACTION_ADDED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.BANK_BATCH_INGESTED,
            description="Test",
            details={"converted": 1},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "bank_batch_ingested"
        assert log_dict["details"] == {"converted": 1}
        assert log_dict["correlation_id"] is None

    def test_audit_event_builder_batch_ingested(self):
        """Test AuditEventBuilder for a bank batch."""
        account_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.batch_ingested(account_id, 1, 2, 3, correlation_id)
        assert event.event_type == AuditEventType.BANK_BATCH_INGESTED
        assert event.entity_id == account_id
        assert event.correlation_id == correlation_id
        assert event.details == {"converted": 1, "inserted": 2, "duplicates": 3}

    def test_audit_event_builder_mutation_rejected(self):
        """Test rejected mutations are warnings carrying the reason."""
        txn_id = uuid4()
        event = AuditEventBuilder.mutation_rejected("delete_transaction", "bank record", txn_id)
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "bank record"
        assert event.entity_id == txn_id
        assert event.is_user_action is True

    def test_audit_event_builder_sync_failed(self):
        """Test failed syncs are errors."""
        event = AuditEventBuilder.sync_failed(uuid4(), "timeout")
        assert event.event_type == AuditEventType.SYNC_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "timeout"
