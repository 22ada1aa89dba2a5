"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Amount is a finite number
- Payee is present and not too long
- Date is a calendar date
- Check number and notes fit their limits
- These are errors: the mutation is refused

STAGE 2 - SEMANTIC VALIDATION:
- Dates far in the future
- Implausibly large amounts
- Zero amounts
- These are warnings: logged, never blocking

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and the store refuses the write on any error.
"""

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog

from register_engine.config import AppSettings, get_settings
from register_engine.ledger.errors import ValidationError
from register_engine.models.ledger import RawBankTransaction, ValidationIssue


MAX_PAYEE_LENGTH = 200
MAX_NOTES_LENGTH = 1000
MAX_CHECK_NUMBER_LENGTH = 20


@dataclass
class EntryValidation:
    """Cleaned field values plus every issue found."""

    values: dict[str, Any] = field(default_factory=dict)
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _error(field_name: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field_name, issue_type=issue_type, message=message, severity="error")


def _warning(field_name: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field_name, issue_type=issue_type, message=message, severity="warning")


class TransactionValidator:
    """
    Validates register input through a two-stage pipeline.

    Used for full entries (add) and for partial field sets (update).
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app
        self._logger = structlog.get_logger("register_engine.validation")

    # ---- coercion --------------------------------------------------------

    def parse_amount(self, value: Any) -> tuple[Optional[Decimal], Optional[ValidationIssue]]:
        """Convert to Decimal, rejecting NaN, infinities and non-numbers."""
        if isinstance(value, bool) or value is None:
            return None, _error("amount", "invalid_type", "Amount must be a number")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None, _error("amount", "invalid_format", f"Amount is not a number: {value!r}")
        if not amount.is_finite():
            return None, _error("amount", "non_finite", "Amount must be finite")
        return amount, None

    def parse_date(self, value: Any) -> tuple[Optional[dt.date], Optional[ValidationIssue]]:
        """Accept a date, a datetime (time dropped) or an ISO 8601 date string."""
        if isinstance(value, dt.datetime):
            return value.date(), None
        if isinstance(value, dt.date):
            return value, None
        if isinstance(value, str):
            try:
                return dt.date.fromisoformat(value.strip()), None
            except ValueError:
                pass
        return None, _error("date", "invalid_format", f"Date must be an ISO calendar date: {value!r}")

    # ---- stage 1 ---------------------------------------------------------

    def _validate_schema(self, fields: dict[str, Any]) -> EntryValidation:
        result = EntryValidation()

        if "amount" in fields:
            amount, issue = self.parse_amount(fields["amount"])
            if issue:
                result.issues.append(issue)
            else:
                result.values["amount"] = amount

        if "date" in fields:
            parsed, issue = self.parse_date(fields["date"])
            if issue:
                result.issues.append(issue)
            else:
                result.values["date"] = parsed

        if "payee" in fields:
            payee = fields["payee"]
            if not isinstance(payee, str) or not payee.strip():
                result.issues.append(_error("payee", "missing", "Payee is required"))
            elif len(payee.strip()) > MAX_PAYEE_LENGTH:
                result.issues.append(_error(
                    "payee", "too_long", f"Payee is longer than {MAX_PAYEE_LENGTH} characters",
                ))
            else:
                result.values["payee"] = payee.strip()

        if "notes" in fields:
            notes = fields["notes"]
            if notes is not None and not isinstance(notes, str):
                result.issues.append(_error("notes", "invalid_type", "Notes must be text"))
            elif notes is not None and len(notes) > MAX_NOTES_LENGTH:
                result.issues.append(_error(
                    "notes", "too_long", f"Notes are longer than {MAX_NOTES_LENGTH} characters",
                ))
            else:
                result.values["notes"] = notes.strip() if notes and notes.strip() else None

        if "check_number" in fields:
            check = fields["check_number"]
            if check is not None:
                check = str(check).strip()
                if len(check) > MAX_CHECK_NUMBER_LENGTH:
                    result.issues.append(_error(
                        "check_number", "too_long",
                        f"Check number is longer than {MAX_CHECK_NUMBER_LENGTH} characters",
                    ))
                elif not check.isalnum():
                    result.issues.append(_error(
                        "check_number", "invalid_format", "Check number must be letters and digits",
                    ))
                else:
                    result.values["check_number"] = check
            else:
                result.values["check_number"] = None

        if "reconciled" in fields:
            if not isinstance(fields["reconciled"], bool):
                result.issues.append(_error("reconciled", "invalid_type", "Reconciled must be true or false"))
            else:
                result.values["reconciled"] = fields["reconciled"]

        return result

    # ---- stage 2 ---------------------------------------------------------

    def _validate_semantic(self, values: dict[str, Any]) -> list[ValidationIssue]:
        issues = []
        today = dt.date.today()

        txn_date = values.get("date")
        max_future = today + dt.timedelta(days=self._settings.future_date_tolerance_days)
        if txn_date and txn_date > max_future:
            issues.append(_warning(
                "date", "future_date", f"Transaction date ({txn_date}) is far in the future",
            ))

        amount = values.get("amount")
        if amount is not None:
            if abs(amount) > self._settings.max_transaction_amount:
                issues.append(_warning(
                    "amount", "suspicious_value", f"Amount ({amount:,.2f}) seems unusually large",
                ))
            if amount == 0:
                issues.append(_warning("amount", "zero", "Amount is zero"))

        return issues

    # ---- entry points ----------------------------------------------------

    def validate(self, fields: dict[str, Any], required: Iterable[str] = ()) -> EntryValidation:
        """
        Run both stages over the given fields.

        Args:
            fields: Raw field values (only the keys present are checked)
            required: Field names that must be present

        Returns:
            EntryValidation with cleaned values and all issues
        """
        result = EntryValidation()
        for name in required:
            if name not in fields:
                result.issues.append(_error(name, "missing", f"{name} is required"))

        schema = self._validate_schema(fields)
        result.values.update(schema.values)
        result.issues.extend(schema.issues)

        # Only run stage 2 on what stage 1 accepted
        result.issues.extend(self._validate_semantic(result.values))
        return result

    def require_valid(
        self,
        fields: dict[str, Any],
        required: Iterable[str] = (),
        operation: str = "mutation",
    ) -> dict[str, Any]:
        """
        Validate and return cleaned values, or raise ValidationError.

        Warnings are logged and do not block.
        """
        result = self.validate(fields, required)
        for warning in result.warnings:
            self._logger.warning(
                "validation_warning",
                operation=operation,
                field=warning.field,
                message=warning.message,
            )
        if not result.is_valid:
            messages = "; ".join(issue.message for issue in result.errors)
            raise ValidationError(f"Invalid {operation}: {messages}", result.errors)
        return result.values

    def require_valid_batch(
        self,
        account_id: UUID,
        batch: Iterable[RawBankTransaction],
    ) -> list[RawBankTransaction]:
        """Every row of a sync batch must belong to the account being synced."""
        rows = list(batch)
        issues = []
        for index, row in enumerate(rows):
            if not isinstance(row, RawBankTransaction):
                issues.append(_error(f"batch[{index}]", "invalid_type", "Not a bank transaction"))
            elif row.account_id != account_id:
                issues.append(_error(
                    f"batch[{index}].account_id", "account_mismatch",
                    f"Bank transaction {row.external_transaction_id} belongs to {row.account_id}",
                ))
        if issues:
            raise ValidationError(
                f"Invalid bank batch: {len(issues)} rows rejected", issues,
            )
        return rows
