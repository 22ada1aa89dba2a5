"""
Ledger Store

The single authoritative in-memory state for accounts and transactions,
and the only component allowed to mutate them.

DESIGN DECISIONS:
1. Every mutating operation validates first, then applies its change to a
   working copy, recomputes balances, and only then commits. A failed
   operation leaves the store exactly as it was.
2. All public operations are serialized behind one re-entrant lock.
   Recompute is cheap; ordering correctness matters more than throughput.
3. Collaborators (matcher, calculator, notification sink, repository,
   audit logger) are injected. There is no module-level store.
4. Notifications are dispatched after the lock is released. A failing
   sink is logged and audited, never raised.

CRITICAL: Bank-sourced transactions are permanent. Their amount, date,
payee and check number never change, and they are never deleted.
"""

import datetime as dt
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Sequence
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError

from register_engine.audit import AuditLogger
from register_engine.config import get_settings
from register_engine.ledger.balance import BalanceCalculator, register_order_key
from register_engine.ledger.errors import (
    ImmutableFieldError,
    ImmutableRecordError,
    LedgerError,
    TransactionNotFoundError,
    UnknownAccountError,
    ValidationError,
)
from register_engine.ledger.matcher import TransactionMatcher
from register_engine.models.audit import AuditEventBuilder
from register_engine.models.ledger import (
    Account,
    AccountType,
    BalanceAlertState,
    IngestResult,
    LedgerPreferences,
    LedgerSnapshot,
    MatchProposal,
    RawBankTransaction,
    ReconciliationPlan,
    Transaction,
    TransactionKind,
    TransactionSource,
    ValidationIssue,
)
from register_engine.services.notifications import NotificationSink
from register_engine.services.storage import CorruptStateError, LedgerRepository
from register_engine.validation import TransactionValidator


OPENING_BALANCE_PAYEE = "Starting Balance"

# Fields a caller may pass to update_transaction
EDITABLE_FIELDS = frozenset({"date", "payee", "amount", "notes", "check_number", "reconciled"})

# Fields locked once a transaction is bank-sourced
BANK_LOCKED_FIELDS = ("amount", "date", "payee", "check_number")


@dataclass(frozen=True)
class _PendingNotification:
    kind: str
    args: tuple


def _default_clock() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _preferences_from_settings() -> LedgerPreferences:
    notify = get_settings().notifications
    return LedgerPreferences(
        deposits_enabled=notify.deposits_enabled,
        debits_enabled=notify.debits_enabled,
        balance_alerts_enabled=notify.balance_alerts_enabled,
        low_balance_threshold=notify.low_balance_threshold,
        recent_window_hours=notify.recent_window_hours,
    )


class LedgerStore:
    """
    Accounts, transactions and every operation that changes them.

    Reads return copies, so callers can never mutate store state
    behind its back.
    """

    def __init__(
        self,
        matcher: Optional[TransactionMatcher] = None,
        calculator: Optional[BalanceCalculator] = None,
        notifier: Optional[NotificationSink] = None,
        repository: Optional[LedgerRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[TransactionValidator] = None,
        preferences: Optional[LedgerPreferences] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        """
        Initialize an empty ledger.

        Args:
            matcher: Bank/manual matcher (defaults from settings)
            calculator: Running-balance calculator
            notifier: Notification sink; None disables notifications
            repository: Persistence adapter used by save()/restore()
            audit_logger: Audit logger (a local-only one if omitted)
            validator: Input validator
            preferences: Initial alert preferences (defaults from settings)
            clock: Returns the current aware datetime; used for the recent window
        """
        self._matcher = matcher or TransactionMatcher()
        self._calculator = calculator or BalanceCalculator()
        self._notifier = notifier
        self._repository = repository
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or TransactionValidator()
        self._clock = clock or _default_clock
        self._logger = structlog.get_logger("register_engine.ledger")

        self._lock = threading.RLock()
        self._accounts: dict[UUID, Account] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._preferences = preferences or _preferences_from_settings()
        self._alert_states: dict[UUID, BalanceAlertState] = {}
        self._active_account_id: Optional[UUID] = None
        self._next_sequence = 1

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def preferences(self) -> LedgerPreferences:
        with self._lock:
            return self._preferences.model_copy()

    @property
    def active_account(self) -> Optional[Account]:
        with self._lock:
            if self._active_account_id is None:
                return None
            return self._accounts[self._active_account_id].model_copy()

    def accounts(self) -> list[Account]:
        with self._lock:
            return [a.model_copy() for a in self._accounts.values()]

    def get_account(self, account_id: UUID) -> Account:
        with self._lock:
            return self._require_account(account_id).model_copy()

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        with self._lock:
            return self._require_transaction(transaction_id).model_copy()

    def transactions(self, account_id: Optional[UUID] = None) -> list[Transaction]:
        """
        Transactions in register order (opening balance first, then by date).

        Args:
            account_id: Limit to one account; all accounts if None
        """
        with self._lock:
            if account_id is not None:
                self._require_account(account_id)
            selected = [
                t for t in self._transactions.values()
                if account_id is None or t.account_id == account_id
            ]
            return [t.model_copy() for t in self._calculator.order(selected)]

    def alert_state(self, account_id: UUID) -> BalanceAlertState:
        with self._lock:
            self._require_account(account_id)
            return self._alert_states.setdefault(account_id, BalanceAlertState()).model_copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._transactions)

    @property
    def can_persist(self) -> bool:
        return self._repository is not None

    def plan_bank_batch(
        self,
        account_id: UUID,
        bank_transactions: Iterable[RawBankTransaction],
    ) -> ReconciliationPlan:
        """Dry run of the rule-based matcher. Nothing is changed."""
        with self._lock:
            self._require_account(account_id)
            rows = self._validator.require_valid_batch(account_id, bank_transactions)
            existing = [t for t in self._transactions.values() if t.account_id == account_id]
            return self._matcher.plan(existing, rows)

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def add_account(
        self,
        name: str,
        account_type: AccountType = AccountType.CHECKING,
        starting_balance: Any = Decimal("0"),
        starting_balance_date: Optional[dt.date] = None,
        bank_link_token: Optional[str] = None,
        bank_name: Optional[str] = None,
        account_mask: Optional[str] = None,
    ) -> Account:
        """
        Register a new account.

        The first account added becomes the active one.
        """
        try:
            account = Account(
                name=name,
                account_type=account_type,
                starting_balance=starting_balance,
                starting_balance_date=starting_balance_date or dt.date.today(),
                bank_link_token=bank_link_token,
                bank_name=bank_name,
                account_mask=account_mask,
            )
        except PydanticValidationError as e:
            raise self._wrap_model_error("add_account", e)

        with self._lock:
            self._calculator.recompute(account, [])
            self._accounts[account.id] = account
            self._alert_states[account.id] = self._primed_alert_state(account.current_balance)
            if self._active_account_id is None:
                self._active_account_id = account.id
            self._audit.log(AuditEventBuilder.account_added(account.id, account.name))
            return account.model_copy()

    def set_active_account(self, account_id: UUID) -> Account:
        """Make `account_id` the single active account."""
        with self._lock:
            account = self._require_account(account_id)
            if self._active_account_id != account_id:
                self._active_account_id = account_id
                self._audit.log(AuditEventBuilder.active_account_changed(account_id))
            return account.model_copy()

    def set_starting_balance(
        self,
        account_id: UUID,
        amount: Any,
        as_of: Any,
    ) -> Transaction:
        """
        Create or update the account's opening-balance entry.

        An account has at most one opening entry. It seeds the running
        balance and is kept in step with Account.starting_balance.
        """
        values = self._validator.require_valid(
            {"amount": amount, "date": as_of},
            required=("amount", "date"),
            operation="set_starting_balance",
        )

        with self._lock:
            account = self._require_account(account_id)
            opening = self._opening_entry(account_id)
            now = self._clock()

            if opening is None:
                entry = Transaction(
                    account_id=account_id,
                    date=values["date"],
                    payee=OPENING_BALANCE_PAYEE,
                    amount=values["amount"],
                    source=TransactionSource.MANUAL,
                    kind=TransactionKind.OPENING_BALANCE,
                    reconciled=True,
                    sequence=self._next_sequence,
                )
                sequence = self._next_sequence + 1
            else:
                entry = opening.model_copy(update={
                    "date": values["date"],
                    "amount": values["amount"],
                    "updated_at": now,
                })
                sequence = self._next_sequence

            updated_account = account.model_copy(update={
                "starting_balance": values["amount"],
                "starting_balance_date": values["date"],
            })
            pending = self._commit(updated_account, {entry.id: entry})
            self._next_sequence = sequence

            self._audit.log(AuditEventBuilder.starting_balance_set(
                account_id, f"{values['amount']:.2f}", values["date"].isoformat(),
            ))
            result = self._transactions[entry.id].model_copy()

        self._dispatch(pending)
        return result

    # =========================================================================
    # MANUAL MUTATIONS
    # =========================================================================

    def add_manual_transaction(
        self,
        account_id: UUID,
        date: Any,
        payee: str,
        amount: Any,
        notes: Optional[str] = None,
        check_number: Optional[str] = None,
    ) -> Transaction:
        """
        Record a user-entered transaction.

        Raises:
            ValidationError: Non-finite amount, empty payee, bad date,
                or unknown account
        """
        values = self._validator.require_valid(
            {
                "date": date,
                "payee": payee,
                "amount": amount,
                "notes": notes,
                "check_number": check_number,
            },
            required=("date", "payee", "amount"),
            operation="add_manual_transaction",
        )

        with self._lock:
            account = self._require_account(account_id, operation="add_manual_transaction")
            try:
                txn = Transaction(
                    account_id=account_id,
                    source=TransactionSource.MANUAL,
                    reconciled=False,
                    sequence=self._next_sequence,
                    **values,
                )
            except PydanticValidationError as e:
                raise self._wrap_model_error("add_manual_transaction", e)

            pending = self._commit(account.model_copy(), {txn.id: txn})
            self._next_sequence += 1

            self._audit.log(AuditEventBuilder.transaction_added(
                txn.id, account_id, f"{txn.amount:.2f}",
            ))
            result = self._transactions[txn.id].model_copy()

        self._dispatch(pending)
        return result

    def update_transaction(self, transaction_id: UUID, **fields: Any) -> Transaction:
        """
        Edit a transaction.

        Manual entries accept every editable field. Bank-sourced entries
        accept only notes and reconciled; a differing amount, date, payee
        or check number raises ImmutableFieldError and nothing changes.
        Passing a locked field with its current value is allowed.

        Raises:
            TransactionNotFoundError: Unknown id
            ValidationError: Unknown field or invalid value
            ImmutableFieldError: Locked field change on a bank transaction
        """
        unknown = sorted(set(fields) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Cannot update fields: {', '.join(unknown)}",
                [ValidationIssue(
                    field=name,
                    issue_type="not_editable",
                    message=f"{name} is not an editable field",
                    severity="error",
                ) for name in unknown],
            )

        values = self._validator.require_valid(fields, operation="update_transaction")

        with self._lock:
            current = self._require_transaction(transaction_id)

            changed = {
                name: value for name, value in values.items()
                if getattr(current, name) != value
            }

            if current.is_bank:
                locked = [name for name in BANK_LOCKED_FIELDS if name in changed]
                if locked:
                    self._audit.log_rejected(
                        "update_transaction",
                        f"Locked fields on bank transaction: {', '.join(locked)}",
                        transaction_id,
                    )
                    raise ImmutableFieldError(transaction_id, locked)

            if not changed:
                return current.model_copy()

            try:
                updated = Transaction.model_validate({
                    **current.model_dump(),
                    **changed,
                    "updated_at": self._clock(),
                })
            except PydanticValidationError as e:
                raise self._wrap_model_error("update_transaction", e)

            account = self._accounts[current.account_id].model_copy()
            if updated.is_opening_balance:
                account.starting_balance = updated.amount
                account.starting_balance_date = updated.date

            pending: list[_PendingNotification] = []
            if "amount" in changed or "date" in changed:
                pending = self._commit(account, {updated.id: updated})
            else:
                self._transactions[updated.id] = updated
                self._accounts[account.id] = account

            self._audit.log(AuditEventBuilder.transaction_updated(
                transaction_id, sorted(changed),
            ))
            result = self._transactions[transaction_id].model_copy()

        self._dispatch(pending)
        return result

    def delete_transaction(self, transaction_id: UUID) -> None:
        """
        Remove a manual transaction.

        Deleting the opening-balance entry resets the account's
        starting balance to zero.

        Raises:
            TransactionNotFoundError: Unknown id
            ImmutableRecordError: The transaction is bank-sourced
        """
        with self._lock:
            current = self._require_transaction(transaction_id)
            if current.is_bank:
                self._audit.log_rejected(
                    "delete_transaction",
                    "Bank transactions cannot be deleted",
                    transaction_id,
                )
                raise ImmutableRecordError(
                    transaction_id,
                    f"Bank transaction {transaction_id} cannot be deleted",
                )

            account = self._accounts[current.account_id].model_copy()
            if current.is_opening_balance:
                account.starting_balance = Decimal("0")

            pending = self._commit(account, {}, removed=(transaction_id,))
            self._audit.log(AuditEventBuilder.transaction_deleted(
                transaction_id, f"{current.amount:.2f}",
            ))

        self._dispatch(pending)

    def toggle_reconciled(self, transaction_id: UUID) -> Transaction:
        """
        Flip the reconciled flag of a bank transaction.

        Manual entries are left untouched: their posted status follows
        reconciliation against the bank, not a user toggle.
        """
        with self._lock:
            current = self._require_transaction(transaction_id)
            if current.is_manual:
                return current.model_copy()

            updated = current.model_copy(update={
                "reconciled": not current.reconciled,
                "updated_at": self._clock(),
            })
            self._transactions[transaction_id] = updated
            self._audit.log(AuditEventBuilder.reconciled_toggled(
                transaction_id, updated.reconciled,
            ))
            return updated.model_copy()

    # =========================================================================
    # BANK SYNC
    # =========================================================================

    def ingest_bank_batch(
        self,
        account_id: UUID,
        bank_transactions: Iterable[RawBankTransaction],
        advised_matches: Optional[Sequence[MatchProposal]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> IngestResult:
        """
        Merge one sync batch into the register.

        Redelivered rows are skipped, matched manual entries are converted
        in place, and the rest are inserted as settled bank transactions.
        Balances are recomputed once for the whole batch, and the batch is
        applied all-or-nothing.

        Args:
            account_id: Account being synced
            bank_transactions: Rows in the order the bank reported them
            advised_matches: Optional advisor proposals, tried before the rules
            correlation_id: Ties the audit events of one sync together

        Returns:
            IngestResult listing converted, inserted and skipped rows
        """
        with self._lock:
            account = self._require_account(account_id, operation="ingest_bank_batch")
            rows = self._validator.require_valid_batch(account_id, bank_transactions)

            existing = [t for t in self._transactions.values() if t.account_id == account_id]
            plan = self._matcher.plan(existing, rows, advised_matches)

            changes: dict[UUID, Transaction] = {}
            converted: list[Transaction] = []
            for conversion in plan.conversions:
                txn = self._matcher.convert(self._transactions[conversion.manual_id], conversion.bank)
                changes[txn.id] = txn
                converted.append(txn)

            sequence = self._next_sequence
            inserted: list[Transaction] = []
            for bank in plan.unmatched:
                txn = self._matcher.new_bank_transaction(bank, sequence)
                sequence += 1
                changes[txn.id] = txn
                inserted.append(txn)

            pending: list[_PendingNotification] = []
            if changes:
                pending = self._commit(
                    account.model_copy(),
                    changes,
                    posted=[t.id for t in converted + inserted],
                )
                self._next_sequence = sequence

            for conversion in plan.conversions:
                self._audit.log(AuditEventBuilder.transaction_converted(
                    conversion.manual_id,
                    conversion.bank.external_transaction_id,
                    conversion.method.value,
                    correlation_id,
                ))
            if plan.duplicates:
                self._audit.log(AuditEventBuilder.duplicates_skipped(
                    account_id,
                    [d.external_transaction_id for d in plan.duplicates],
                    correlation_id,
                ))
            self._audit.log(AuditEventBuilder.batch_ingested(
                account_id,
                converted=len(converted),
                inserted=len(inserted),
                duplicates=len(plan.duplicates),
                correlation_id=correlation_id,
            ))

            result = IngestResult(
                account_id=account_id,
                converted=[self._transactions[t.id].model_copy() for t in converted],
                inserted=[self._transactions[t.id].model_copy() for t in inserted],
                duplicates=list(plan.duplicates),
                current_balance=self._accounts[account_id].current_balance,
            )

        self._dispatch(pending)
        return result

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    def update_preferences(self, **changes: Any) -> LedgerPreferences:
        """
        Change alerting preferences.

        Alert arming is re-primed against current balances, so a new
        threshold never fires retroactively.
        """
        unknown = sorted(set(changes) - set(LedgerPreferences.model_fields))
        if unknown:
            raise ValidationError(f"Unknown preferences: {', '.join(unknown)}")

        with self._lock:
            try:
                updated = LedgerPreferences.model_validate({
                    **self._preferences.model_dump(),
                    **changes,
                })
            except PydanticValidationError as e:
                raise self._wrap_model_error("update_preferences", e)

            self._preferences = updated
            for account in self._accounts.values():
                self._alert_states[account.id] = self._primed_alert_state(account.current_balance)

            self._audit.log(AuditEventBuilder.preferences_updated(sorted(changes)))
            return updated.model_copy()

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """Copy of the complete ledger state."""
        with self._lock:
            return LedgerSnapshot(
                accounts=[a.model_copy() for a in self._accounts.values()],
                transactions=[t.model_copy() for t in self._transactions.values()],
                preferences=self._preferences.model_copy(),
                alert_states={k: v.model_copy() for k, v in self._alert_states.items()},
                active_account_id=self._active_account_id,
                next_sequence=self._next_sequence,
            )

    def save(self) -> None:
        """Persist the current state through the configured repository."""
        if self._repository is None:
            raise LedgerError("No repository configured for this ledger")
        snapshot = self.snapshot()
        self._repository.save(snapshot)
        self._audit.log(AuditEventBuilder.state_saved(
            len(snapshot.accounts), len(snapshot.transactions),
        ))

    def restore(self, snapshot: Optional[LedgerSnapshot] = None) -> bool:
        """
        Replace the in-memory state with a saved one.

        Balances are recomputed from the restored transactions. No
        notifications fire: historical transactions are never re-announced.

        Args:
            snapshot: State to restore; loaded from the repository if None

        Returns:
            False if there was nothing to restore
        """
        if snapshot is None:
            if self._repository is None:
                raise LedgerError("No repository configured for this ledger")
            snapshot = self._repository.load()
            if snapshot is None:
                return False

        accounts = {a.id: a.model_copy() for a in snapshot.accounts}
        transactions: dict[UUID, Transaction] = {}
        for txn in sorted(snapshot.transactions, key=lambda t: t.sequence):
            if txn.account_id not in accounts:
                raise CorruptStateError(
                    f"Transaction {txn.id} references unknown account {txn.account_id}"
                )
            transactions[txn.id] = txn.model_copy()

        for account in accounts.values():
            self._calculator.recompute(account, transactions.values())

        alert_states = {}
        for account in accounts.values():
            saved = snapshot.alert_states.get(account.id)
            alert_states[account.id] = (
                saved.model_copy() if saved
                else self._primed_alert_state(account.current_balance, snapshot.preferences)
            )

        active = snapshot.active_account_id
        if active not in accounts:
            active = next(iter(accounts), None)

        highest = max((t.sequence for t in transactions.values()), default=0)

        with self._lock:
            self._accounts = accounts
            self._transactions = transactions
            self._preferences = snapshot.preferences.model_copy()
            self._alert_states = alert_states
            self._active_account_id = active
            self._next_sequence = max(snapshot.next_sequence, highest + 1)

        self._audit.log(AuditEventBuilder.state_restored(len(accounts), len(transactions)))
        return True

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _require_account(self, account_id: UUID, operation: Optional[str] = None) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            if operation:
                self._audit.log_rejected(operation, f"Unknown account {account_id}", account_id)
            raise UnknownAccountError(account_id)
        return account

    def _require_transaction(self, transaction_id: UUID) -> Transaction:
        txn = self._transactions.get(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return txn

    def _opening_entry(self, account_id: UUID) -> Optional[Transaction]:
        for txn in self._transactions.values():
            if txn.account_id == account_id and txn.is_opening_balance:
                return txn
        return None

    def _wrap_model_error(self, operation: str, error: PydanticValidationError) -> ValidationError:
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in item["loc"]) or operation,
                issue_type=item["type"],
                message=item["msg"],
                severity="error",
            )
            for item in error.errors()
        ]
        self._audit.log_rejected(operation, "; ".join(i.message for i in issues))
        return ValidationError(f"Invalid {operation}", issues)

    def _commit(
        self,
        account: Account,
        changes: dict[UUID, Transaction],
        removed: Iterable[UUID] = (),
        posted: Sequence[UUID] = (),
    ) -> list[_PendingNotification]:
        """
        Apply changes to a working copy, recompute, then swap it in.

        Must be called with the lock held. Returns the notifications the
        change produced, for dispatch after the lock is released.
        """
        working: dict[UUID, Transaction] = {}
        for txn_id, txn in self._transactions.items():
            working[txn_id] = txn.model_copy() if txn.account_id == account.id else txn
        for txn_id in removed:
            working.pop(txn_id, None)
        # Replacements keep their store position; new ids append
        working.update(changes)

        self._calculator.recompute(account, working.values())

        self._transactions = working
        self._accounts[account.id] = account

        posted_txns = [working[t] for t in posted]
        pending = self._posting_notifications(posted_txns)
        pending.extend(self._balance_alerts(account.id, posted_txns))
        return pending

    def _is_recent(self, txn: Transaction) -> bool:
        cutoff = self._clock() - dt.timedelta(hours=self._preferences.recent_window_hours)
        return txn.date >= cutoff.date()

    def _posting_notifications(self, posted: list[Transaction]) -> list[_PendingNotification]:
        pending = []
        for txn in posted:
            if not txn.is_bank or not self._is_recent(txn):
                continue
            if txn.amount > 0 and self._preferences.deposits_enabled:
                pending.append(_PendingNotification(
                    "deposit", (txn.amount, txn.payee, txn.running_balance),
                ))
            elif txn.amount < 0 and self._preferences.debits_enabled:
                pending.append(_PendingNotification(
                    "debit", (abs(txn.amount), txn.payee, txn.running_balance),
                ))
        return pending

    def _primed_alert_state(
        self,
        balance: Decimal,
        preferences: Optional[LedgerPreferences] = None,
    ) -> BalanceAlertState:
        """Arm each alert only if the balance is currently above its threshold."""
        threshold = (preferences or self._preferences).low_balance_threshold
        return BalanceAlertState(
            low_balance_armed=balance > threshold,
            overdraft_armed=balance >= 0,
        )

    def _balance_alerts(
        self,
        account_id: UUID,
        posted: list[Transaction],
    ) -> list[_PendingNotification]:
        """
        Edge-triggered low-balance and overdraft alerts.

        Checked at the running balance of each recent bank posting, in
        register order. An alert fires when the balance crosses from above
        its threshold to at-or-below it, then stays quiet until a later
        posting finds the balance recovered. Overdraft takes precedence over
        low balance.
        """
        state = self._alert_states.setdefault(account_id, BalanceAlertState())
        threshold = self._preferences.low_balance_threshold
        enabled = self._preferences.balance_alerts_enabled
        pending = []

        recent = [t for t in posted if t.is_bank and self._is_recent(t)]
        for txn in sorted(recent, key=register_order_key):
            balance = txn.running_balance
            if balance < 0:
                if state.overdraft_armed and enabled:
                    pending.append(_PendingNotification("overdraft", (balance,)))
                state.overdraft_armed = False
                state.low_balance_armed = False
                continue

            state.overdraft_armed = True
            if balance <= threshold:
                if state.low_balance_armed and enabled:
                    pending.append(_PendingNotification("low_balance", (balance, threshold)))
                state.low_balance_armed = False
            else:
                state.low_balance_armed = True
        return pending

    def _dispatch(self, pending: list[_PendingNotification]) -> None:
        """Deliver notifications. Failures are logged and audited only."""
        if self._notifier is None:
            return

        handlers = {
            "deposit": self._notifier.notify_deposit,
            "debit": self._notifier.notify_debit,
            "low_balance": self._notifier.notify_low_balance,
            "overdraft": self._notifier.notify_overdraft,
        }
        for notification in pending:
            try:
                handlers[notification.kind](*notification.args)
            except Exception as e:
                self._logger.warning(
                    "notification_failed",
                    kind=notification.kind,
                    error=str(e),
                )
                self._audit.log_notification_failed(notification.kind, str(e))
                continue
            self._audit.log_notification(
                notification.kind,
                **dict(zip(_ARG_NAMES[notification.kind], notification.args)),
            )


_ARG_NAMES = {
    "deposit": ("amount", "payee", "new_balance"),
    "debit": ("amount", "payee", "new_balance"),
    "low_balance": ("balance", "threshold"),
    "overdraft": ("balance",),
}
