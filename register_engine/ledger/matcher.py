"""
Transaction Matcher

Decides which incoming bank transactions correspond to existing manual
entries, and how a matched manual entry is converted.

MATCHING PREDICATE (manual m, bank b), all required:
1. m is manual and belongs to b's account
2. |date(b) - date(m)| <= date window (3 days)
3. |amount(b) - amount(m)| < amount tolerance (one cent)
4. Payees agree: the first word of one payee appears in the other
   (case-insensitive), or the Jaccard similarity of their word sets
   exceeds the threshold (0.6)

The full predicate is applied to the whole batch first. Afterwards, a bank
transaction still unmatched with exactly one unconsumed manual entry passing
1-3 is matched (MatchMethod.AMOUNT_DATE) unless `require_payee_match` is
set. Bank descriptors rarely resemble what users type ("SHELL OIL #4521"
vs "Gas Station"), and a unique amount/date pair is strong evidence on its own.
Ambiguous amount/date pairs are never guessed.

TIE-BREAK: bank transactions are processed in the order received; each takes
the FIRST unconsumed manual entry (store order) that qualifies. This greedy
first-fit is not a globally optimal assignment and can mis-pair when several
manual entries are equally plausible.

Everything here is pure: the matcher never touches the ledger store.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from register_engine.config import ReconciliationSettings, get_settings
from register_engine.models.ledger import (
    Conversion,
    MatchMethod,
    MatchProposal,
    RawBankTransaction,
    ReconciliationPlan,
    Transaction,
    TransactionKind,
    TransactionSource,
)


_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


# =============================================================================
# PAYEE COMPARISON
# =============================================================================

def payee_words(payee: str) -> set[str]:
    """Lowercase word set with everything but letters, digits and spaces removed."""
    return set(_NON_ALNUM.sub("", payee.lower()).split())


def first_token(payee: str) -> Optional[str]:
    """First whitespace-delimited token, lowercased."""
    parts = payee.lower().split()
    return parts[0] if parts else None


def payee_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the two payees' word sets."""
    words_a, words_b = payee_words(a), payee_words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def payees_agree(manual_payee: str, bank_payee: str, threshold: float) -> bool:
    """Payee acceptance rule for a candidate pair."""
    manual_lower, bank_lower = manual_payee.lower(), bank_payee.lower()

    manual_first = first_token(manual_payee)
    if manual_first and manual_first in bank_lower:
        return True

    bank_first = first_token(bank_payee)
    if bank_first and bank_first in manual_lower:
        return True

    return payee_similarity(manual_payee, bank_payee) > threshold


def append_conversion_marker(notes: Optional[str], marker: str) -> str:
    """Keep the user's notes and add the provenance marker after them."""
    if notes and notes.strip():
        if marker in notes:
            return notes
        return f"{notes.rstrip()} {marker}"
    return marker


# =============================================================================
# MATCHER
# =============================================================================

class TransactionMatcher:
    """
    Rule-based matcher and conversion protocol.

    Works with zero network dependency. Advisor proposals, when given,
    are validated here and converted through the same path.
    """

    def __init__(self, settings: Optional[ReconciliationSettings] = None):
        self._settings = settings or get_settings().reconciliation

    @property
    def settings(self) -> ReconciliationSettings:
        return self._settings

    # ---- predicate -----------------------------------------------------

    def within_window(self, manual: Transaction, bank: RawBankTransaction) -> bool:
        return abs((bank.date - manual.date).days) <= self._settings.date_window_days

    def amounts_equal(self, a: Decimal, b: Decimal) -> bool:
        return abs(a - b) < self._settings.amount_tolerance

    def is_candidate(self, manual: Transaction, bank: RawBankTransaction) -> bool:
        """Conditions 1-3: same account, date window, equal amount."""
        return (
            manual.source == TransactionSource.MANUAL
            and not manual.is_opening_balance
            and manual.account_id == bank.account_id
            and self.within_window(manual, bank)
            and self.amounts_equal(bank.amount, manual.amount)
        )

    def is_match(self, manual: Transaction, bank: RawBankTransaction) -> bool:
        """The full matching predicate, conditions 1-4."""
        return self.is_candidate(manual, bank) and payees_agree(
            manual.payee,
            bank.payee,
            self._settings.payee_similarity_threshold,
        )

    def accepts_proposal(self, manual: Transaction, bank: RawBankTransaction) -> bool:
        """
        Looser check for advisor proposals.

        The advisor may pair entries whose amounts differ slightly
        (tips, pending charges), but never across accounts or outside
        the date window.
        """
        return (
            manual.source == TransactionSource.MANUAL
            and not manual.is_opening_balance
            and manual.account_id == bank.account_id
            and self.within_window(manual, bank)
            and abs(bank.amount - manual.amount) <= self._settings.advisor_amount_tolerance
        )

    # ---- batch planning -----------------------------------------------

    def split_duplicates(
        self,
        existing: Iterable[Transaction],
        batch: Sequence[RawBankTransaction],
    ) -> tuple[list[RawBankTransaction], list[RawBankTransaction]]:
        """
        Separate redelivered bank transactions from fresh ones.

        A bank transaction is a redelivery when a bank-sourced record with
        the same date, amount and payee (or the same external id) already
        exists. Only existing records count; identical rows within one batch
        are all kept.
        """
        known_keys: set[tuple] = set()
        known_ids: set[str] = set()
        for txn in existing:
            if txn.source != TransactionSource.BANK:
                continue
            known_keys.add(txn.ledger_key())
            if txn.external_id:
                known_ids.add(txn.external_id)

        fresh: list[RawBankTransaction] = []
        duplicates: list[RawBankTransaction] = []
        for bank in batch:
            if bank.external_transaction_id in known_ids or bank.ledger_key() in known_keys:
                duplicates.append(bank)
            else:
                fresh.append(bank)
        return fresh, duplicates

    def manual_candidates(self, existing: Iterable[Transaction]) -> list[Transaction]:
        """Manual, unreconciled, non-opening entries in store order."""
        return [
            t for t in existing
            if t.source == TransactionSource.MANUAL
            and not t.reconciled
            and not t.is_opening_balance
        ]

    def plan(
        self,
        existing: Sequence[Transaction],
        batch: Sequence[RawBankTransaction],
        advised: Optional[Sequence[MatchProposal]] = None,
    ) -> ReconciliationPlan:
        """
        Partition a bank batch into conversions, new records and duplicates.

        Args:
            existing: The account's current transactions, in store order
            batch: Incoming bank transactions, in the order received
            advised: Optional advisor proposals, applied before the rules

        Returns:
            A disjoint ReconciliationPlan covering every batch entry
        """
        fresh, duplicates = self.split_duplicates(existing, batch)
        candidates = self.manual_candidates(existing)

        consumed_manual: set[UUID] = set()
        matched_bank: dict[int, Conversion] = {}

        if advised:
            self._apply_proposals(advised, candidates, fresh, consumed_manual, matched_bank)

        # The payee rule settles the whole batch before any amount/date fallback
        passes = [self._payee_rule_fit]
        if not self._settings.require_payee_match:
            passes.append(self._amount_date_fit)

        for fit in passes:
            for index, bank in enumerate(fresh):
                if index in matched_bank:
                    continue
                conversion = fit(bank, candidates, consumed_manual)
                if conversion is not None:
                    consumed_manual.add(conversion.manual_id)
                    matched_bank[index] = conversion

        return ReconciliationPlan(
            conversions=[matched_bank[i] for i in sorted(matched_bank)],
            unmatched=[bank for i, bank in enumerate(fresh) if i not in matched_bank],
            duplicates=duplicates,
        )

    def _payee_rule_fit(
        self,
        bank: RawBankTransaction,
        candidates: list[Transaction],
        consumed: set[UUID],
    ) -> Optional[Conversion]:
        for manual in candidates:
            if manual.id not in consumed and self.is_match(manual, bank):
                return Conversion(manual_id=manual.id, bank=bank, method=MatchMethod.PAYEE_RULE)
        return None

    def _amount_date_fit(
        self,
        bank: RawBankTransaction,
        candidates: list[Transaction],
        consumed: set[UUID],
    ) -> Optional[Conversion]:
        loose = [m for m in candidates if m.id not in consumed and self.is_candidate(m, bank)]
        if len(loose) == 1:
            return Conversion(manual_id=loose[0].id, bank=bank, method=MatchMethod.AMOUNT_DATE)
        return None

    def _apply_proposals(
        self,
        advised: Sequence[MatchProposal],
        candidates: list[Transaction],
        fresh: list[RawBankTransaction],
        consumed_manual: set[UUID],
        matched_bank: dict[int, Conversion],
    ) -> None:
        by_manual_id = {m.id: m for m in candidates}
        bank_index = {}
        for index, bank in enumerate(fresh):
            bank_index.setdefault(bank.external_transaction_id, index)

        ranked = sorted(advised, key=lambda p: p.confidence, reverse=True)
        for proposal in ranked:
            if proposal.confidence < self._settings.advisor_min_confidence:
                continue
            manual = by_manual_id.get(proposal.manual_id)
            index = bank_index.get(proposal.bank_id)
            if manual is None or index is None:
                continue
            if manual.id in consumed_manual or index in matched_bank:
                continue
            bank = fresh[index]
            if not self.accepts_proposal(manual, bank):
                continue
            consumed_manual.add(manual.id)
            matched_bank[index] = Conversion(
                manual_id=manual.id,
                bank=bank,
                method=MatchMethod.ADVISOR,
            )

    # ---- conversion ----------------------------------------------------

    def convert(self, manual: Transaction, bank: RawBankTransaction) -> Transaction:
        """
        Promote a manual entry to a bank-sourced record.

        The id and creation sequence are kept. Amount, date and payee take
        the bank's authoritative values; reconciled is reset so the user can
        still acknowledge the match; notes keep the user's text plus the
        conversion marker.
        """
        return manual.model_copy(update={
            "source": TransactionSource.BANK,
            "payee": bank.payee,
            "amount": bank.amount,
            "date": bank.date,
            "reconciled": False,
            "notes": append_conversion_marker(manual.notes, self._settings.conversion_marker),
            "external_id": bank.external_transaction_id,
            "updated_at": datetime.now(timezone.utc),
        })

    def new_bank_transaction(self, bank: RawBankTransaction, sequence: int) -> Transaction:
        """An unmatched bank transaction arrives settled."""
        return Transaction(
            account_id=bank.account_id,
            date=bank.date,
            payee=bank.payee,
            amount=bank.amount,
            source=TransactionSource.BANK,
            kind=TransactionKind.REGULAR,
            reconciled=True,
            external_id=bank.external_transaction_id,
            sequence=sequence,
        )
