"""
Register Query Execution

DESIGN DECISION: Register views are DETERMINISTIC reads over the ledger
store. They never mutate and never recompute; running balances are the
ones the store last derived.

Listing order is newest first (the reverse of register order), which is
how a check register is read.
"""

from decimal import Decimal
from typing import Iterable

from register_engine.ledger.store import LedgerStore
from register_engine.models.ledger import (
    RegisterFilter,
    RegisterQuery,
    RegisterSummary,
    RegisterView,
    Transaction,
)


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class RegisterQueryExecutor:
    """
    Executes register queries against a ledger store.

    GUARANTEES:
    - Only returns transactions that exist in the store
    - Summary totals cover every matching transaction, not just the page
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    def execute(self, query: RegisterQuery) -> RegisterView:
        """
        Filter, search and page an account's register.

        Raises:
            QueryExecutionError: No account given and none is active
            UnknownAccountError: The account does not exist
        """
        account_id = query.account_id
        if account_id is None:
            active = self._store.active_account
            if active is None:
                raise QueryExecutionError("No account selected and no active account")
            account_id = active.id

        account = self._store.get_account(account_id)
        ordered = self._store.transactions(account_id)

        matching = [t for t in ordered if self._matches(t, query)]
        matching.reverse()

        page = matching[query.offset:query.offset + query.limit]

        return RegisterView(
            account_id=account_id,
            transactions=page,
            total_matching=len(matching),
            current_balance=account.current_balance,
            summary=summarize(matching),
        )

    def _matches(self, txn: Transaction, query: RegisterQuery) -> bool:
        if txn.is_opening_balance and not query.include_opening_balance:
            return False

        if query.filter_type == RegisterFilter.MANUAL and not txn.is_manual:
            return False
        if query.filter_type == RegisterFilter.BANK and not txn.is_bank:
            return False
        if query.filter_type == RegisterFilter.RECONCILED and not txn.reconciled:
            return False
        if query.filter_type == RegisterFilter.UNRECONCILED and txn.reconciled:
            return False

        if query.date_from and txn.date < query.date_from:
            return False
        if query.date_to and txn.date > query.date_to:
            return False

        if query.search:
            needle = query.search.lower()
            haystack = f"{txn.payee} {txn.notes or ''}".lower()
            if needle not in haystack:
                return False

        return True


def summarize(transactions: Iterable[Transaction]) -> RegisterSummary:
    """Income, expenses and counts. The opening balance is not income."""
    income = Decimal("0")
    expenses = Decimal("0")
    count = unreconciled = manual = 0

    for txn in transactions:
        if txn.is_opening_balance:
            continue
        count += 1
        if txn.amount > 0:
            income += txn.amount
        else:
            expenses += -txn.amount
        if not txn.reconciled:
            unreconciled += 1
        if txn.is_manual:
            manual += 1

    return RegisterSummary(
        income=income,
        expenses=expenses,
        net=income - expenses,
        transaction_count=count,
        unreconciled_count=unreconciled,
        manual_count=manual,
    )
