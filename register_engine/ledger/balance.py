"""
Running Balance Calculator

DESIGN DECISION: Balances are recomputed from scratch on every write.
Running balances are derived values; the only authoritative inputs are the
account's starting balance and the transactions' amounts and dates.
Recompute is O(n log n) and personal registers are small, so
recompute-on-write is the consistency model.

ORDERING:
1. The opening-balance entry (if any) comes first, whatever its date
2. Everything else by date ascending
3. Same-date entries by creation sequence, then id

The order depends only on the transaction set, never on list order,
so repeated calls always agree.
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from register_engine.models.ledger import Account, Transaction


def register_order_key(txn: Transaction) -> tuple:
    """Sort key placing the opening balance first, then chronological."""
    return (not txn.is_opening_balance, txn.date, txn.sequence, str(txn.id))


class BalanceCalculator:
    """Deterministic running-balance computation for one account."""

    def order(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        """Return the transactions in register order."""
        return sorted(transactions, key=register_order_key)

    def seed(
        self,
        account: Account,
        ordered: list[Transaction],
    ) -> Decimal:
        """
        Starting point for the prefix sum.

        The opening-balance entry seeds the balance when present;
        otherwise the account's starting balance does.
        """
        if ordered and ordered[0].is_opening_balance:
            return ordered[0].amount
        return account.starting_balance

    def running_balances(
        self,
        account: Account,
        transactions: Iterable[Transaction],
    ) -> list[tuple[UUID, Decimal]]:
        """
        Compute (transaction id, running balance) pairs without mutating anything.

        Only the account's own transactions are considered.
        """
        ordered = self.order(t for t in transactions if t.account_id == account.id)
        balance = self.seed(account, ordered)

        results: list[tuple[UUID, Decimal]] = []
        for txn in ordered:
            # The opening entry seeds the balance rather than contributing to it
            if not txn.is_opening_balance:
                balance += txn.amount
            results.append((txn.id, balance))
        return results

    def recompute(
        self,
        account: Account,
        transactions: Iterable[Transaction],
    ) -> Decimal:
        """
        Assign running balances in place and refresh the account balance.

        Returns:
            The account's new current balance
        """
        own = [t for t in transactions if t.account_id == account.id]
        by_id = {t.id: t for t in own}

        pairs = self.running_balances(account, own)
        for txn_id, balance in pairs:
            by_id[txn_id].running_balance = balance

        final = pairs[-1][1] if pairs else account.starting_balance
        account.current_balance = final
        return final
