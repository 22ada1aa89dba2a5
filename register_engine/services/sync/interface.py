"""
Bank Sync Source Interface

DESIGN DECISION: The engine is agnostic to how bank data arrives
(REST polling, webhook, file import). A sync source only has to return
one batch of RawBankTransaction rows per call.

Sources are asynchronous and cross a network boundary. The ledger store
never awaits them; the sync workflow awaits the source first and only then
hands the complete batch to the store.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from register_engine.models.ledger import Account, RawBankTransaction


class SyncTransportError(Exception):
    """The bank data source failed to respond or returned unusable data."""
    pass


class BankSyncSource(ABC):
    """Produces bank transaction batches for an account."""

    @abstractmethod
    async def fetch_transactions(
        self,
        account: Account,
        start_date: date,
        end_date: date,
    ) -> list[RawBankTransaction]:
        """
        Fetch the bank's transactions for a date range.

        Args:
            account: The linked account (carries the bank link token)
            start_date: First date to include
            end_date: Last date to include

        Returns:
            Transactions in the order the bank reported them

        Raises:
            SyncTransportError: If the source cannot deliver a batch
        """
        pass


PlaidFetcher = Callable[[str, date, date], Awaitable[list[dict[str, Any]]]]


class PlaidPayloadSource(BankSyncSource):
    """
    Adapts a Plaid-style fetch coroutine to BankSyncSource.

    The host owns the HTTP client; it passes a coroutine taking
    (access_token, start_date, end_date) and returning Plaid transaction
    dicts. Rows for other bank accounts under the same link are dropped
    when `plaid_account_id` is set.
    """

    def __init__(self, fetch: PlaidFetcher, plaid_account_id: str | None = None):
        self._fetch = fetch
        self._plaid_account_id = plaid_account_id

    async def fetch_transactions(
        self,
        account: Account,
        start_date: date,
        end_date: date,
    ) -> list[RawBankTransaction]:
        if not account.bank_link_token:
            raise SyncTransportError(f"Account {account.id} is not linked to a bank")

        payloads = await self._fetch(account.bank_link_token, start_date, end_date)

        rows: list[RawBankTransaction] = []
        for payload in payloads:
            if self._plaid_account_id and payload.get("account_id") != self._plaid_account_id:
                continue
            try:
                rows.append(RawBankTransaction.from_plaid(payload, account.id))
            except (KeyError, ValueError, TypeError, PydanticValidationError) as e:
                raise SyncTransportError(f"Malformed bank transaction payload: {e}")
        return rows
