"""
Main Orchestrator for the Register Engine

This module ties together all the components and defines the
end-to-end flows for:
1. Bank sync (fetch → advise → ingest → save)
2. Payee suggestions while the user types a manual entry

DESIGN DECISION: The orchestrator enforces the boundaries:
- The ledger store is only touched once a complete batch is in hand
- The advisor only ever suggests; the store decides
- Every step is audited

A sync that fails, times out or is cancelled while awaiting the bank
leaves the store exactly as it was.
"""

import asyncio
import datetime as dt
from typing import Callable, Optional
from uuid import UUID

import structlog

from register_engine.agents import GeminiCompletionTransport, MatchAdvisor
from register_engine.audit import AuditLogger, configure_logging, create_correlation_id
from register_engine.config import SyncSettings, get_settings
from register_engine.ledger import LedgerError, LedgerStore
from register_engine.models.ledger import Account, IngestResult, MatchProposal, RawBankTransaction
from register_engine.queries import RegisterQueryExecutor
from register_engine.services.notifications import LoggingNotificationSink, NotificationSink
from register_engine.services.storage import (
    InMemoryAuditStorage,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    KeyValueStorageInterface,
    LedgerRepository,
)
from register_engine.services.sync import BankSyncSource, SyncTransportError


logger = structlog.get_logger("register_engine.orchestrator")


class ReconciliationFlow:
    """
    Orchestrates a bank sync for one account.

    Flow:
    1. Fetch → Await the bank sync source (bounded by a timeout)
    2. Advise → Optionally ask the advisor about what the rules leave open
    3. Ingest → One atomic ingest_bank_batch call
    4. Save → Persist, when the store has a repository

    Steps 1 and 2 never touch the store. Retrying a failed sync is the
    caller's decision.
    """

    def __init__(
        self,
        store: LedgerStore,
        sync_source: Optional[BankSyncSource] = None,
        advisor: Optional[MatchAdvisor] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
        clock: Optional[Callable[[], dt.date]] = None,
    ):
        self._store = store
        self._sync_source = sync_source
        self._advisor = advisor
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().sync
        self._today = clock or dt.date.today

    def _resolve_account(self, account_id: Optional[UUID]) -> Account:
        if account_id is not None:
            return self._store.get_account(account_id)
        active = self._store.active_account
        if active is None:
            raise LedgerError("No account selected and no active account")
        return active

    async def _fetch(self, account: Account, correlation_id: UUID) -> list[RawBankTransaction]:
        if self._sync_source is None:
            error = SyncTransportError("No bank sync source configured")
            self._audit_logger.log_sync_failed(account.id, str(error), correlation_id)
            raise error

        end = self._today()
        start = end - dt.timedelta(days=self._settings.lookback_days)

        try:
            return await asyncio.wait_for(
                self._sync_source.fetch_transactions(account, start, end),
                timeout=self._settings.timeout_seconds,
            )
        except asyncio.TimeoutError:
            message = f"Bank sync timed out after {self._settings.timeout_seconds}s"
            self._audit_logger.log_sync_failed(account.id, message, correlation_id)
            raise SyncTransportError(message)
        except SyncTransportError as e:
            self._audit_logger.log_sync_failed(account.id, str(e), correlation_id)
            raise
        except Exception as e:
            self._audit_logger.log_sync_failed(account.id, str(e), correlation_id)
            raise SyncTransportError(f"Bank sync failed: {e}") from e

    async def _advise(
        self,
        account_id: UUID,
        batch: list[RawBankTransaction],
    ) -> list[MatchProposal]:
        """Ask the advisor only about what the rule-based plan leaves unsettled."""
        if self._advisor is None or not self._advisor.enabled:
            return []

        plan = self._store.plan_bank_batch(account_id, batch)
        consumed = {c.manual_id for c in plan.conversions}
        open_manual = [
            t for t in self._store.transactions(account_id)
            if t.is_manual and not t.reconciled and not t.is_opening_balance
            and t.id not in consumed
        ]
        if not open_manual or not plan.unmatched:
            return []

        return await self._advisor.propose_matches(open_manual, plan.unmatched)

    async def sync_account(
        self,
        account_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
        use_advisor: bool = True,
    ) -> IngestResult:
        """
        Fetch and ingest the bank's recent transactions.

        Args:
            account_id: Account to sync (defaults to the active account)
            correlation_id: Ties the audit events of this sync together
            use_advisor: Consult the advisor for unmatched rows

        Returns:
            The ingest result

        Raises:
            SyncTransportError: The source failed, timed out or is missing.
                The store is unchanged.
        """
        correlation_id = correlation_id or create_correlation_id()
        account = self._resolve_account(account_id)

        batch = await self._fetch(account, correlation_id)

        advised: list[MatchProposal] = []
        if use_advisor:
            advised = await self._advise(account.id, batch)

        result = self._store.ingest_bank_batch(
            account.id,
            batch,
            advised_matches=advised or None,
            correlation_id=correlation_id,
        )

        if self._store.can_persist:
            self._store.save()

        logger.info(
            "sync_completed",
            account_id=str(account.id),
            converted=len(result.converted),
            inserted=len(result.inserted),
            duplicates=len(result.duplicates),
            correlation_id=str(correlation_id),
        )
        return result

    def recent_bank_payees(self, account_id: UUID) -> list[str]:
        """Distinct bank payees, most recent first."""
        seen: dict[str, str] = {}
        for txn in reversed(self._store.transactions(account_id)):
            if txn.is_bank and txn.payee.lower() not in seen:
                seen[txn.payee.lower()] = txn.payee
            if len(seen) >= self._settings.recent_payee_limit:
                break
        return list(seen.values())

    async def suggest_payees(self, account_id: Optional[UUID], entered_text: str) -> list[str]:
        """
        Up to three payee suggestions for a manual entry being typed.

        Returns an empty list when the advisor is unavailable.
        """
        if self._advisor is None:
            return []
        account = self._resolve_account(account_id)
        return await self._advisor.suggest_payee(entered_text, self.recent_bank_payees(account.id))


def create_engine_components(
    use_file_storage: bool = True,
    state_path: Optional[str] = None,
    sync_source: Optional[BankSyncSource] = None,
    notifier: Optional[NotificationSink] = None,
    enable_advisor: bool = True,
) -> tuple[LedgerStore, ReconciliationFlow, RegisterQueryExecutor]:
    """
    Factory function to create all engine components.

    Args:
        use_file_storage: Persist to a JSON file. Set to False for an
                    in-memory ledger (testing).
        state_path: JSON state file (defaults from storage settings)
        sync_source: Bank data source for sync_account
        notifier: Notification sink (defaults to structured logging)
        enable_advisor: Build the Gemini advisor if it is configured

    Returns:
        (store, reconciliation_flow, query_executor)
    """
    configure_logging(get_settings().app.log_level)
    audit_logger = AuditLogger(InMemoryAuditStorage())

    storage: KeyValueStorageInterface
    if use_file_storage:
        storage = JsonFileKeyValueStorage(state_path)
    else:
        storage = InMemoryKeyValueStorage()

    store = LedgerStore(
        notifier=notifier or LoggingNotificationSink(),
        repository=LedgerRepository(storage),
        audit_logger=audit_logger,
    )
    store.restore()

    advisor = None
    if enable_advisor:
        try:
            gemini = get_settings().gemini
            advisor = MatchAdvisor(
                GeminiCompletionTransport(gemini),
                timeout_seconds=gemini.timeout_seconds,
                audit_logger=audit_logger,
            )
        except Exception as e:
            # Advisor not configured - rule-based matching only
            logger.warning("advisor_not_configured", error=str(e))
            advisor = None

    flow = ReconciliationFlow(
        store,
        sync_source=sync_source,
        advisor=advisor,
        audit_logger=audit_logger,
    )

    return store, flow, RegisterQueryExecutor(store)
