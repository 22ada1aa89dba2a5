"""
Notification Sink Interface

The ledger store reports bank activity and balance alerts through this
interface. Delivery (push, email, in-app banner) is the host's business.

CRITICAL: Notifications are fire-and-forget. The store ignores return
values, and a failing sink never fails or rolls back a mutation.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

import structlog


class NotificationSink(ABC):
    """Receives ledger alerts."""

    @abstractmethod
    def notify_deposit(self, amount: Decimal, payee: str, new_balance: Decimal) -> None:
        """A recent bank credit posted."""
        pass

    @abstractmethod
    def notify_debit(self, amount: Decimal, payee: str, new_balance: Decimal) -> None:
        """A recent bank debit posted."""
        pass

    @abstractmethod
    def notify_low_balance(self, balance: Decimal, threshold: Decimal) -> None:
        """The balance crossed down to or below the low-balance threshold."""
        pass

    @abstractmethod
    def notify_overdraft(self, balance: Decimal) -> None:
        """The balance crossed below zero."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes every notification to the structured log."""

    def __init__(self):
        self._logger = structlog.get_logger("register_engine.notifications")

    def notify_deposit(self, amount: Decimal, payee: str, new_balance: Decimal) -> None:
        self._logger.info(
            "deposit_received",
            amount=f"{amount:.2f}",
            payee=payee,
            balance=f"{new_balance:.2f}",
        )

    def notify_debit(self, amount: Decimal, payee: str, new_balance: Decimal) -> None:
        self._logger.info(
            "transaction_posted",
            amount=f"{abs(amount):.2f}",
            payee=payee,
            balance=f"{new_balance:.2f}",
        )

    def notify_low_balance(self, balance: Decimal, threshold: Decimal) -> None:
        self._logger.warning(
            "low_balance_warning",
            balance=f"{balance:.2f}",
            threshold=f"{threshold:.2f}",
        )

    def notify_overdraft(self, balance: Decimal) -> None:
        self._logger.warning("overdraft_alert", balance=f"{balance:.2f}")
