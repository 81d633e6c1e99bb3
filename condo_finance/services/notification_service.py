"""Notification service for payment transition events.

Delivery (email, push) is an external collaborator plugged in through the
PaymentNotifier protocol. Dispatch is fire-and-forget: it runs after the
transition is committed and a failing notifier is logged, never re-raised,
so it can not undo a payment transition.
"""

import logging
from typing import Protocol

from condo_finance.models.payment import Payment
from condo_finance.services.locale_service import format_amount, format_day

logger = logging.getLogger(__name__)


class PaymentNotifier(Protocol):
    """Delivery channel for payment events."""

    def payment_overdue(self, payment: Payment) -> None: ...

    def payment_registered(self, payment: Payment) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the would-be messages to the log."""

    def payment_overdue(self, payment: Payment) -> None:
        logger.info(
            "Payment overdue: %s of %s was due on %s (now %s)",
            payment.description,
            format_amount(payment.base_value),
            format_day(payment.due_date),
            format_amount(payment.amount_due),
        )

    def payment_registered(self, payment: Payment) -> None:
        logger.info(
            "Payment registered: %s, %s paid on %s",
            payment.description,
            format_amount(payment.amount_due),
            format_day(payment.paid_date),
        )


class NotificationService:
    """Dispatches payment events to a notifier without propagating failures."""

    def __init__(self, notifier: PaymentNotifier | None = None):
        self.notifier = notifier or LoggingNotifier()

    def _dispatch(self, event: str, payment: Payment) -> bool:
        handler = getattr(self.notifier, event)
        try:
            handler(payment)
            return True
        except Exception as e:
            logger.error(
                f"Notification '{event}' failed for payment {payment.id}: {e}", exc_info=True
            )
            return False

    def payment_overdue(self, payment: Payment) -> bool:
        """Notify that a payment became overdue. Returns False if delivery failed."""
        return self._dispatch("payment_overdue", payment)

    def payment_registered(self, payment: Payment) -> bool:
        """Notify that a payment was settled. Returns False if delivery failed."""
        return self._dispatch("payment_registered", payment)


__all__ = ["PaymentNotifier", "LoggingNotifier", "NotificationService"]
