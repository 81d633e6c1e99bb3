"""Tests for notification dispatch isolation."""

import logging
from datetime import date
from decimal import Decimal

from condo_finance.models import Payment, PaymentKind, PaymentStatus
from condo_finance.services.notification_service import LoggingNotifier, NotificationService


class ExplodingNotifier:
    def payment_overdue(self, payment):
        raise ConnectionError("smtp unreachable")

    def payment_registered(self, payment):
        raise ConnectionError("smtp unreachable")


def make_payment(**overrides) -> Payment:
    values = dict(
        id=7,
        description="Condo fee January",
        kind=PaymentKind.REVENUE,
        status=PaymentStatus.OVERDUE,
        base_value=Decimal("100.00"),
        final_value=Decimal("102.33"),
        due_date=date(2024, 1, 10),
    )
    values.update(overrides)
    return Payment(**values)


class TestNotificationService:
    def test_failing_notifier_does_not_raise(self, caplog):
        service = NotificationService(ExplodingNotifier())

        with caplog.at_level(logging.ERROR):
            delivered = service.payment_overdue(make_payment())

        assert delivered is False
        assert "payment_overdue" in caplog.text
        assert "smtp unreachable" in caplog.text

    def test_successful_dispatch(self):
        received = []

        class Recorder:
            def payment_overdue(self, payment):
                received.append(("overdue", payment.id))

            def payment_registered(self, payment):
                received.append(("registered", payment.id))

        service = NotificationService(Recorder())

        assert service.payment_registered(make_payment(status=PaymentStatus.PAID)) is True
        assert received == [("registered", 7)]

    def test_default_notifier_logs_amounts(self, caplog):
        service = NotificationService()
        assert isinstance(service.notifier, LoggingNotifier)

        with caplog.at_level(logging.INFO, logger="condo_finance.services.notification_service"):
            service.payment_overdue(make_payment())

        assert "Condo fee January" in caplog.text
        assert "102,33" in caplog.text
