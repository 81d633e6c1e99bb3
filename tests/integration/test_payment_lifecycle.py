"""Integration tests for the payment lifecycle against a real session."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from condo_finance.errors import (
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from condo_finance.models import AuditLog, Payment, PaymentKind, PaymentStatus
from condo_finance.services.payment_service import PaymentService

BRASILIA = timezone(timedelta(hours=-3))


def new_fee(service, condominium, due=date(2024, 1, 10), value="100.00", **kwargs):
    return service.create_payment(
        description=kwargs.pop("description", "Condo fee"),
        base_value=Decimal(value),
        due_date=due,
        kind=kwargs.pop("kind", PaymentKind.REVENUE),
        condominium_id=condominium.id,
        **kwargs,
    )


def audit_actions(db_session, payment_id):
    stmt = (
        select(AuditLog.action)
        .where(AuditLog.entity_type == "payment", AuditLog.entity_id == payment_id)
        .order_by(AuditLog.id)
    )
    return list(db_session.execute(stmt).scalars().all())


def payment_count(db_session):
    return db_session.execute(select(func.count(Payment.id))).scalar()


class TestCreatePayment:
    def test_creates_pending_payment(self, db_session, payment_service, condominium, units):
        payment = new_fee(payment_service, condominium, unit_id=units[0].id, actor_id=9)

        assert payment.id is not None
        assert payment.status == PaymentStatus.PENDING
        assert payment.final_value == Decimal("100.00")
        assert payment.interest_amount == Decimal("0")
        assert payment.penalty_amount == Decimal("0")
        assert payment.created_by == 9
        assert audit_actions(db_session, payment.id) == ["create"]

    def test_unit_only_payment_inherits_condominium(self, payment_service, condominium, units):
        payment = payment_service.create_payment(
            "Water", Decimal("40"), date(2024, 2, 5), "revenue", unit_id=units[1].id
        )
        assert payment.condominium_id == condominium.id

    def test_invalid_fields_are_rejected_before_any_write(self, db_session, payment_service, condominium):
        with pytest.raises(ValidationError) as exc:
            payment_service.create_payment("", Decimal("-1"), None, "revenue", condominium_id=condominium.id)

        assert set(exc.value.fields) == {"description", "base_value", "due_date"}
        assert payment_count(db_session) == 0

    def test_unknown_references(self, payment_service, condominium):
        with pytest.raises(NotFoundError, match="Condominium 999"):
            payment_service.create_payment("Fee", Decimal("10"), date(2024, 1, 1), "revenue", condominium_id=999)
        with pytest.raises(NotFoundError, match="Unit 999"):
            new_fee(payment_service, condominium, unit_id=999)

    def test_unit_from_another_condominium(self, payment_service, other_condominium, units):
        with pytest.raises(ValidationError) as exc:
            new_fee(payment_service, other_condominium, unit_id=units[0].id)
        assert exc.value.fields == ["unit_id"]


class TestMarkOverdue:
    def test_accrues_interest_and_penalty(self, payment_service, condominium, notifier):
        payment = new_fee(payment_service, condominium)

        overdue = payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        assert overdue.status == PaymentStatus.OVERDUE
        assert overdue.penalty_amount == Decimal("2.00")
        assert overdue.interest_amount == Decimal("0.33")
        assert overdue.final_value == Decimal("102.33")
        assert overdue.charges_as_of == date(2024, 1, 20)
        assert notifier.events == [("overdue", payment.id)]

    def test_defaults_to_clock_today(self, payment_service, condominium, today):
        payment = new_fee(payment_service, condominium)
        assert payment_service.mark_overdue(payment.id).charges_as_of == today

    def test_same_day_is_idempotent(self, db_session, payment_service, condominium, notifier):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        again = payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        assert again.final_value == Decimal("102.33")
        assert notifier.events == [("overdue", payment.id)]
        assert audit_actions(db_session, payment.id) == ["create", "mark_overdue"]

    def test_already_overdue_on_another_day(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        with pytest.raises(InvalidTransitionError):
            payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 25))

    def test_not_past_due(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)

        with pytest.raises(InvalidTransitionError, match="not past due"):
            payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 10))
        assert payment_service.get_payment(payment.id).status == PaymentStatus.PENDING

    def test_unknown_payment(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.mark_overdue(12345, as_of=date(2024, 1, 20))

    def test_timestamp_is_reduced_to_its_utc_day(self, db_session, payment_service, condominium):
        payment = new_fee(payment_service, condominium)

        overdue = payment_service.mark_overdue(
            payment.id, as_of=datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
        )
        again = payment_service.mark_overdue(
            payment.id, as_of=datetime(2024, 1, 20, 18, 30, tzinfo=timezone.utc)
        )

        assert overdue.charges_as_of == date(2024, 1, 20)
        assert again.final_value == Decimal("102.33")
        assert audit_actions(db_session, payment.id) == ["create", "mark_overdue"]

    def test_local_evening_timestamp_counts_as_next_utc_day(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)

        overdue = payment_service.mark_overdue(
            payment.id, as_of=datetime(2024, 1, 20, 23, 0, tzinfo=BRASILIA)
        )

        assert overdue.charges_as_of == date(2024, 1, 21)
        assert overdue.interest_amount == Decimal("0.37")


class TestRegisterPayment:
    def test_late_settlement_keeps_final_value(self, payment_service, condominium, notifier):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        paid = payment_service.register_payment(
            payment.id, paid_date=date(2024, 1, 25), payment_method="pix", receipt_reference="R-1"
        )

        assert paid.status == PaymentStatus.PAID
        assert paid.paid_date == date(2024, 1, 25)
        assert paid.final_value == Decimal("102.33")
        assert paid.payment_method == "pix"
        assert notifier.events[-1] == ("registered", payment.id)

    def test_on_time_settlement_drops_charges(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        paid = payment_service.register_payment(payment.id, paid_date=date(2024, 1, 10))

        assert paid.final_value == Decimal("100.00")
        assert paid.interest_amount == Decimal("0")
        assert paid.penalty_amount == Decimal("0")

    def test_pending_payment_defaults_paid_date_to_today(self, payment_service, condominium, today):
        payment = new_fee(payment_service, condominium, due=date(2024, 1, 31))

        paid = payment_service.register_payment(payment.id)

        assert paid.paid_date == today
        assert paid.final_value == Decimal("100.00")

    def test_paid_timestamp_on_due_day_is_on_time(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        paid = payment_service.register_payment(
            payment.id, paid_date=datetime(2024, 1, 10, 15, 45, tzinfo=timezone.utc)
        )

        assert paid.paid_date == date(2024, 1, 10)
        assert paid.final_value == Decimal("100.00")

    def test_terminal_states_reject_settlement(self, payment_service, condominium):
        paid = new_fee(payment_service, condominium)
        payment_service.register_payment(paid.id, paid_date=date(2024, 1, 5))
        canceled = new_fee(payment_service, condominium)
        payment_service.cancel_payment(canceled.id)

        with pytest.raises(InvalidTransitionError, match="already paid"):
            payment_service.register_payment(paid.id, paid_date=date(2024, 1, 6))
        with pytest.raises(InvalidTransitionError, match="canceled"):
            payment_service.register_payment(canceled.id)
        assert payment_service.get_payment(paid.id).paid_date == date(2024, 1, 5)


class TestCancelPayment:
    def test_cancel_overdue_keeps_final_value(self, db_session, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        canceled = payment_service.cancel_payment(payment.id, reason="Agreement with owner", actor_id=3)

        assert canceled.status == PaymentStatus.CANCELED
        assert canceled.final_value == Decimal("102.33")
        assert canceled.notes == "Agreement with owner"
        assert canceled.updated_by == 3
        assert audit_actions(db_session, payment.id)[-1] == "cancel"

    def test_cancel_twice(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.cancel_payment(payment.id)

        with pytest.raises(InvalidTransitionError):
            payment_service.cancel_payment(payment.id)

    def test_cannot_mark_canceled_payment_overdue(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.cancel_payment(payment.id)

        with pytest.raises(InvalidTransitionError):
            payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))


class TestEditPayment:
    def test_unknown_field(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)

        with pytest.raises(ValidationError) as exc:
            payment_service.edit_payment(payment.id, {"final_value": Decimal("1")})
        assert exc.value.fields == ["final_value"]

    def test_base_value_of_pending_resets_final_value(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)

        edited = payment_service.edit_payment(payment.id, {"base_value": "150.00", "notes": "adjusted"})

        assert edited.base_value == Decimal("150.00")
        assert edited.final_value == Decimal("150.00")
        assert edited.notes == "adjusted"

    def test_base_value_of_overdue_recomputes_charges(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        edited = payment_service.edit_payment(
            payment.id, {"base_value": Decimal("200.00")}, as_of=date(2024, 1, 20)
        )

        assert edited.status == PaymentStatus.OVERDUE
        assert edited.penalty_amount == Decimal("4.00")
        assert edited.interest_amount == Decimal("0.67")
        assert edited.final_value == Decimal("204.67")

    def test_status_to_overdue_uses_new_due_date(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium, due=date(2024, 2, 10))

        edited = payment_service.edit_payment(
            payment.id,
            {"status": "overdue", "due_date": date(2024, 1, 10)},
            as_of=date(2024, 1, 20),
        )

        assert edited.status == PaymentStatus.OVERDUE
        assert edited.due_date == date(2024, 1, 10)
        assert edited.final_value == Decimal("102.33")

    def test_status_to_overdue_before_due_date_has_no_charges(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium, due=date(2024, 1, 25))

        edited = payment_service.edit_payment(payment.id, {"status": "overdue"}, as_of=date(2024, 1, 20))

        assert edited.status == PaymentStatus.OVERDUE
        assert edited.final_value == Decimal("100.00")

    def test_status_to_paid_applies_register_semantics(self, payment_service, condominium, notifier):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        edited = payment_service.edit_payment(
            payment.id, {"status": "paid", "paid_date": date(2024, 1, 22)}
        )

        assert edited.status == PaymentStatus.PAID
        assert edited.paid_date == date(2024, 1, 22)
        assert edited.final_value == Decimal("102.33")
        assert notifier.events[-1] == ("registered", payment.id)

    def test_late_settlement_with_new_base_value_recomputes_charges(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        edited = payment_service.edit_payment(
            payment.id,
            {"status": "paid", "base_value": Decimal("200.00"), "paid_date": date(2024, 1, 20)},
        )

        assert edited.status == PaymentStatus.PAID
        assert edited.penalty_amount == Decimal("4.00")
        assert edited.interest_amount == Decimal("0.67")
        assert edited.final_value == Decimal("204.67")
        assert edited.final_value == edited.base_value + edited.interest_amount + edited.penalty_amount
        assert edited.charges_as_of == date(2024, 1, 20)

    def test_settlement_before_new_due_date_drops_charges(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        edited = payment_service.edit_payment(
            payment.id,
            {"status": "paid", "due_date": date(2024, 1, 25), "paid_date": date(2024, 1, 22)},
        )

        assert edited.final_value == Decimal("100.00")
        assert edited.interest_amount == Decimal("0")
        assert edited.penalty_amount == Decimal("0")

    def test_timestamps_in_edits_are_reduced_to_days(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium, due=date(2024, 2, 10))

        edited = payment_service.edit_payment(
            payment.id,
            {"status": "overdue", "due_date": datetime(2024, 1, 10, 9, 0)},
            as_of=datetime(2024, 1, 20, 8, 0, tzinfo=timezone.utc),
        )

        assert edited.due_date == date(2024, 1, 10)
        assert edited.charges_as_of == date(2024, 1, 20)
        assert edited.final_value == Decimal("102.33")

    def test_status_back_to_pending_is_rejected(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        with pytest.raises(InvalidTransitionError):
            payment_service.edit_payment(payment.id, {"status": "pending"})

    def test_financial_fields_frozen_after_payment(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.register_payment(payment.id, paid_date=date(2024, 1, 9))

        with pytest.raises(InvalidTransitionError):
            payment_service.edit_payment(payment.id, {"base_value": "90.00"})

        edited = payment_service.edit_payment(payment.id, {"receipt_reference": "scan-001.pdf"})
        assert edited.receipt_reference == "scan-001.pdf"
        assert edited.base_value == Decimal("100.00")

    def test_paid_date_only_on_paid_payments(self, payment_service, condominium):
        payment = new_fee(payment_service, condominium)

        with pytest.raises(ValidationError):
            payment_service.edit_payment(payment.id, {"paid_date": date(2024, 1, 9)})


class TestDeleteAndList:
    def test_delete_is_audited(self, db_session, payment_service, condominium):
        payment = new_fee(payment_service, condominium)
        payment_service.register_payment(payment.id, paid_date=date(2024, 1, 9))

        payment_service.delete_payment(payment.id, actor_id=1)

        with pytest.raises(NotFoundError):
            payment_service.get_payment(payment.id)
        assert audit_actions(db_session, payment.id)[-1] == "delete"

    def test_pagination_newest_due_date_first(self, payment_service, condominium):
        for day in range(1, 13):
            new_fee(payment_service, condominium, due=date(2024, 1, day), description=f"Fee {day}")

        page = payment_service.list_condominium_payments(condominium.id, page=2, limit=5)

        assert page.total == 12
        assert page.pages == 3
        assert [p.due_date.day for p in page.items] == [7, 6, 5, 4, 3]

    def test_limit_is_capped(self, payment_service, condominium, settings):
        new_fee(payment_service, condominium)

        page = payment_service.list_payments(limit=10_000)

        assert page.limit == settings.max_page_size

    def test_filters(self, payment_service, condominium, units):
        new_fee(payment_service, condominium, unit_id=units[0].id, description="Condo fee January")
        new_fee(payment_service, condominium, unit_id=units[1].id, description="Condo fee January")
        new_fee(payment_service, condominium, description="Elevator maintenance", kind="expense")

        assert payment_service.list_payments(search="elevator").total == 1
        assert payment_service.list_payments(kind="revenue").total == 2
        assert payment_service.list_unit_payments(units[0].id).total == 1
        assert payment_service.list_payments(start=date(2024, 2, 1)).total == 0

    def test_search_treats_wildcards_literally(self, payment_service, condominium):
        new_fee(payment_service, condominium, description="Discount 10% early payment")
        new_fee(payment_service, condominium, description="Fee_A block")
        new_fee(payment_service, condominium, description="FeeXA block")

        assert payment_service.list_payments(search="%").total == 1
        assert payment_service.list_payments(search="e_a").total == 1

    def test_list_unknown_parent(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.list_unit_payments(404)
        with pytest.raises(NotFoundError):
            payment_service.list_condominium_payments(404)


class TestFailureIsolation:
    def test_store_error_rolls_back(self, db_session, payment_service, condominium, monkeypatch):
        def broken_add(payment):
            raise OperationalError("INSERT INTO payments", {}, Exception("disk I/O error"))

        monkeypatch.setattr(payment_service.repo, "add", broken_add)

        with pytest.raises(StoreError, match="disk I/O error"):
            new_fee(payment_service, condominium)
        assert payment_count(db_session) == 0

    def test_unexpected_error_rolls_back(self, db_session, payment_service, condominium, monkeypatch):
        def broken_log(*args, **kwargs):
            raise RuntimeError("audit serializer failed")

        monkeypatch.setattr("condo_finance.services.payment_service.AuditService.log", broken_log)

        with pytest.raises(RuntimeError, match="audit serializer failed"):
            new_fee(payment_service, condominium)
        assert payment_count(db_session) == 0

    def test_notifier_failure_does_not_undo_transition(self, db_session, settings, clock, condominium):
        class ExplodingNotifier:
            def payment_overdue(self, payment):
                raise RuntimeError("push gateway down")

            def payment_registered(self, payment):
                raise RuntimeError("push gateway down")

        service = PaymentService(db_session, notifier=ExplodingNotifier(), settings=settings, clock=clock)
        payment = new_fee(service, condominium)

        service.mark_overdue(payment.id, as_of=date(2024, 1, 20))

        db_session.expire_all()
        assert service.get_payment(payment.id).status == PaymentStatus.OVERDUE
