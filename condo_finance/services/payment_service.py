"""Payment service for the charge lifecycle.

Provides methods for:
- Creating charges (revenue or expense) for a condominium/unit
- Status transitions: mark overdue, register payment, cancel
- Partial edits that respect the status state machine
- Listing with filters and pagination, hard deletion
- The periodic overdue sweep (pending -> overdue past the due date)

Every operation is one all-or-nothing session transaction. Transitions use a
conditional UPDATE on the expected status, so of two concurrent terminal
transitions exactly one wins; the other fails with InvalidTransitionError
(or ConcurrentModificationError when a retry could still succeed).
"""

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from condo_finance.config import Settings, get_settings
from condo_finance.errors import (
    ConcurrentModificationError,
    FinanceError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from condo_finance.models import Payment, PaymentKind, PaymentStatus
from condo_finance.models.payment import TERMINAL_STATUSES
from condo_finance.services.audit_service import AuditService
from condo_finance.services.locale_service import format_amount
from condo_finance.services.money import ZERO, to_day
from condo_finance.services.notification_service import NotificationService, PaymentNotifier
from condo_finance.services.payment_repository import PaymentFilter, PaymentRepository
from condo_finance.services.payment_rules import (
    EDITABLE_FIELDS,
    FINANCIAL_FIELDS,
    LateCharges,
    compute_late_charges,
    ensure_transition,
    parse_base_value,
    parse_kind,
    parse_status,
    settled_on_time,
    validate_new_payment,
)

logger = logging.getLogger(__name__)

ENTITY = "payment"


@dataclass
class Page:
    """One page of a payment listing."""

    items: list[Payment]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class SweepResult:
    """Outcome of an overdue sweep run."""

    as_of: date
    marked: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


class PaymentService:
    """Core payment lifecycle operations."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[PaymentNotifier] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], date] = date.today,
    ):
        """Initialize payment service.

        Args:
            db: SQLAlchemy database session
            notifier: Delivery channel for overdue/registered events
            settings: Rates and paging limits (defaults to get_settings())
            clock: Source of "today" when an operation gets no explicit date
        """
        self.db = db
        self.repo = PaymentRepository(db)
        self.notifications = NotificationService(notifier)
        self.settings = settings or get_settings()
        self.clock = clock

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit on success; roll back on any error, wrapping store failures."""
        try:
            yield
            self.db.commit()
        except FinanceError as e:
            self.db.rollback()
            logger.warning(f"Payment operation rejected ({e.code}): {e.message}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Store failure, transaction rolled back: {e}")
            raise StoreError(f"Store operation failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    # Lookups

    def _load(self, payment_id: int) -> Payment:
        payment = self.repo.get_by_id(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    def get_payment(self, payment_id: int) -> Payment:
        """Get payment by ID.

        Raises:
            NotFoundError: If payment does not exist
        """
        return self._load(payment_id)

    def _resolve_condominium(self, condominium_id: int | None, unit_id: int | None) -> int | None:
        """Check references exist and agree; a unit-only charge inherits the unit's condominium."""
        if condominium_id is not None and self.repo.get_condominium(condominium_id) is None:
            raise NotFoundError("Condominium", condominium_id)
        if unit_id is None:
            return condominium_id
        unit = self.repo.get_unit(unit_id)
        if unit is None:
            raise NotFoundError("Unit", unit_id)
        if condominium_id is not None and unit.condominium_id != condominium_id:
            raise ValidationError(
                f"Unit {unit_id} does not belong to condominium {condominium_id}", ["unit_id"]
            )
        return unit.condominium_id

    def _late_charges(self, base_value: Decimal, due_date: date, as_of: date) -> LateCharges:
        return compute_late_charges(
            base_value,
            due_date,
            as_of,
            self.settings.monthly_interest_rate,
            self.settings.late_penalty_rate,
        )

    def _conditional_update(
        self,
        payment: Payment,
        expected: PaymentStatus,
        values: dict[str, Any],
        target: PaymentStatus,
    ) -> None:
        """Write values only if the row still has the expected status.

        On a lost race the row is re-read: a terminal or incompatible state
        raises InvalidTransitionError, anything else ConcurrentModificationError.
        """
        if self.repo.update_where_status(payment.id, expected, values):
            self.db.refresh(payment)
            return

        current = self.repo.get_by_id(payment.id, refresh=True)
        if current is None:
            raise NotFoundError("Payment", payment.id)
        logger.warning(
            f"Payment {payment.id} changed concurrently: expected {expected.value}, "
            f"found {current.status.value}"
        )
        ensure_transition(current.status, target)
        raise ConcurrentModificationError(
            f"Payment {payment.id} was modified concurrently (now {current.status.value})"
        )

    # Creation

    def create_payment(
        self,
        description: str,
        base_value: Decimal,
        due_date: date,
        kind: PaymentKind | str,
        condominium_id: int | None = None,
        unit_id: int | None = None,
        category: str | None = None,
        payment_method: str | None = None,
        receipt_reference: str | None = None,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Create a pending charge.

        Args:
            description: What the charge is for
            base_value: Amount (> 0)
            due_date: Due date
            kind: revenue or expense
            condominium_id: Owning condominium (optional)
            unit_id: Billed unit (optional, must belong to condominium_id)
            category: Free-form category
            payment_method: Expected payment method
            receipt_reference: Receipt number or file reference
            notes: Free text
            actor_id: User creating the charge

        Returns:
            Created Payment with status pending and final_value == base_value

        Raises:
            ValidationError: Invalid or missing fields
            NotFoundError: Unknown condominium or unit
        """
        with self._transaction():
            amount, payment_kind = validate_new_payment(description, base_value, due_date, kind)
            due_date = to_day(due_date)
            owner_id = self._resolve_condominium(condominium_id, unit_id)
            payment = Payment(
                condominium_id=owner_id,
                unit_id=unit_id,
                description=description.strip(),
                kind=payment_kind,
                category=category,
                base_value=amount,
                final_value=amount,
                interest_amount=ZERO,
                penalty_amount=ZERO,
                due_date=due_date,
                status=PaymentStatus.PENDING,
                payment_method=payment_method,
                receipt_reference=receipt_reference,
                notes=notes,
                created_by=actor_id,
                updated_by=actor_id,
            )
            self.repo.add(payment)
            AuditService.log(
                self.db,
                ENTITY,
                payment.id,
                "create",
                actor_id=actor_id,
                changes={"base_value": amount, "due_date": due_date, "kind": payment_kind},
            )

        self.db.refresh(payment)
        logger.info(
            f"Created payment {payment.id}: {payment_kind.value} {format_amount(amount)} due {due_date}"
        )
        return payment

    # Transitions

    def mark_overdue(
        self,
        payment_id: int,
        as_of: date | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Move a pending payment past its due date to overdue, accruing late charges.

        Penalty = base_value x late_penalty_rate; interest = simple interest at
        monthly_interest_rate for the days between due_date and as_of.
        Calling again for the same as_of day on an overdue payment is a no-op.

        Raises:
            InvalidTransitionError: Not pending, or as_of is not after due_date
        """
        as_of = to_day(as_of or self.clock())
        changed = False

        with self._transaction():
            payment = self._load(payment_id)
            if payment.status == PaymentStatus.OVERDUE and payment.charges_as_of == as_of:
                logger.debug(f"Payment {payment_id} already overdue as of {as_of}")
            else:
                ensure_transition(payment.status, PaymentStatus.OVERDUE)
                if as_of <= payment.due_date:
                    raise InvalidTransitionError(
                        f"Payment {payment_id} is not past due on {as_of} (due {payment.due_date})",
                        current=payment.status,
                        target=PaymentStatus.OVERDUE,
                    )
                charges = self._late_charges(payment.base_value, payment.due_date, as_of)
                values = {
                    "status": PaymentStatus.OVERDUE,
                    "interest_amount": charges.interest,
                    "penalty_amount": charges.penalty,
                    "final_value": charges.final_value,
                    "charges_as_of": as_of,
                    "updated_by": actor_id,
                }
                self._conditional_update(payment, PaymentStatus.PENDING, values, PaymentStatus.OVERDUE)
                AuditService.log(
                    self.db,
                    ENTITY,
                    payment.id,
                    "mark_overdue",
                    actor_id=actor_id,
                    changes={**values, "days_late": charges.days_late},
                )
                changed = True

        if changed:
            logger.info(
                f"Payment {payment_id} overdue as of {as_of}: "
                f"interest {payment.interest_amount}, penalty {payment.penalty_amount}, "
                f"final {format_amount(payment.final_value)}"
            )
            self.notifications.payment_overdue(payment)
        return payment

    def _settlement_values(
        self,
        base_value: Decimal,
        due_date: date,
        paid_date: date,
    ) -> dict[str, Any]:
        """Field values for a transition to paid.

        Settled on or before the due date: accrued charges are dropped and
        final_value is the base value. Otherwise the last computed final_value
        stands.
        """
        if not isinstance(paid_date, date):
            raise ValidationError("paid_date must be a date", ["paid_date"])
        paid_date = to_day(paid_date)
        values: dict[str, Any] = {"status": PaymentStatus.PAID, "paid_date": paid_date}
        if settled_on_time(paid_date, due_date):
            values.update(
                interest_amount=ZERO,
                penalty_amount=ZERO,
                final_value=base_value,
                charges_as_of=None,
            )
        return values

    def register_payment(
        self,
        payment_id: int,
        paid_date: date | None = None,
        payment_method: str | None = None,
        receipt_reference: str | None = None,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Register settlement of a pending or overdue payment.

        Args:
            payment_id: Payment to settle
            paid_date: Settlement date (defaults to today from the clock)
            payment_method: How it was paid
            receipt_reference: Receipt number or file reference
            notes: Free text
            actor_id: User registering the payment

        Raises:
            InvalidTransitionError: Payment is already paid or canceled
        """
        paid_date = paid_date or self.clock()
        if isinstance(paid_date, date):
            paid_date = to_day(paid_date)

        with self._transaction():
            payment = self._load(payment_id)
            ensure_transition(payment.status, PaymentStatus.PAID)
            values = self._settlement_values(payment.base_value, payment.due_date, paid_date)
            if payment.final_value is None:
                values.setdefault("final_value", payment.base_value)
            if payment_method:
                values["payment_method"] = payment_method
            if receipt_reference:
                values["receipt_reference"] = receipt_reference
            if notes:
                values["notes"] = notes
            values["updated_by"] = actor_id
            self._conditional_update(payment, payment.status, values, PaymentStatus.PAID)
            AuditService.log(self.db, ENTITY, payment.id, "register_payment", actor_id, values)

        logger.info(
            f"Payment {payment_id} registered on {paid_date}: {format_amount(payment.final_value)}"
        )
        self.notifications.payment_registered(payment)
        return payment

    def cancel_payment(
        self,
        payment_id: int,
        reason: str | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Cancel a pending or overdue payment; final_value is left as is.

        Raises:
            InvalidTransitionError: Payment is already paid or canceled
        """
        with self._transaction():
            payment = self._load(payment_id)
            ensure_transition(payment.status, PaymentStatus.CANCELED)
            values: dict[str, Any] = {"status": PaymentStatus.CANCELED, "updated_by": actor_id}
            if reason:
                values["notes"] = reason
            self._conditional_update(payment, payment.status, values, PaymentStatus.CANCELED)
            AuditService.log(self.db, ENTITY, payment.id, "cancel", actor_id, values)

        logger.info(f"Payment {payment_id} canceled")
        return payment

    # Edits

    def _clean_edit_fields(self, payment: Payment, fields: dict[str, Any]) -> dict[str, Any]:
        """Validate edited values, returning them coerced to column types."""
        values: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "status":
                continue
            if name == "description":
                if not value or not str(value).strip():
                    raise ValidationError("description is required", ["description"])
                values[name] = str(value).strip()
            elif name == "base_value":
                values[name] = parse_base_value(value)
            elif name == "due_date":
                if not isinstance(value, date):
                    raise ValidationError("due_date is required", ["due_date"])
                values[name] = to_day(value)
            elif name == "kind":
                values[name] = parse_kind(value)
            elif name == "paid_date":
                if value is not None and not isinstance(value, date):
                    raise ValidationError("paid_date must be a date", ["paid_date"])
                values[name] = to_day(value) if value is not None else None
            elif name == "unit_id":
                if value is not None:
                    owner_id = self._resolve_condominium(payment.condominium_id, value)
                    if payment.condominium_id is None:
                        values["condominium_id"] = owner_id
                values[name] = value
            else:
                values[name] = value
        return values

    def edit_payment(
        self,
        payment_id: int,
        fields: dict[str, Any],
        as_of: date | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Partially update a payment.

        A status change follows the state machine: to overdue recomputes late
        charges from the (possibly edited) due date at as_of; to paid applies
        register semantics (paid_date defaults to as_of); to canceled applies
        cancel semantics. A new base_value on a pending payment resets
        final_value, on an overdue one re-accrues charges at as_of (at the
        paid date when the same edit settles it late).

        Raises:
            ValidationError: Unknown or invalid fields
            InvalidTransitionError: Disallowed status change, or financial
                fields edited on a paid/canceled payment
        """
        as_of = to_day(as_of or self.clock())

        with self._transaction():
            unknown = set(fields) - EDITABLE_FIELDS
            if unknown:
                raise ValidationError(
                    f"Fields cannot be edited: {sorted(unknown)}", sorted(unknown)
                )
            payment = self._load(payment_id)
            current = payment.status
            target = parse_status(fields["status"]) if fields.get("status") else current
            status_changed = target != current
            if status_changed:
                ensure_transition(current, target)

            frozen = FINANCIAL_FIELDS & set(fields)
            if current in TERMINAL_STATUSES and frozen:
                raise InvalidTransitionError(
                    f"Cannot edit {sorted(frozen)} of a {current.value} payment",
                    current=current,
                    target=target,
                )

            values = self._clean_edit_fields(payment, fields)
            if "paid_date" in values and target != PaymentStatus.PAID:
                raise ValidationError("paid_date can only be set on paid payments", ["paid_date"])
            if target == PaymentStatus.PAID and "paid_date" in values and values["paid_date"] is None:
                raise ValidationError("paid payments require a paid_date", ["paid_date"])

            base_value = values.get("base_value", payment.base_value)
            due_date = values.get("due_date", payment.due_date)

            if target == PaymentStatus.OVERDUE and (
                status_changed or "base_value" in values or "due_date" in values
            ):
                charges = self._late_charges(base_value, due_date, as_of)
                values.update(
                    interest_amount=charges.interest,
                    penalty_amount=charges.penalty,
                    final_value=charges.final_value,
                    charges_as_of=as_of,
                )
            elif target == PaymentStatus.PENDING and "base_value" in values:
                values["final_value"] = base_value
            elif target == PaymentStatus.PAID and status_changed:
                paid_date = values.get("paid_date") or as_of
                if current == PaymentStatus.PENDING and "base_value" in values:
                    values["final_value"] = base_value
                elif current == PaymentStatus.OVERDUE and ("base_value" in values or "due_date" in values):
                    charges = self._late_charges(base_value, due_date, paid_date)
                    values.update(
                        interest_amount=charges.interest,
                        penalty_amount=charges.penalty,
                        final_value=charges.final_value,
                        charges_as_of=paid_date,
                    )
                values.update(self._settlement_values(base_value, due_date, paid_date))

            values["status"] = target
            values["updated_by"] = actor_id
            self._conditional_update(payment, current, values, target)
            AuditService.log(self.db, ENTITY, payment.id, "edit", actor_id, values)

        logger.info(f"Payment {payment_id} edited: fields={sorted(fields)}, status={target.value}")
        if status_changed and target == PaymentStatus.OVERDUE:
            self.notifications.payment_overdue(payment)
        elif status_changed and target == PaymentStatus.PAID:
            self.notifications.payment_registered(payment)
        return payment

    def delete_payment(self, payment_id: int, actor_id: int | None = None) -> None:
        """Hard delete a payment (audited with a snapshot of its values).

        Raises:
            NotFoundError: If payment does not exist
        """
        with self._transaction():
            payment = self._load(payment_id)
            AuditService.log(
                self.db,
                ENTITY,
                payment.id,
                "delete",
                actor_id=actor_id,
                changes={
                    "status": payment.status,
                    "base_value": payment.base_value,
                    "final_value": payment.final_value,
                    "due_date": payment.due_date,
                },
            )
            self.repo.delete(payment)
        logger.info(f"Payment {payment_id} deleted")

    # Listing

    def list_payments(
        self,
        condominium_id: int | None = None,
        unit_id: int | None = None,
        status: PaymentStatus | str | None = None,
        kind: PaymentKind | str | None = None,
        start: date | None = None,
        end: date | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        """List payments newest due date first.

        Args:
            condominium_id, unit_id, status, kind: Equality filters
            start, end: Inclusive due_date range
            search: Case-insensitive substring of description
            page: 1-based page number
            limit: Page size (default and cap from settings)

        Returns:
            Page of payments with total count
        """
        limit = limit or self.settings.default_page_size
        limit = max(1, min(limit, self.settings.max_page_size))
        page = max(1, page)
        filters = PaymentFilter(
            condominium_id=condominium_id,
            unit_id=unit_id,
            status=parse_status(status) if status else None,
            kind=parse_kind(kind) if kind else None,
            due_from=start,
            due_to=end,
            search=search,
        )
        items = self.repo.find_many(filters, offset=(page - 1) * limit, limit=limit)
        return Page(items=items, total=self.repo.count(filters), page=page, limit=limit)

    def list_unit_payments(
        self,
        unit_id: int,
        status: PaymentStatus | str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        """List a unit's payments.

        Raises:
            NotFoundError: If unit does not exist
        """
        if self.repo.get_unit(unit_id) is None:
            raise NotFoundError("Unit", unit_id)
        return self.list_payments(unit_id=unit_id, status=status, page=page, limit=limit)

    def list_condominium_payments(
        self,
        condominium_id: int,
        status: PaymentStatus | str | None = None,
        unit_id: int | None = None,
        kind: PaymentKind | str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        """List a condominium's payments.

        Raises:
            NotFoundError: If condominium does not exist
        """
        if self.repo.get_condominium(condominium_id) is None:
            raise NotFoundError("Condominium", condominium_id)
        return self.list_payments(
            condominium_id=condominium_id,
            unit_id=unit_id,
            status=status,
            kind=kind,
            page=page,
            limit=limit,
        )

    # Sweep

    def run_overdue_sweep(
        self,
        as_of: date | None = None,
        condominium_id: int | None = None,
    ) -> SweepResult:
        """Mark every pending payment due before as_of as overdue.

        Each payment goes through mark_overdue in its own transaction; a
        payment that changed state meanwhile is logged and skipped.
        """
        as_of = to_day(as_of or self.clock())
        candidates = self.repo.find_many(
            PaymentFilter(
                condominium_id=condominium_id,
                status=PaymentStatus.PENDING,
                due_before=as_of,
            ),
            order_by=(Payment.due_date, Payment.id),
        )
        candidate_ids = [p.id for p in candidates]
        self.db.rollback()

        result = SweepResult(as_of=as_of)
        logger.info(f"Overdue sweep as of {as_of}: {len(candidate_ids)} candidates")
        for payment_id in candidate_ids:
            try:
                self.mark_overdue(payment_id, as_of=as_of)
                result.marked.append(payment_id)
            except (InvalidTransitionError, ConcurrentModificationError, NotFoundError) as e:
                logger.warning(f"Overdue sweep skipped payment {payment_id}: {e}")
                result.skipped.append(payment_id)

        logger.info(
            f"Overdue sweep as of {as_of} finished: {len(result.marked)} marked, "
            f"{len(result.skipped)} skipped"
        )
        return result


__all__ = ["Page", "SweepResult", "PaymentService"]
