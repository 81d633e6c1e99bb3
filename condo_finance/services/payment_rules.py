"""Pure payment lifecycle rules.

State machine:
    pending -> overdue | paid | canceled
    overdue -> paid | canceled
    paid, canceled: terminal

Late charges: a flat penalty on the base value plus simple interest per day
late (monthly rate / 30). Both are rounded to cents here, at the storage
boundary, and final_value is the exact sum of the stored parts.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, NamedTuple

from condo_finance.errors import InvalidTransitionError, ValidationError
from condo_finance.models.payment import PaymentKind, PaymentStatus
from condo_finance.services.money import (
    ZERO,
    days_between,
    penalty,
    round_money,
    simple_interest,
    to_decimal,
)

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.OVERDUE, PaymentStatus.PAID, PaymentStatus.CANCELED}
    ),
    PaymentStatus.OVERDUE: frozenset({PaymentStatus.PAID, PaymentStatus.CANCELED}),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.CANCELED: frozenset(),
}

# Fields edit_payment accepts
EDITABLE_FIELDS = frozenset(
    {
        "description",
        "base_value",
        "due_date",
        "kind",
        "category",
        "notes",
        "payment_method",
        "receipt_reference",
        "paid_date",
        "status",
        "unit_id",
    }
)

# Fields frozen once a payment is paid or canceled
FINANCIAL_FIELDS = frozenset({"base_value", "due_date", "kind"})


class LateCharges(NamedTuple):
    """Interest and penalty owed for a late payment."""

    days_late: int
    interest: Decimal
    penalty: Decimal
    final_value: Decimal


def parse_kind(value: Any) -> PaymentKind:
    """Coerce a string or enum to PaymentKind, raising ValidationError otherwise."""
    try:
        return PaymentKind(value)
    except ValueError:
        raise ValidationError(
            f"kind must be one of {[k.value for k in PaymentKind]}", ["kind"]
        ) from None


def parse_status(value: Any) -> PaymentStatus:
    """Coerce a string or enum to PaymentStatus, raising ValidationError otherwise."""
    try:
        return PaymentStatus(value)
    except ValueError:
        raise ValidationError(
            f"status must be one of {[s.value for s in PaymentStatus]}", ["status"]
        ) from None


def parse_base_value(value: Any) -> Decimal:
    """Coerce a positive monetary amount, raising ValidationError otherwise."""
    if value is None or isinstance(value, bool):
        raise ValidationError("base_value is required", ["base_value"])
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("base_value must be a number", ["base_value"]) from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("base_value must be greater than zero", ["base_value"])
    return amount


def validate_new_payment(
    description: str | None,
    base_value: Any,
    due_date: date | None,
    kind: Any,
) -> tuple[Decimal, PaymentKind]:
    """Validate creation fields, reporting every offending field at once.

    Returns:
        (base_value as Decimal, kind as PaymentKind)

    Raises:
        ValidationError: with the list of invalid fields
    """
    errors: list[str] = []
    messages: list[str] = []
    amount = None
    payment_kind = None

    if not description or not str(description).strip():
        errors.append("description")
        messages.append("description is required")
    try:
        amount = parse_base_value(base_value)
    except ValidationError as e:
        errors.extend(e.fields)
        messages.append(e.message)
    if not isinstance(due_date, date):
        errors.append("due_date")
        messages.append("due_date is required")
    try:
        payment_kind = parse_kind(kind)
    except ValidationError as e:
        errors.extend(e.fields)
        messages.append(e.message)

    if errors:
        raise ValidationError("; ".join(messages), errors)
    return amount, payment_kind


def ensure_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if target in ALLOWED_TRANSITIONS[current]:
        return
    if current == PaymentStatus.PAID:
        message = "Payment is already paid"
    elif current == PaymentStatus.CANCELED:
        message = "Payment is canceled"
    else:
        message = f"Cannot move payment from {current.value} to {target.value}"
    raise InvalidTransitionError(message, current=current, target=target)


def compute_late_charges(
    base_value: Decimal,
    due_date: date,
    as_of: date,
    monthly_rate: Decimal,
    penalty_rate: Decimal,
) -> LateCharges:
    """Interest and penalty for a charge due on due_date, evaluated at as_of.

    Not late (as_of on or before due_date) means no charges and
    final_value == base_value.

    Example:
        base 100.00, due 2024-01-10, as_of 2024-01-20, 1 %/month, 2 %:
        penalty 2.00, interest 0.33, final_value 102.33
    """
    base_value = to_decimal(base_value)
    days_late = days_between(due_date, as_of)
    if days_late <= 0:
        return LateCharges(0, ZERO, ZERO, base_value)

    interest = round_money(simple_interest(base_value, monthly_rate, days_late) - base_value)
    fine = round_money(penalty(base_value, penalty_rate))
    return LateCharges(days_late, interest, fine, base_value + interest + fine)


def settled_on_time(paid_date: date, due_date: date) -> bool:
    """True when a payment was settled on or before its due date."""
    return paid_date <= due_date


__all__ = [
    "ALLOWED_TRANSITIONS",
    "EDITABLE_FIELDS",
    "FINANCIAL_FIELDS",
    "LateCharges",
    "parse_kind",
    "parse_status",
    "parse_base_value",
    "validate_new_payment",
    "ensure_transition",
    "compute_late_charges",
    "settled_on_time",
]
