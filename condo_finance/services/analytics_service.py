"""Analytics over condominium payments.

- Delinquency: overdue revenue grouped by unit, with the share of units in debt
- Cost per unit: a month's expenses split by private area
- Trend: monthly paid revenue/expense series classified by least-squares slope
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Sequence

from sqlalchemy import extract
from sqlalchemy.orm import Session

from condo_finance.config import Settings, get_settings
from condo_finance.errors import NotFoundError, ValidationError
from condo_finance.models import Payment, PaymentKind, PaymentStatus
from condo_finance.services.money import (
    ZERO,
    add_months,
    days_between,
    first_day_of_month,
    iter_months,
    last_day_of_month,
    month_bounds,
    month_label,
    round_money,
    safe_divide,
    to_decimal,
)
from condo_finance.services.payment_repository import PaymentFilter, PaymentRepository

logger = logging.getLogger(__name__)

# Slope must exceed this fraction of the series mean to count as a trend
TREND_THRESHOLD = Decimal("0.05")
UNASSIGNED_LABEL = "Unassigned"


class Trend(str, Enum):
    GROWING = "growing"
    DECLINING = "declining"
    STABLE = "stable"


def mean(values: Sequence[Decimal]) -> Decimal:
    """Arithmetic mean, 0 for an empty series."""
    if not values:
        return ZERO
    return sum((to_decimal(v) for v in values), ZERO) / len(values)


def linear_slope(values: Sequence[Decimal]) -> Decimal:
    """Ordinary least-squares slope of values against x = 0..n-1.

    Returns 0 for fewer than two points.
    """
    n = len(values)
    if n < 2:
        return ZERO
    sum_x = Decimal(n * (n - 1) // 2)
    sum_x2 = Decimal((n - 1) * n * (2 * n - 1) // 6)
    sum_y = sum((to_decimal(v) for v in values), ZERO)
    sum_xy = sum((to_decimal(v) * i for i, v in enumerate(values)), ZERO)
    return safe_divide(n * sum_xy - sum_x * sum_y, n * sum_x2 - sum_x * sum_x)


def classify_trend(values: Sequence[Decimal]) -> Trend:
    """Classify a series as growing, declining or stable.

    growing if slope > 5 % of the mean, declining if slope < -5 % of the
    mean, stable otherwise or for fewer than two points.

    Example:
        >>> classify_trend([100, 110, 120, 130]).value
        'growing'
    """
    if len(values) < 2:
        return Trend.STABLE
    slope = linear_slope(values)
    threshold = TREND_THRESHOLD * mean(values)
    if slope > threshold:
        return Trend.GROWING
    if slope < -threshold:
        return Trend.DECLINING
    return Trend.STABLE


@dataclass
class DelinquentPayment:
    payment_id: int
    description: str
    base_value: Decimal
    final_value: Decimal
    due_date: date
    days_late: int


@dataclass
class UnitDelinquency:
    """Overdue revenue owed by one unit (unit_id None for unassigned charges)."""

    unit_id: int | None
    label: str
    count: int = 0
    total: Decimal = ZERO
    payments: list[DelinquentPayment] = field(default_factory=list)


@dataclass
class DelinquencyReport:
    as_of: date
    total_units: int
    units_with_debt: int
    delinquency_rate: Decimal
    total_amount: Decimal
    units: list[UnitDelinquency] = field(default_factory=list)
    unassigned: UnitDelinquency | None = None


@dataclass
class UnitCost:
    unit_id: int
    label: str
    area: Decimal
    share: Decimal
    percentage: Decimal


@dataclass
class UnitCostReport:
    year: int
    month: int
    total_expense: Decimal
    total_area: Decimal
    cost_per_square_meter: Decimal
    units: list[UnitCost] = field(default_factory=list)

    @property
    def period(self) -> str:
        return month_label(date(self.year, self.month, 1))


@dataclass
class TrendPoint:
    month: str
    revenue: Decimal
    expense: Decimal

    @property
    def balance(self) -> Decimal:
        return self.revenue - self.expense


@dataclass
class TrendReport:
    start: date
    end: date
    points: list[TrendPoint]
    mean_revenue: Decimal
    mean_expense: Decimal
    revenue_trend: Trend
    expense_trend: Trend

    @property
    def mean_balance(self) -> Decimal:
        return self.mean_revenue - self.mean_expense


class AnalyticsService:
    """Delinquency, cost split and trend analysis for a condominium."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.repo = PaymentRepository(db)
        self.settings = settings or get_settings()
        self.clock = clock

    def _require_condominium(self, condominium_id: int) -> None:
        if self.repo.get_condominium(condominium_id) is None:
            logger.warning(f"Analytics query for unknown condominium {condominium_id}")
            raise NotFoundError("Condominium", condominium_id)

    def delinquency_report(self, condominium_id: int, as_of: date | None = None) -> DelinquencyReport:
        """Overdue revenue due before as_of, grouped by unit.

        Units are sorted by total owed, largest first. The delinquency rate is
        units with debt over all units of the condominium, as a percentage
        (0 when the condominium has no units). Overdue charges without a unit
        are reported separately and do not count as a unit with debt.

        Args:
            condominium_id: Condominium ID
            as_of: Reference day for days late (defaults to today)

        Returns:
            DelinquencyReport
        """
        self._require_condominium(condominium_id)
        as_of = as_of or self.clock()
        overdue = self.repo.find_many(
            PaymentFilter(
                condominium_id=condominium_id,
                kind=PaymentKind.REVENUE,
                status=PaymentStatus.OVERDUE,
                due_before=as_of,
            ),
            order_by=(Payment.due_date, Payment.id),
            with_unit=True,
        )

        by_unit: dict[int, UnitDelinquency] = {}
        unassigned = None
        total_amount = ZERO
        for payment in overdue:
            if payment.unit_id is None:
                if unassigned is None:
                    unassigned = UnitDelinquency(unit_id=None, label=UNASSIGNED_LABEL)
                bucket = unassigned
            else:
                bucket = by_unit.get(payment.unit_id)
                if bucket is None:
                    bucket = by_unit[payment.unit_id] = UnitDelinquency(
                        unit_id=payment.unit_id, label=payment.unit.label
                    )
            amount = payment.amount_due
            bucket.count += 1
            bucket.total += amount
            bucket.payments.append(
                DelinquentPayment(
                    payment_id=payment.id,
                    description=payment.description,
                    base_value=payment.base_value,
                    final_value=amount,
                    due_date=payment.due_date,
                    days_late=days_between(payment.due_date, as_of),
                )
            )
            total_amount += amount

        total_units = self.repo.count_units(condominium_id)
        rate = round_money(safe_divide(len(by_unit), total_units) * 100)
        report = DelinquencyReport(
            as_of=as_of,
            total_units=total_units,
            units_with_debt=len(by_unit),
            delinquency_rate=rate,
            total_amount=total_amount,
            units=sorted(by_unit.values(), key=lambda u: u.total, reverse=True),
            unassigned=unassigned,
        )
        logger.debug(
            f"Delinquency condominium={condominium_id} as of {as_of}: "
            f"{report.units_with_debt}/{total_units} units, rate {rate}%"
        )
        return report

    def cost_per_unit(self, condominium_id: int, year: int, month: int) -> UnitCostReport:
        """Split a month's expenses among units proportionally to their area.

        Uses non-canceled expenses due in the month. Units without an area get
        no share; a zero total area gives a zero cost per square meter.
        """
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", ["month"])
        self._require_condominium(condominium_id)
        start, end = month_bounds(year, month)
        total_expense = self.repo.sum_amount(
            PaymentFilter(
                condominium_id=condominium_id,
                kind=PaymentKind.EXPENSE,
                due_from=start,
                due_to=end,
                exclude_canceled=True,
            )
        )
        units = self.repo.list_units(condominium_id)
        total_area = sum((to_decimal(u.area) for u in units), ZERO)
        cost_per_m2 = safe_divide(total_expense, total_area)

        costs = []
        for unit in units:
            area = to_decimal(unit.area)
            share = cost_per_m2 * area
            costs.append(
                UnitCost(
                    unit_id=unit.id,
                    label=unit.label,
                    area=area,
                    share=round_money(share),
                    percentage=round_money(safe_divide(share, total_expense) * 100),
                )
            )
        costs.sort(key=lambda c: c.share, reverse=True)

        return UnitCostReport(
            year=year,
            month=month,
            total_expense=total_expense,
            total_area=total_area,
            cost_per_square_meter=round_money(cost_per_m2),
            units=costs,
        )

    def trend_analysis(
        self,
        condominium_id: int,
        months: int = 12,
        as_of: date | None = None,
    ) -> TrendReport:
        """Monthly paid revenue and expense for the months before as_of.

        The series covers `months` calendar months ending with the month
        before as_of, bucketed by due date. Missing months count as zero.
        """
        if months < 1:
            raise ValidationError("months must be at least 1", ["months"])
        self._require_condominium(condominium_id)
        as_of = as_of or self.clock()
        start = add_months(first_day_of_month(as_of), -months)
        end = last_day_of_month(add_months(start, months - 1))

        totals = self.repo.totals_by(
            (
                extract("year", Payment.due_date),
                extract("month", Payment.due_date),
                Payment.kind,
            ),
            PaymentFilter(
                condominium_id=condominium_id,
                status=PaymentStatus.PAID,
                due_from=start,
                due_to=end,
            ),
        )
        points = [
            TrendPoint(
                month=month_label(first),
                revenue=totals.get((first.year, first.month, PaymentKind.REVENUE), ZERO),
                expense=totals.get((first.year, first.month, PaymentKind.EXPENSE), ZERO),
            )
            for first in iter_months(start, months)
        ]
        revenues = [p.revenue for p in points]
        expenses = [p.expense for p in points]

        report = TrendReport(
            start=start,
            end=end,
            points=points,
            mean_revenue=mean(revenues),
            mean_expense=mean(expenses),
            revenue_trend=classify_trend(revenues),
            expense_trend=classify_trend(expenses),
        )
        logger.debug(
            f"Trend condominium={condominium_id} {start}..{end}: revenue "
            f"{report.revenue_trend.value}, expense {report.expense_trend.value}"
        )
        return report


__all__ = [
    "Trend",
    "mean",
    "linear_slope",
    "classify_trend",
    "DelinquentPayment",
    "UnitDelinquency",
    "DelinquencyReport",
    "UnitCost",
    "UnitCostReport",
    "TrendPoint",
    "TrendReport",
    "AnalyticsService",
]
