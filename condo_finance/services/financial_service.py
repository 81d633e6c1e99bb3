"""Financial aggregation for a condominium.

Read-only projections over payments: period summary, monthly cash flow,
short-term forecast, yearly budget by category, reserve fund and the grouped
payment report. Sums are computed in the store (SUM ... GROUP BY) and use the
amount actually due, coalesce(final_value, base_value).
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import extract
from sqlalchemy.orm import Session

from condo_finance.config import Settings, get_settings
from condo_finance.errors import NotFoundError, ValidationError
from condo_finance.models import Payment, PaymentKind, PaymentStatus
from condo_finance.services.money import (
    ZERO,
    add_months,
    iter_months,
    month_bounds,
    month_key,
    month_label,
    round_money,
    safe_divide,
    to_decimal,
)
from condo_finance.services.payment_repository import PaymentFilter, PaymentRepository
from condo_finance.services.payment_rules import parse_status

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"
GROUP_BY_OPTIONS = ("month", "unit", "status")


@dataclass
class FinancialSummary:
    """Totals of a condominium over an optional due-date range."""

    total_received: Decimal = ZERO
    total_expense_paid: Decimal = ZERO
    total_pending: Decimal = ZERO
    pending_expenses: Decimal = ZERO
    total_overdue: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.total_received - self.total_expense_paid


@dataclass
class CashFlowEntry:
    payment_id: int
    paid_date: date
    kind: PaymentKind
    description: str
    amount: Decimal
    balance: Decimal
    notes: str | None = None


@dataclass
class CashFlow:
    """Paid movements of one month with a running balance."""

    year: int
    month: int
    opening_balance: Decimal
    entries: list[CashFlowEntry] = field(default_factory=list)

    @property
    def closing_balance(self) -> Decimal:
        return self.entries[-1].balance if self.entries else self.opening_balance


@dataclass
class ForecastMonth:
    month: str
    revenue: Decimal
    expense: Decimal

    @property
    def projected_balance(self) -> Decimal:
        return self.revenue - self.expense


@dataclass
class Budget:
    """Yearly revenue and expense per category."""

    year: int
    revenues: dict[str, Decimal] = field(default_factory=dict)
    expenses: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_revenue(self) -> Decimal:
        return sum(self.revenues.values(), ZERO)

    @property
    def total_expense(self) -> Decimal:
        return sum(self.expenses.values(), ZERO)

    @property
    def balance(self) -> Decimal:
        return self.total_revenue - self.total_expense


@dataclass
class ReserveFund:
    category: str
    contributions: Decimal
    withdrawals: Decimal
    percentage_of_revenue: Decimal
    movements: list[Payment] = field(default_factory=list)

    @property
    def balance(self) -> Decimal:
        return self.contributions - self.withdrawals


@dataclass
class ReportGroup:
    """One bucket of the payment report (a month, a unit or a status)."""

    key: str
    label: str
    total: Decimal = ZERO
    count: int = 0
    paid: Decimal = ZERO
    paid_count: int = 0
    pending: Decimal = ZERO
    pending_count: int = 0
    overdue: Decimal = ZERO
    overdue_count: int = 0


@dataclass
class PaymentReport:
    group_by: str
    total_count: int = 0
    total_value: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_pending: Decimal = ZERO
    total_overdue: Decimal = ZERO
    total_canceled: Decimal = ZERO
    groups: list[ReportGroup] = field(default_factory=list)


class FinancialService:
    """Summary, cash flow, forecast, budget and reserve fund projections."""

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
            logger.warning(f"Financial query for unknown condominium {condominium_id}")
            raise NotFoundError("Condominium", condominium_id)

    def summarize(
        self,
        condominium_id: int,
        start: date | None = None,
        end: date | None = None,
    ) -> FinancialSummary:
        """Received, paid-out, pending and overdue totals.

        Args:
            condominium_id: Condominium ID
            start: Inclusive lower bound on due_date
            end: Inclusive upper bound on due_date

        Returns:
            FinancialSummary (balance = received - paid expenses)
        """
        self._require_condominium(condominium_id)
        totals = self.repo.totals_by(
            (Payment.kind, Payment.status),
            PaymentFilter(condominium_id=condominium_id, due_from=start, due_to=end),
        )
        summary = FinancialSummary(
            total_received=totals.get((PaymentKind.REVENUE, PaymentStatus.PAID), ZERO),
            total_expense_paid=totals.get((PaymentKind.EXPENSE, PaymentStatus.PAID), ZERO),
            total_pending=totals.get((PaymentKind.REVENUE, PaymentStatus.PENDING), ZERO),
            pending_expenses=totals.get((PaymentKind.EXPENSE, PaymentStatus.PENDING), ZERO),
            total_overdue=totals.get((PaymentKind.REVENUE, PaymentStatus.OVERDUE), ZERO),
        )
        logger.debug(f"Summary condominium={condominium_id} {start}..{end}: {summary}")
        return summary

    def _paid_balance_before(self, condominium_id: int, before: date) -> Decimal:
        totals = self.repo.totals_by(
            (Payment.kind,),
            PaymentFilter(
                condominium_id=condominium_id,
                status=PaymentStatus.PAID,
                paid_before=before,
            ),
        )
        return totals.get((PaymentKind.REVENUE,), ZERO) - totals.get((PaymentKind.EXPENSE,), ZERO)

    def cash_flow(self, condominium_id: int, year: int, month: int) -> CashFlow:
        """Paid movements of a month in settlement order with running balance.

        The opening balance is the net of every paid movement settled before
        the first day of the month.
        """
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", ["month"])
        self._require_condominium(condominium_id)
        start, end = month_bounds(year, month)

        flow = CashFlow(
            year=year,
            month=month,
            opening_balance=self._paid_balance_before(condominium_id, start),
        )
        movements = self.repo.find_many(
            PaymentFilter(
                condominium_id=condominium_id,
                status=PaymentStatus.PAID,
                paid_from=start,
                paid_to=end,
            ),
            order_by=(Payment.paid_date, Payment.id),
        )
        running = flow.opening_balance
        for payment in movements:
            amount = payment.amount_due
            running += amount if payment.kind == PaymentKind.REVENUE else -amount
            flow.entries.append(
                CashFlowEntry(
                    payment_id=payment.id,
                    paid_date=payment.paid_date,
                    kind=payment.kind,
                    description=payment.description,
                    amount=amount,
                    balance=running,
                    notes=payment.notes,
                )
            )
        logger.debug(
            f"Cash flow condominium={condominium_id} {year}-{month:02d}: "
            f"{len(flow.entries)} movements, closing {flow.closing_balance}"
        )
        return flow

    def forecast(
        self,
        condominium_id: int,
        months: int = 3,
        as_of: date | None = None,
    ) -> list[ForecastMonth]:
        """Expected revenue and expense for the next calendar months.

        Considers non-canceled payments due between as_of and as_of + months;
        the first bucket is as_of's own month.
        """
        if months < 1:
            raise ValidationError("months must be at least 1", ["months"])
        self._require_condominium(condominium_id)
        as_of = as_of or self.clock()

        year_col = extract("year", Payment.due_date)
        month_col = extract("month", Payment.due_date)
        totals = self.repo.totals_by(
            (year_col, month_col, Payment.kind),
            PaymentFilter(
                condominium_id=condominium_id,
                due_from=as_of,
                due_to=add_months(as_of, months),
                exclude_canceled=True,
            ),
        )
        forecast = []
        for first in iter_months(as_of, months):
            forecast.append(
                ForecastMonth(
                    month=month_key(first),
                    revenue=totals.get((first.year, first.month, PaymentKind.REVENUE), ZERO),
                    expense=totals.get((first.year, first.month, PaymentKind.EXPENSE), ZERO),
                )
            )
        return forecast

    def budget(self, condominium_id: int, year: int) -> Budget:
        """Revenue and expense of a year per category (non-canceled, by due date)."""
        self._require_condominium(condominium_id)
        start, _ = month_bounds(year, 1)
        _, end = month_bounds(year, 12)
        totals = self.repo.totals_by(
            (Payment.kind, Payment.category),
            PaymentFilter(
                condominium_id=condominium_id,
                due_from=start,
                due_to=end,
                exclude_canceled=True,
            ),
        )
        budget = Budget(year=year)
        for (kind, category), total in sorted(
            totals.items(), key=lambda item: (item[0][0].value, item[0][1] or "")
        ):
            bucket = budget.revenues if kind == PaymentKind.REVENUE else budget.expenses
            key = category or UNCATEGORIZED
            bucket[key] = bucket.get(key, ZERO) + total
        return budget

    def reserve_fund(self, condominium_id: int) -> ReserveFund:
        """Paid contributions to and withdrawals from the reserve fund category.

        percentage_of_revenue is the fund balance over all paid revenue of the
        condominium (0 when nothing was received).
        """
        self._require_condominium(condominium_id)
        category = self.settings.reserve_fund_category
        totals = self.repo.totals_by(
            (Payment.kind,),
            PaymentFilter(
                condominium_id=condominium_id,
                category=category,
                status=PaymentStatus.PAID,
            ),
        )
        all_revenue = self.repo.sum_amount(
            PaymentFilter(
                condominium_id=condominium_id,
                kind=PaymentKind.REVENUE,
                status=PaymentStatus.PAID,
            )
        )
        contributions = totals.get((PaymentKind.REVENUE,), ZERO)
        withdrawals = totals.get((PaymentKind.EXPENSE,), ZERO)
        percentage = round_money(safe_divide(contributions - withdrawals, all_revenue) * 100)
        movements = self.repo.find_many(
            PaymentFilter(condominium_id=condominium_id, category=category)
        )
        return ReserveFund(
            category=category,
            contributions=contributions,
            withdrawals=withdrawals,
            percentage_of_revenue=percentage,
            movements=movements,
        )

    def payment_report(
        self,
        condominium_id: int | None = None,
        unit_id: int | None = None,
        status: PaymentStatus | str | None = None,
        start: date | None = None,
        end: date | None = None,
        group_by: str = "month",
    ) -> PaymentReport:
        """Payment totals per status, bucketed by month, unit or status.

        Paid and overdue amounts use the amount due (with charges); totals and
        pending/canceled amounts use base_value. Payments without a unit are
        left out of unit buckets.
        """
        if group_by not in GROUP_BY_OPTIONS:
            raise ValidationError(f"group_by must be one of {list(GROUP_BY_OPTIONS)}", ["group_by"])
        if condominium_id is not None:
            self._require_condominium(condominium_id)
        filters = PaymentFilter(
            condominium_id=condominium_id,
            unit_id=unit_id,
            status=parse_status(status) if status else None,
            due_from=start,
            due_to=end,
        )

        if group_by == "month":
            group_columns = (extract("year", Payment.due_date), extract("month", Payment.due_date))
        elif group_by == "unit":
            group_columns = (Payment.unit_id,)
        else:
            group_columns = ()
        columns = (*group_columns, Payment.status)
        width = len(group_columns)

        charged = {tuple(row[: width + 1]): row for row in self.repo.sum_by(columns, filters)}
        base = {
            tuple(row[: width + 1]): row
            for row in self.repo.sum_by(columns, filters, column=Payment.base_value)
        }

        report = PaymentReport(group_by=group_by)
        groups: dict[tuple, ReportGroup] = {}
        for key, base_row in base.items():
            *group_key, row_status = key
            base_total = to_decimal(base_row[width + 1])
            count = base_row[width + 2]
            charged_total = to_decimal(charged[key][width + 1])

            report.total_count += count
            report.total_value += base_total
            if row_status == PaymentStatus.PAID:
                report.total_paid += charged_total
            elif row_status == PaymentStatus.PENDING:
                report.total_pending += base_total
            elif row_status == PaymentStatus.OVERDUE:
                report.total_overdue += charged_total
            else:
                report.total_canceled += base_total

            if group_by == "status":
                group_key = [row_status]
            elif group_by == "unit" and group_key[0] is None:
                continue
            group = groups.get(tuple(group_key))
            if group is None:
                group = groups[tuple(group_key)] = self._new_group(group_by, group_key)
            group.total += base_total
            group.count += count
            if row_status == PaymentStatus.PAID:
                group.paid += charged_total
                group.paid_count += count
            elif row_status == PaymentStatus.PENDING:
                group.pending += base_total
                group.pending_count += count
            elif row_status == PaymentStatus.OVERDUE:
                group.overdue += charged_total
                group.overdue_count += count

        sort_key = (lambda g: g.label) if group_by == "unit" else (lambda g: g.key)
        report.groups = sorted(groups.values(), key=sort_key)
        logger.debug(
            f"Payment report group_by={group_by}: {report.total_count} payments, "
            f"{len(report.groups)} groups"
        )
        return report

    def _new_group(self, group_by: str, group_key: list) -> ReportGroup:
        if group_by == "month":
            first = date(int(group_key[0]), int(group_key[1]), 1)
            return ReportGroup(key=month_key(first), label=month_label(first))
        if group_by == "unit":
            unit = self.repo.get_unit(group_key[0])
            label = unit.label if unit else str(group_key[0])
            return ReportGroup(key=str(group_key[0]), label=label)
        status = PaymentStatus(group_key[0])
        return ReportGroup(key=status.value, label=status.value.capitalize())


__all__ = [
    "FinancialSummary",
    "CashFlowEntry",
    "CashFlow",
    "ForecastMonth",
    "Budget",
    "ReserveFund",
    "ReportGroup",
    "PaymentReport",
    "FinancialService",
]
