"""Report service: projects aggregation results into response schemas.

No arithmetic happens here beyond selecting figures, rounding to cents and
locale formatting; every number comes from FinancialService or
AnalyticsService.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Protocol

from pydantic import BaseModel
from sqlalchemy.orm import Session

from condo_finance.config import Settings, get_settings
from condo_finance.errors import NotFoundError
from condo_finance.models import Condominium, Payment, PaymentStatus
from condo_finance.schemas import (
    DashboardResponse,
    DelinquencyResponse,
    DelinquentPaymentResponse,
    FinancialReportResponse,
    Money,
    PaymentItem,
    SummaryResponse,
    TrendPointResponse,
    TrendResponse,
    UnitDebtResponse,
)
from condo_finance.services.analytics_service import (
    AnalyticsService,
    DelinquencyReport,
    TrendReport,
    UnitDelinquency,
)
from condo_finance.services.financial_service import FinancialService, FinancialSummary
from condo_finance.services.locale_service import format_amount, format_day
from condo_finance.services.money import month_bounds, month_label, round_money
from condo_finance.services.payment_repository import PaymentFilter, PaymentRepository

logger = logging.getLogger(__name__)


def to_money(value: Decimal) -> Money:
    """Round to cents and attach the locale-formatted text."""
    amount = round_money(value)
    return Money(amount=amount, formatted=format_amount(amount))


class ReportRenderer(Protocol):
    """Turns a report response into a document (JSON, PDF, ...)."""

    content_type: str

    def render(self, report: BaseModel) -> bytes: ...


class JsonReportRenderer:
    """Renders a response schema as UTF-8 JSON."""

    content_type = "application/json"

    def __init__(self, indent: int | None = 2):
        self.indent = indent

    def render(self, report: BaseModel) -> bytes:
        return report.model_dump_json(indent=self.indent).encode("utf-8")


class ReportService:
    """Builds the dashboard and financial report of a condominium."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.repo = PaymentRepository(db)
        self.financial = FinancialService(db, settings=self.settings, clock=clock)
        self.analytics = AnalyticsService(db, settings=self.settings, clock=clock)

    def _load_condominium(self, condominium_id: int) -> Condominium:
        condominium = self.repo.get_condominium(condominium_id)
        if condominium is None:
            logger.warning(f"Report requested for unknown condominium {condominium_id}")
            raise NotFoundError("Condominium", condominium_id)
        return condominium

    # Projections

    @staticmethod
    def _summary(summary: FinancialSummary) -> SummaryResponse:
        return SummaryResponse(
            total_received=to_money(summary.total_received),
            total_expense_paid=to_money(summary.total_expense_paid),
            total_pending=to_money(summary.total_pending),
            pending_expenses=to_money(summary.pending_expenses),
            total_overdue=to_money(summary.total_overdue),
            balance=to_money(summary.balance),
        )

    @staticmethod
    def _unit_debt(unit: UnitDelinquency) -> UnitDebtResponse:
        return UnitDebtResponse(
            unit_id=unit.unit_id,
            label=unit.label,
            count=unit.count,
            total=to_money(unit.total),
            payments=[
                DelinquentPaymentResponse(
                    id=p.payment_id,
                    description=p.description,
                    base_value=to_money(p.base_value),
                    final_value=to_money(p.final_value),
                    due_date=p.due_date,
                    days_late=p.days_late,
                )
                for p in unit.payments
            ],
        )

    def _delinquency(self, report: DelinquencyReport) -> DelinquencyResponse:
        return DelinquencyResponse(
            as_of=report.as_of,
            total_units=report.total_units,
            units_with_debt=report.units_with_debt,
            delinquency_rate=report.delinquency_rate,
            total_amount=to_money(report.total_amount),
            units=[self._unit_debt(u) for u in report.units],
            unassigned=self._unit_debt(report.unassigned) if report.unassigned else None,
        )

    @staticmethod
    def _trend(report: TrendReport) -> TrendResponse:
        return TrendResponse(
            start=report.start,
            end=report.end,
            mean_revenue=to_money(report.mean_revenue),
            mean_expense=to_money(report.mean_expense),
            mean_balance=to_money(report.mean_balance),
            revenue_trend=report.revenue_trend.value,
            expense_trend=report.expense_trend.value,
            points=[
                TrendPointResponse(
                    month=p.month,
                    revenue=to_money(p.revenue),
                    expense=to_money(p.expense),
                    balance=to_money(p.balance),
                )
                for p in report.points
            ],
        )

    @staticmethod
    def _payment_item(payment: Payment) -> PaymentItem:
        return PaymentItem(
            id=payment.id,
            description=payment.description,
            kind=payment.kind.value,
            status=payment.status.value,
            category=payment.category,
            unit_label=payment.unit.label if payment.unit else None,
            amount=to_money(payment.amount_due),
            due_date=payment.due_date,
            due_date_formatted=format_day(payment.due_date),
            paid_date=payment.paid_date,
        )

    # Reports

    def dashboard(self, condominium_id: int, as_of: date | None = None) -> DashboardResponse:
        """Current month overview.

        Args:
            condominium_id: Condominium ID
            as_of: Reference day; its month is the dashboard period (defaults to today)

        Returns:
            DashboardResponse with month summary, delinquency, the most recent
            paid payments and the nearest upcoming pending charges

        Raises:
            NotFoundError: If condominium does not exist
        """
        condominium = self._load_condominium(condominium_id)
        as_of = as_of or self.clock()
        start, end = month_bounds(as_of.year, as_of.month)
        top_n = self.settings.dashboard_top_n

        summary = self.financial.summarize(condominium_id, start, end)
        delinquency = self.analytics.delinquency_report(condominium_id, as_of)
        recent = self.repo.find_many(
            PaymentFilter(condominium_id=condominium_id, status=PaymentStatus.PAID),
            limit=top_n,
            order_by=(Payment.paid_date.desc(), Payment.id.desc()),
            with_unit=True,
        )
        upcoming = self.repo.find_many(
            PaymentFilter(
                condominium_id=condominium_id,
                status=PaymentStatus.PENDING,
                due_from=as_of,
            ),
            limit=top_n,
            order_by=(Payment.due_date, Payment.id),
            with_unit=True,
        )

        logger.info(f"Dashboard built for condominium {condominium_id} ({month_label(as_of)})")
        return DashboardResponse(
            condominium_id=condominium.id,
            condominium_name=condominium.name,
            period=month_label(as_of),
            as_of=as_of,
            summary=self._summary(summary),
            unit_count=delinquency.total_units,
            delinquency=self._delinquency(delinquency),
            recent_payments=[self._payment_item(p) for p in recent],
            upcoming_payments=[self._payment_item(p) for p in upcoming],
        )

    def financial_report(
        self,
        condominium_id: int,
        start: date | None = None,
        end: date | None = None,
        as_of: date | None = None,
        trend_months: int = 12,
    ) -> FinancialReportResponse:
        """Summary of a due-date range plus delinquency and trend as of a day.

        Raises:
            NotFoundError: If condominium does not exist
        """
        condominium = self._load_condominium(condominium_id)
        as_of = as_of or self.clock()

        summary = self.financial.summarize(condominium_id, start, end)
        delinquency = self.analytics.delinquency_report(condominium_id, as_of)
        trend = self.analytics.trend_analysis(condominium_id, months=trend_months, as_of=as_of)

        logger.info(f"Financial report built for condominium {condominium_id}: {start}..{end}")
        return FinancialReportResponse(
            condominium_id=condominium.id,
            condominium_name=condominium.name,
            start=start,
            end=end,
            generated_on=as_of,
            summary=self._summary(summary),
            delinquency=self._delinquency(delinquency),
            trend=self._trend(trend),
        )


__all__ = ["to_money", "ReportRenderer", "JsonReportRenderer", "ReportService"]
