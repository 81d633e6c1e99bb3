"""Pydantic schemas for dashboard and financial report responses."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class Money(BaseModel):
    """Monetary amount rounded to cents plus its locale-formatted text."""

    amount: Decimal = Field(..., description="Amount rounded to 2 places")
    formatted: str = Field(..., description="Locale formatted amount, e.g. 'R$ 1.234,56'")


class SummaryResponse(BaseModel):
    total_received: Money
    total_expense_paid: Money
    total_pending: Money
    pending_expenses: Money
    total_overdue: Money
    balance: Money


class PaymentItem(BaseModel):
    """Payment row shown in dashboard lists."""

    id: int
    description: str
    kind: str
    status: str
    category: str | None = None
    unit_label: str | None = None
    amount: Money
    due_date: date
    due_date_formatted: str
    paid_date: date | None = None

    model_config = ConfigDict(from_attributes=True)


class DelinquentPaymentResponse(BaseModel):
    id: int
    description: str
    base_value: Money
    final_value: Money
    due_date: date
    days_late: int


class UnitDebtResponse(BaseModel):
    unit_id: int | None = None
    label: str
    count: int
    total: Money
    payments: list[DelinquentPaymentResponse] = Field(default_factory=list)


class DelinquencyResponse(BaseModel):
    as_of: date
    total_units: int
    units_with_debt: int
    delinquency_rate: Decimal = Field(..., description="Percentage of units with overdue revenue")
    total_amount: Money
    units: list[UnitDebtResponse] = Field(default_factory=list)
    unassigned: UnitDebtResponse | None = None


class TrendPointResponse(BaseModel):
    month: str = Field(..., description="MM/YYYY")
    revenue: Money
    expense: Money
    balance: Money


class TrendResponse(BaseModel):
    start: date
    end: date
    mean_revenue: Money
    mean_expense: Money
    mean_balance: Money
    revenue_trend: str = Field(..., description="growing, declining or stable")
    expense_trend: str = Field(..., description="growing, declining or stable")
    points: list[TrendPointResponse] = Field(default_factory=list)


class DashboardResponse(BaseModel):
    """Current month overview of a condominium."""

    condominium_id: int
    condominium_name: str
    period: str = Field(..., description="Current month, MM/YYYY")
    as_of: date
    summary: SummaryResponse
    unit_count: int
    delinquency: DelinquencyResponse
    recent_payments: list[PaymentItem] = Field(default_factory=list)
    upcoming_payments: list[PaymentItem] = Field(default_factory=list)


class FinancialReportResponse(BaseModel):
    """Financial report of a period: summary, delinquency and trend."""

    condominium_id: int
    condominium_name: str
    start: date | None = None
    end: date | None = None
    generated_on: date
    summary: SummaryResponse
    delinquency: DelinquencyResponse
    trend: TrendResponse
