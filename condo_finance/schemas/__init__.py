"""Response schemas."""

from condo_finance.schemas.reports import (
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

__all__ = [
    "DashboardResponse",
    "DelinquencyResponse",
    "DelinquentPaymentResponse",
    "FinancialReportResponse",
    "Money",
    "PaymentItem",
    "SummaryResponse",
    "TrendPointResponse",
    "TrendResponse",
    "UnitDebtResponse",
]
