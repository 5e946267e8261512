"""Reports over a ledger snapshot and their CSV/JSON exports."""

from finance_tracker.reports.exports import (
    category_report_csv,
    comparison_report_csv,
    comprehensive_report,
    report_csv,
    report_envelope,
    report_json,
    spending_report_csv,
)
from finance_tracker.reports.models import (
    BalancePoint,
    CategoryAmount,
    CategoryComparison,
    CategoryReport,
    ComparisonReport,
    DateRange,
    MonthlyTrend,
    PeriodStatistics,
    SpendingReport,
)
from finance_tracker.reports.service import ReportService

__all__ = [
    "ReportService",
    # Models
    "BalancePoint",
    "CategoryAmount",
    "CategoryComparison",
    "CategoryReport",
    "ComparisonReport",
    "DateRange",
    "MonthlyTrend",
    "PeriodStatistics",
    "SpendingReport",
    # Exports
    "category_report_csv",
    "comparison_report_csv",
    "comprehensive_report",
    "report_csv",
    "report_envelope",
    "report_json",
    "spending_report_csv",
]
