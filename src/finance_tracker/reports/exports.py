"""
Report Exports

CSV files have a fixed header row per report type:

    spending    Category,Amount,Percentage   (first row "Total Spent")
    comparison  Metric,Amount
    category    Category,Spent,Budgeted,Difference

JSON exports share one envelope: {period, summary, breakdown[]}, plus the
export time and format metadata.

Amounts are written as plain decimal strings, never floats, so the totals
read back are exactly the totals computed.
"""

import csv
import io
import json
from datetime import datetime
from typing import Any, Optional, Union

from finance_tracker.reports.models import (
    CategoryReport,
    ComparisonReport,
    DateRange,
    SpendingReport,
)
from finance_tracker.reports.service import ReportService


EXPORT_VERSION = "1.0"

SPENDING_HEADER = ["Category", "Amount", "Percentage"]
COMPARISON_HEADER = ["Metric", "Amount"]
CATEGORY_HEADER = ["Category", "Spent", "Budgeted", "Difference"]

Report = Union[SpendingReport, ComparisonReport, CategoryReport]


def _write_csv(rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


# =============================================================================
# CSV
# =============================================================================

def spending_report_csv(report: SpendingReport) -> str:
    rows = [SPENDING_HEADER, ["Total Spent", str(report.total_spent), "100%"]]
    rows.extend(
        [item.category, str(item.amount), f"{item.percentage}%"]
        for item in report.category_breakdown
    )
    return _write_csv(rows)


def comparison_report_csv(report: ComparisonReport) -> str:
    return _write_csv([
        COMPARISON_HEADER,
        ["Income", str(report.income)],
        ["Expenses", str(report.expenses)],
        ["Net Balance", str(report.net_balance)],
    ])


def category_report_csv(report: CategoryReport) -> str:
    rows = [CATEGORY_HEADER]
    rows.extend(
        [item.name, str(item.spent), str(item.budgeted), str(item.difference)]
        for item in report.categories
    )
    return _write_csv(rows)


def report_csv(report: Report) -> str:
    if isinstance(report, SpendingReport):
        return spending_report_csv(report)
    if isinstance(report, ComparisonReport):
        return comparison_report_csv(report)
    if isinstance(report, CategoryReport):
        return category_report_csv(report)
    raise TypeError(f"No CSV export for {type(report).__name__}")


# =============================================================================
# JSON
# =============================================================================

def report_envelope(report: Report) -> dict[str, Any]:
    """The {period, summary, breakdown[]} shape shared by every JSON export."""
    if isinstance(report, SpendingReport):
        summary = {"total_spent": str(report.total_spent)}
        breakdown = [
            {
                "category": item.category,
                "amount": str(item.amount),
                "percentage": str(item.percentage),
            }
            for item in report.category_breakdown
        ]
    elif isinstance(report, ComparisonReport):
        summary = {
            "income": str(report.income),
            "expenses": str(report.expenses),
            "net_balance": str(report.net_balance),
        }
        breakdown = []
    elif isinstance(report, CategoryReport):
        summary = {
            "total_spent": str(sum((c.spent for c in report.categories), 0)),
            "total_budgeted": str(sum((c.budgeted for c in report.categories), 0)),
        }
        breakdown = [
            {
                "category": item.name,
                "spent": str(item.spent),
                "budgeted": str(item.budgeted),
                "difference": str(item.difference),
            }
            for item in report.categories
        ]
    else:
        raise TypeError(f"No JSON export for {type(report).__name__}")
    
    return {
        "period": report.period.to_dict(),
        "summary": summary,
        "breakdown": breakdown,
    }


def report_json(report: Report, exported_at: Optional[datetime] = None) -> str:
    data = report_envelope(report)
    data["exported_at"] = (exported_at or datetime.now()).isoformat()
    data["metadata"] = {"version": EXPORT_VERSION, "format": "json"}
    return json.dumps(data, indent=2)


def comprehensive_report(
    service: ReportService,
    period: DateRange,
    fmt: str = "json",
    exported_at: Optional[datetime] = None,
) -> str:
    """Spending, income-vs-expense and category reports in one document."""
    spending = service.spending_report(period)
    comparison = service.income_vs_expense_report(period)
    categories = service.category_report(period)
    
    if fmt == "json":
        top = spending.category_breakdown[0].category if spending.category_breakdown else None
        data = {
            "period": period.to_dict(),
            "summary": {
                "total_income": str(comparison.income),
                "total_expenses": str(comparison.expenses),
                "net_balance": str(comparison.net_balance),
                "top_spending_category": top,
                "category_count": len(spending.category_breakdown),
            },
            "breakdown": report_envelope(spending)["breakdown"],
            "comparison": report_envelope(comparison)["summary"],
            "categories": report_envelope(categories)["breakdown"],
            "exported_at": (exported_at or datetime.now()).isoformat(),
            "metadata": {"version": EXPORT_VERSION, "format": "json"},
        }
        return json.dumps(data, indent=2)
    
    if fmt == "csv":
        return "\n".join([
            "=== FINANCIAL SUMMARY ===",
            f"Period: {period.start.isoformat()} to {period.end.isoformat()}",
            "",
            "=== INCOME VS EXPENSES ===",
            comparison_report_csv(comparison),
            "",
            "=== SPENDING BY CATEGORY ===",
            spending_report_csv(spending),
            "",
            "=== BUDGET COMPARISON ===",
            category_report_csv(categories),
        ]) + "\n"
    
    raise ValueError(f"Unsupported export format: {fmt}")
