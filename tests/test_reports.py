"""Tests for report aggregations and their exports."""

import json

import pytest
from datetime import date, datetime
from decimal import Decimal

from finance_tracker.models import TransactionType
from finance_tracker.reports import (
    DateRange,
    ReportService,
    comprehensive_report,
    report_csv,
    report_json,
)

from factories import make_account, make_budget, make_snapshot, make_transaction


JANUARY = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))


def sample_service():
    account = make_account("1000")
    transactions = [
        make_transaction(account.id, "3000", category="Salary", day=date(2024, 1, 1)),
        make_transaction(account.id, "-1200", category="Rent", day=date(2024, 1, 2)),
        make_transaction(account.id, "-200", category="Food", day=date(2024, 1, 5)),
        make_transaction(account.id, "-100", category="Food", day=date(2024, 1, 12)),
        make_transaction(account.id, "-50", category="Food", day=date(2024, 2, 3)),
    ]
    snapshot = make_snapshot(
        accounts=[account],
        transactions=transactions,
        budgets=[make_budget("Food", "500", start=date(2024, 1, 1))],
    )
    return ReportService(snapshot), account


class TestDateRange:
    
    def test_month_and_week(self):
        assert DateRange.month_of(date(2024, 2, 17)) == DateRange(
            start=date(2024, 2, 1), end=date(2024, 2, 29)
        )
        assert DateRange.week_of(date(2024, 1, 10)) == DateRange(
            start=date(2024, 1, 8), end=date(2024, 1, 14)
        )
    
    def test_end_before_start_is_rejected(self):
        with pytest.raises(ValueError):
            DateRange(start=date(2024, 2, 1), end=date(2024, 1, 1))


class TestReportService:
    
    def test_spending_report(self):
        service, _ = sample_service()
        report = service.spending_report(JANUARY)
        assert report.total_spent == Decimal("1500")
        assert [(c.category, c.amount, c.percentage) for c in report.category_breakdown] == [
            ("Rent", Decimal("1200"), Decimal("80.00")),
            ("Food", Decimal("300"), Decimal("20.00")),
        ]
    
    def test_income_vs_expense(self):
        service, _ = sample_service()
        report = service.income_vs_expense_report(JANUARY)
        assert report.income == Decimal("3000")
        assert report.expenses == Decimal("1500")
        assert report.net_balance == Decimal("1500")
    
    def test_category_report_uses_overlapping_budget(self):
        service, _ = sample_service()
        categories = {c.name: c for c in service.category_report(JANUARY).categories}
        assert categories["Food"].budgeted == Decimal("500")
        assert categories["Food"].difference == Decimal("200")
        assert categories["Rent"].budgeted == Decimal("0")
    
    def test_balance_history_starts_from_opening_balance(self):
        service, account = sample_service()
        history = service.balance_history(account.id)
        assert [p.balance for p in history] == [
            Decimal("4000"),
            Decimal("2800"),
            Decimal("2600"),
            Decimal("2500"),
            Decimal("2450"),
        ]
    
    def test_balance_history_carries_into_period(self):
        service, account = sample_service()
        history = service.balance_history(account.id, DateRange.month_of(date(2024, 2, 1)))
        assert [(p.date, p.balance) for p in history] == [(date(2024, 2, 3), Decimal("2450"))]
        assert service.balance_history("missing") == []
    
    def test_monthly_trends(self):
        service, _ = sample_service()
        trends = service.monthly_trends(date(2024, 2, 15), months=2)
        assert [(t.month, t.year) for t in trends] == [("Jan", 2024), ("Feb", 2024)]
        assert trends[0].transaction_count == 4
        assert trends[1].expenses == Decimal("50")
        assert trends[1].net_balance == Decimal("-50")
    
    def test_statistics(self):
        service, _ = sample_service()
        stats = service.statistics(JANUARY)
        assert stats.total_transactions == 4
        assert stats.average_transaction == Decimal("375.00")
        assert stats.largest_expense == Decimal("1200")
        assert stats.largest_income == Decimal("3000")
        assert stats.most_active_category == "Food"
    
    def test_empty_period(self):
        service, _ = sample_service()
        empty = DateRange(start=date(2023, 1, 1), end=date(2023, 1, 31))
        assert service.spending_report(empty).category_breakdown == []
        assert service.statistics(empty).most_active_category is None
    
    def test_income_is_told_apart_by_type(self):
        account = make_account()
        refund = make_transaction(
            account.id, "-20", category="Food", transaction_type=TransactionType.INCOME
        )
        service = ReportService(make_snapshot(accounts=[account], transactions=[refund]))
        assert service.spending_report(JANUARY).total_spent == Decimal("0")
    
    def test_available_categories(self):
        service, _ = sample_service()
        assert service.available_categories() == ["Food", "Rent", "Salary"]


class TestExports:
    
    def test_spending_csv(self):
        service, _ = sample_service()
        csv_text = report_csv(service.spending_report(JANUARY))
        assert csv_text.splitlines() == [
            "Category,Amount,Percentage",
            "Total Spent,1500,100%",
            "Rent,1200,80.00%",
            "Food,300,20.00%",
        ]
    
    def test_comparison_and_category_csv(self):
        service, _ = sample_service()
        assert report_csv(service.income_vs_expense_report(JANUARY)).splitlines() == [
            "Metric,Amount",
            "Income,3000",
            "Expenses,1500",
            "Net Balance,1500",
        ]
        assert report_csv(service.category_report(JANUARY)).splitlines()[0] == (
            "Category,Spent,Budgeted,Difference"
        )
    
    def test_json_envelope(self):
        service, _ = sample_service()
        data = json.loads(report_json(
            service.spending_report(JANUARY), exported_at=datetime(2024, 2, 1)
        ))
        assert data["period"] == {"start": "2024-01-01", "end": "2024-01-31"}
        assert data["summary"] == {"total_spent": "1500"}
        assert data["breakdown"][0] == {"category": "Rent", "amount": "1200", "percentage": "80.00"}
        assert data["exported_at"] == "2024-02-01T00:00:00"
        assert data["metadata"] == {"version": "1.0", "format": "json"}
    
    def test_comprehensive_report(self):
        service, _ = sample_service()
        data = json.loads(comprehensive_report(service, JANUARY, exported_at=datetime(2024, 2, 1)))
        assert data["summary"]["top_spending_category"] == "Rent"
        assert data["summary"]["category_count"] == 2
        
        text = comprehensive_report(service, JANUARY, fmt="csv")
        assert "=== BUDGET COMPARISON ===" in text
        
        with pytest.raises(ValueError):
            comprehensive_report(service, JANUARY, fmt="xml")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
