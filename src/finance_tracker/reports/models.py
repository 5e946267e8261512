"""
Report Models

Reports are read-only views over a snapshot for a date range. All amounts
are Decimals and are exported as plain decimal strings so that totals
survive a CSV or JSON round trip unchanged.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field, model_validator

from finance_tracker.models.periods import ONE_DAY


class ReportModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class DateRange(ReportModel):
    """Inclusive range of days."""
    
    start: date
    end: date
    
    @model_validator(mode='after')
    def check_order(self) -> 'DateRange':
        if self.end < self.start:
            raise ValueError("Date range end must not be before its start")
        return self
    
    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end
    
    def overlaps(self, start: date, end: date) -> bool:
        return start <= self.end and end >= self.start
    
    @classmethod
    def month_of(cls, day: date) -> 'DateRange':
        start = day.replace(day=1)
        return cls(start=start, end=start + relativedelta(months=1) - ONE_DAY)
    
    @classmethod
    def week_of(cls, day: date) -> 'DateRange':
        """Monday to Sunday around `day`."""
        start = day - relativedelta(days=day.weekday())
        return cls(start=start, end=start + relativedelta(days=6))
    
    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class CategoryAmount(ReportModel):
    category: str
    amount: Decimal
    percentage: Decimal = Field(
        ...,
        description="Share of total spending, rounded to 2 dp"
    )


class SpendingReport(ReportModel):
    """Expenses in a period broken down by category, largest first."""
    
    period: DateRange
    total_spent: Decimal
    category_breakdown: list[CategoryAmount] = Field(default_factory=list)


class ComparisonReport(ReportModel):
    """Income against expenses for a period."""
    
    period: DateRange
    income: Decimal
    expenses: Decimal
    net_balance: Decimal


class CategoryComparison(ReportModel):
    name: str
    spent: Decimal
    budgeted: Decimal
    
    @property
    def difference(self) -> Decimal:
        return self.budgeted - self.spent


class CategoryReport(ReportModel):
    """Spending per category against the budget covering the period."""
    
    period: DateRange
    categories: list[CategoryComparison] = Field(default_factory=list)


class BalancePoint(ReportModel):
    date: date
    balance: Decimal


class MonthlyTrend(ReportModel):
    month: str
    year: int
    income: Decimal
    expenses: Decimal
    net_balance: Decimal
    transaction_count: int


class PeriodStatistics(ReportModel):
    total_transactions: int
    total_income: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    average_transaction: Decimal
    largest_expense: Decimal
    largest_income: Decimal
    most_active_category: Optional[str] = None
