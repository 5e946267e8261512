"""
Report Service

Deterministic aggregations over a ledger snapshot. Like the derivation
engine, reports never mutate what they read: a service is bound to one
immutable snapshot and can be rebuilt cheaply for the next one.

Income and expense are told apart by transaction type. Amounts are summed
as absolute values for expenses, matching budget spending.
"""

from collections import Counter, defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from finance_tracker.engine.derivations import ZERO
from finance_tracker.models.entities import Transaction
from finance_tracker.models.snapshot import LedgerSnapshot
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


HUNDREDTH = Decimal("0.01")


class ReportService:
    """
    Builds reports from one snapshot.
    
    Usage:
        service = ReportService(snapshot)
        report = service.spending_report(DateRange.month_of(today))
    """
    
    def __init__(self, snapshot: LedgerSnapshot):
        self._snapshot = snapshot
    
    def _transactions_in(self, period: DateRange) -> list[Transaction]:
        return [t for t in self._snapshot.transactions if period.contains(t.date)]
    
    @staticmethod
    def _income(transactions: list[Transaction]) -> Decimal:
        return sum((t.amount for t in transactions if t.is_income), ZERO)
    
    @staticmethod
    def _expenses(transactions: list[Transaction]) -> Decimal:
        return sum((t.spent_amount for t in transactions if t.is_expense), ZERO)
    
    # =========================================================================
    # Reports
    # =========================================================================
    
    def spending_report(self, period: DateRange) -> SpendingReport:
        expenses = [t for t in self._transactions_in(period) if t.is_expense]
        total = self._expenses(expenses)
        
        by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for t in expenses:
            by_category[t.category] += t.spent_amount
        
        breakdown = [
            CategoryAmount(
                category=category,
                amount=amount,
                percentage=(
                    (amount * 100 / total).quantize(HUNDREDTH, rounding=ROUND_HALF_UP)
                    if total > 0 else ZERO
                ),
            )
            for category, amount in by_category.items()
        ]
        breakdown.sort(key=lambda c: c.amount, reverse=True)
        
        return SpendingReport(
            period=period,
            total_spent=total,
            category_breakdown=breakdown,
        )
    
    def income_vs_expense_report(self, period: DateRange) -> ComparisonReport:
        transactions = self._transactions_in(period)
        income = self._income(transactions)
        expenses = self._expenses(transactions)
        return ComparisonReport(
            period=period,
            income=income,
            expenses=expenses,
            net_balance=income - expenses,
        )
    
    def category_report(self, period: DateRange) -> CategoryReport:
        """
        Spent per category next to the limit of the active budget whose
        window overlaps the period (0 when there is none).
        """
        spending = self.spending_report(period)
        categories = []
        for item in spending.category_breakdown:
            budget = next(
                (
                    b for b in self._snapshot.budgets
                    if b.category == item.category
                    and b.is_active
                    and period.overlaps(b.start_date, b.end_date)
                ),
                None,
            )
            categories.append(CategoryComparison(
                name=item.category,
                spent=item.amount,
                budgeted=budget.limit if budget else ZERO,
            ))
        return CategoryReport(period=period, categories=categories)
    
    def balance_history(
        self,
        account_id: str,
        period: Optional[DateRange] = None,
    ) -> list[BalancePoint]:
        """
        Running balance after each of the account's transactions, in date order.
        
        With a period, the history starts from the balance carried into the
        period rather than from the opening balance.
        """
        account = self._snapshot.get_account(account_id)
        if account is None:
            return []
        
        transactions = sorted(
            self._snapshot.transactions_for_account(account_id),
            key=lambda t: (t.date, t.created_at),
        )
        running = account.initial_balance
        history = []
        for t in transactions:
            if period is not None and t.date < period.start:
                running += t.amount
                continue
            if period is not None and t.date > period.end:
                break
            running += t.amount
            history.append(BalancePoint(date=t.date, balance=running))
        return history
    
    def monthly_trends(self, today: date, months: int = 12) -> list[MonthlyTrend]:
        """One entry per calendar month, oldest first, ending with today's month."""
        trends = []
        for back in range(months - 1, -1, -1):
            period = DateRange.month_of(today - relativedelta(months=back))
            transactions = self._transactions_in(period)
            income = self._income(transactions)
            expenses = self._expenses(transactions)
            trends.append(MonthlyTrend(
                month=period.start.strftime("%b"),
                year=period.start.year,
                income=income,
                expenses=expenses,
                net_balance=income - expenses,
                transaction_count=len(transactions),
            ))
        return trends
    
    def statistics(self, period: DateRange) -> PeriodStatistics:
        transactions = self._transactions_in(period)
        income = self._income(transactions)
        expenses = self._expenses(transactions)
        
        expense_amounts = [t.spent_amount for t in transactions if t.is_expense]
        income_amounts = [t.amount for t in transactions if t.is_income]
        average = (
            abs(sum((t.amount for t in transactions), ZERO)) / len(transactions)
            if transactions else ZERO
        )
        counts = Counter(t.category for t in transactions)
        
        return PeriodStatistics(
            total_transactions=len(transactions),
            total_income=income,
            total_expenses=expenses,
            net_balance=income - expenses,
            average_transaction=average.quantize(HUNDREDTH, rounding=ROUND_HALF_UP),
            largest_expense=max(expense_amounts, default=ZERO),
            largest_income=max(income_amounts, default=ZERO),
            most_active_category=counts.most_common(1)[0][0] if counts else None,
        )
    
    def available_categories(self) -> list[str]:
        return sorted({t.category for t in self._snapshot.transactions})
