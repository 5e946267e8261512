"""
Budget period arithmetic.

Period windows are whole, inclusive days: a monthly budget starting on
2024-01-01 covers 2024-01-01 through 2024-01-31.
"""

from datetime import date, timedelta
from enum import Enum

from dateutil.relativedelta import relativedelta


class BudgetPeriod(str, Enum):
    """Supported budget periods."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


ONE_DAY = timedelta(days=1)


def period_delta(period: BudgetPeriod) -> relativedelta:
    """Length of one period."""
    if BudgetPeriod(period) == BudgetPeriod.WEEKLY:
        return relativedelta(weeks=1)
    return relativedelta(months=1)


def calculate_end_date(start_date: date, period: BudgetPeriod) -> date:
    """
    Last day (inclusive) of the period beginning on start_date.
    
    Month arithmetic clamps to the end of shorter months, so a monthly
    budget starting on 2024-01-31 ends on 2024-02-28.
    """
    return start_date + period_delta(period) - ONE_DAY


def next_period_start(end_date: date) -> date:
    """First day of the period following one that ends on end_date."""
    return end_date + ONE_DAY
