"""
Derivation Engine

Pure functions from (entity, transactions, now) to derived numbers.
Nothing in this module mutates its inputs or reads the clock; `now` is
always passed in.

Budget matching is exact-string on category: "Food" and "food" are
different budgets.
"""

import math
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from finance_tracker.config import EngineSettings
from finance_tracker.models.currency import convert
from finance_tracker.engine.thresholds import HUNDRED, percentage_of, status_for
from finance_tracker.models.derived import (
    BudgetProgress,
    ContributionSuggestion,
    GoalMilestone,
    GoalProgress,
    GoalStatus,
)
from finance_tracker.models.entities import Account, Budget, Goal, Transaction


ZERO = Decimal("0")
CENT = Decimal("0.01")
SECONDS_PER_DAY = 86400
MILESTONES = (25, 50, 75, 100)


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# Accounts
# =============================================================================

def account_balance(account: Account, transactions: Iterable[Transaction]) -> Decimal:
    """
    initial_balance + signed sum of the account's transactions.
    
    Addition is commutative, so insertion order never matters.
    """
    return account.initial_balance + sum(
        (t.amount for t in transactions if t.account_id == account.id),
        ZERO,
    )


def refresh_account(
    account: Account,
    transactions: Iterable[Transaction],
    now: datetime,
) -> Account:
    """Return the account with its cached balance re-derived."""
    balance = account_balance(account, transactions)
    if balance == account.balance:
        return account
    return account.touched(now, balance=balance)


def net_worth(accounts: Iterable[Account], currency: str) -> Decimal:
    """Sum of live account balances converted to `currency` with the fixed table."""
    return sum(
        (convert(a.balance, a.currency, currency) for a in accounts if a.is_live),
        ZERO,
    )


# =============================================================================
# Budgets
# =============================================================================

def transactions_for_budget(
    budget: Budget,
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """Expenses in the budget's category dated inside its inclusive window."""
    return [
        t for t in transactions
        if t.category == budget.category
        and t.is_expense
        and budget.contains(t.date)
    ]


def budget_spent(budget: Budget, transactions: Iterable[Transaction]) -> Decimal:
    """Sum of absolute expense amounts that count against the budget."""
    return sum(
        (t.spent_amount for t in transactions_for_budget(budget, transactions)),
        ZERO,
    )


def budget_days_remaining(budget: Budget, now: datetime) -> int:
    """Whole days left in the window, counting today."""
    return max(0, (budget.end_date - now.date()).days + 1)


def progress_from_spent(
    budget: Budget,
    spent: Decimal,
    now: datetime,
    settings: EngineSettings,
) -> BudgetProgress:
    raw = percentage_of(spent, budget.limit)
    return BudgetProgress(
        budget_id=budget.id,
        category=budget.category,
        limit=budget.limit,
        spent=spent,
        remaining=max(ZERO, budget.limit - spent),
        percentage=min(HUNDRED, raw),
        raw_percentage=raw,
        status=status_for(raw, settings),
        days_remaining=budget_days_remaining(budget, now),
    )


def budget_progress(
    budget: Budget,
    transactions: Iterable[Transaction],
    now: datetime,
    settings: EngineSettings,
) -> BudgetProgress:
    """
    Spending against a budget.
    
    `percentage` is capped at 100 for display. `raw_percentage` is not, and
    it is what status and alert severity are computed from.
    """
    return progress_from_spent(budget, budget_spent(budget, transactions), now, settings)


# =============================================================================
# Goals
# =============================================================================

def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def goal_days_remaining(goal: Goal, now: datetime) -> int:
    return max(0, _ceil_days(goal.target_date - now))


def required_daily_contribution(goal: Goal, now: datetime) -> Decimal:
    """
    What must be saved per day to finish on time.
    
    Zero once achieved. When the target date has arrived or passed the
    whole remainder is due today (days remaining is treated as 1).
    """
    if goal.is_achieved:
        return ZERO
    days = goal_days_remaining(goal, now)
    remaining = max(ZERO, goal.target_amount - goal.current_amount)
    return to_cents(remaining / (days if days > 0 else 1))


def projected_completion_date(goal: Goal, now: datetime):
    """
    Linear projection from the average daily progress since creation.
    
    Returns None when no projection is available: the goal has made no
    progress yet, or at the current rate it would finish past the last
    date a datetime can hold.
    """
    if goal.is_achieved:
        return now
    days_elapsed = max(1, _ceil_days(now - goal.created_at))
    daily_rate = goal.current_amount / days_elapsed
    if daily_rate <= 0:
        return None
    remaining = goal.target_amount - goal.current_amount
    days = math.ceil(remaining / daily_rate)
    if days > (datetime.max - now).days:
        return None
    return now + timedelta(days=days)


def goal_milestones(goal: Goal) -> list[GoalMilestone]:
    return [
        GoalMilestone(
            percentage=pct,
            amount=goal.target_amount * pct / HUNDRED,
            achieved=goal.current_amount >= goal.target_amount * pct / HUNDRED,
        )
        for pct in MILESTONES
    ]


def goal_status(goal: Goal, projected, now: datetime) -> GoalStatus:
    if goal.is_completed:
        return GoalStatus.COMPLETED
    if now > goal.target_date:
        return GoalStatus.OVERDUE
    if goal.is_achieved or (projected is not None and projected <= goal.target_date):
        return GoalStatus.ON_TRACK
    return GoalStatus.BEHIND


def goal_progress(goal: Goal, now: datetime) -> GoalProgress:
    """Progress summary for a goal at `now`."""
    percentage = percentage_of(goal.current_amount, goal.target_amount)
    projected = projected_completion_date(goal, now)
    return GoalProgress(
        goal_id=goal.id,
        name=goal.name,
        target_amount=goal.target_amount,
        current_amount=goal.current_amount,
        remaining=max(ZERO, goal.target_amount - goal.current_amount),
        percentage=percentage,
        display_percentage=min(HUNDRED, percentage),
        days_remaining=goal_days_remaining(goal, now),
        required_daily_contribution=required_daily_contribution(goal, now),
        projected_completion_date=projected,
        is_on_track=goal.is_achieved or (
            projected is not None and projected <= goal.target_date
        ),
        status=goal_status(goal, projected, now),
        milestones=goal_milestones(goal),
    )


def suggest_contribution(goal: Goal, now: datetime) -> ContributionSuggestion:
    daily = required_daily_contribution(goal, now)
    return ContributionSuggestion(
        goal_id=goal.id,
        daily=daily,
        weekly=daily * 7,
        monthly=daily * 30,
    )
