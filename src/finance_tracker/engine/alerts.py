"""
Alert Engine

Turns derived budget and goal state into Alert records.

Thresholds apply to the uncapped percentage:
    < warning            -> no alert
    [warning, danger)    -> WARNING
    >= danger            -> DANGER

Every evaluation regenerates alerts from scratch, one per entity at most,
so re-evaluating never accumulates duplicates. Dismissal is owned by the
caller and applied with `filter_dismissed()`.
"""

from datetime import datetime
from typing import Iterable, Optional

from finance_tracker.config import EngineSettings
from finance_tracker.engine.derivations import (
    budget_progress,
    budget_spent,
    goal_progress,
    progress_from_spent,
)
from finance_tracker.engine.rollover import is_active_at
from finance_tracker.engine.thresholds import HUNDRED, severity_for
from finance_tracker.models.currency import format_money
from finance_tracker.models.derived import (
    Alert,
    AlertSeverity,
    BudgetProgress,
    GoalProgress,
    GoalStatus,
)
from finance_tracker.models.entities import Budget, Goal, Transaction
from finance_tracker.models.snapshot import LedgerSnapshot


# =============================================================================
# Budgets
# =============================================================================

def budget_alert_message(progress: BudgetProgress) -> str:
    if progress.spent > progress.limit:
        overage = format_money(progress.spent - progress.limit)
        return f"You have exceeded your {progress.category} budget by {overage}"
    if progress.raw_percentage >= HUNDRED:
        return f"You have reached your {progress.category} budget limit"
    return f"You have used {progress.raw_percentage:.1f}% of your {progress.category} budget"


def budget_alert(progress: BudgetProgress, settings: EngineSettings) -> Optional[Alert]:
    severity = severity_for(progress.raw_percentage, settings)
    if severity is None:
        return None
    return Alert(
        entity_id=progress.budget_id,
        entity_type="budget",
        category=progress.category,
        severity=severity,
        message=budget_alert_message(progress),
        percentage=progress.raw_percentage,
    )


def budget_alerts(
    budgets: Iterable[Budget],
    transactions: list[Transaction],
    now: datetime,
    settings: EngineSettings,
) -> list[Alert]:
    alerts = []
    for budget in budgets:
        if not is_active_at(budget, now):
            continue
        alert = budget_alert(budget_progress(budget, transactions, now, settings), settings)
        if alert is not None:
            alerts.append(alert)
    return alerts


def preview_budget_alerts(
    snapshot: LedgerSnapshot,
    candidate: Transaction,
    now: datetime,
    settings: EngineSettings,
) -> list[Alert]:
    """
    Alerts a candidate transaction would raise if it were committed.
    
    Uses the pre-commit spent total plus the candidate's absolute amount.
    Nothing in the snapshot is touched.
    """
    if not candidate.is_expense:
        return []
    
    alerts = []
    for budget in snapshot.budgets:
        if not is_active_at(budget, now) or budget.category != candidate.category:
            continue
        if not budget.contains(candidate.date):
            continue
        # An update re-previews an existing transaction; don't count it twice
        existing = [t for t in snapshot.transactions if t.id != candidate.id]
        spent = budget_spent(budget, existing) + candidate.spent_amount
        alert = budget_alert(progress_from_spent(budget, spent, now, settings), settings)
        if alert is not None:
            alerts.append(alert)
    return alerts


# =============================================================================
# Goals
# =============================================================================

def goal_alert(
    goal: Goal,
    progress: GoalProgress,
    settings: EngineSettings,
) -> Optional[Alert]:
    """
    Overdue incomplete goals are DANGER. Goals behind schedule whose target
    date is inside the configured window are WARNING.
    """
    if progress.status == GoalStatus.OVERDUE:
        return Alert(
            entity_id=goal.id,
            entity_type="goal",
            category=goal.name,
            severity=AlertSeverity.DANGER,
            message=(
                f'Goal "{goal.name}" is overdue. Consider adjusting your '
                "target date or increasing contributions."
            ),
            percentage=progress.percentage,
        )
    if (
        progress.status == GoalStatus.BEHIND
        and progress.days_remaining <= settings.goal_behind_schedule_window_days
    ):
        daily = format_money(progress.required_daily_contribution)
        return Alert(
            entity_id=goal.id,
            entity_type="goal",
            category=goal.name,
            severity=AlertSeverity.WARNING,
            message=(
                f'Goal "{goal.name}" is behind schedule. You need {daily} '
                "per day to stay on track."
            ),
            percentage=progress.percentage,
        )
    return None


def goal_alerts(goals: Iterable[Goal], now: datetime, settings: EngineSettings) -> list[Alert]:
    alerts = []
    for goal in goals:
        if goal.is_completed:
            continue
        alert = goal_alert(goal, goal_progress(goal, now), settings)
        if alert is not None:
            alerts.append(alert)
    return alerts


# =============================================================================
# Evaluation
# =============================================================================

def evaluate_alerts(
    snapshot: LedgerSnapshot,
    now: datetime,
    settings: EngineSettings,
) -> list[Alert]:
    """All current alerts, budgets first, at most one per entity."""
    transactions = list(snapshot.transactions)
    return (
        budget_alerts(snapshot.budgets, transactions, now, settings)
        + goal_alerts(snapshot.goals, now, settings)
    )


def filter_dismissed(alerts: Iterable[Alert], dismissed_ids: Iterable[str]) -> list[Alert]:
    """Drop alerts whose entity id is in the caller's dismissal set."""
    dismissed = set(dismissed_ids)
    return [a for a in alerts if a.entity_id not in dismissed]


def highest_severity(alerts: Iterable[Alert]) -> Optional[AlertSeverity]:
    severities = {a.severity for a in alerts}
    if AlertSeverity.DANGER in severities:
        return AlertSeverity.DANGER
    if AlertSeverity.WARNING in severities:
        return AlertSeverity.WARNING
    return None
