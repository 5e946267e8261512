"""
Derivation engine: pure calculations over a ledger snapshot.

- derivations: balances, budget progress, goal progress
- rollover: budget period state machine
- alerts: threshold policy
- recompute: the declared, dependency-ordered recompute plan
"""

from finance_tracker.engine.alerts import (
    budget_alert,
    budget_alerts,
    evaluate_alerts,
    filter_dismissed,
    goal_alert,
    goal_alerts,
    highest_severity,
    preview_budget_alerts,
)
from finance_tracker.engine.derivations import (
    account_balance,
    budget_progress,
    budget_spent,
    goal_progress,
    net_worth,
    refresh_account,
    required_daily_contribution,
    projected_completion_date,
    suggest_contribution,
    transactions_for_budget,
)
from finance_tracker.engine.recompute import (
    PLAN,
    AffectedScope,
    RecomputeOutcome,
    RecomputeRunner,
    RecomputeStep,
    steps_for,
)
from finance_tracker.engine.rollover import (
    budget_state,
    build_successor,
    find_overlapping_active,
    is_active_at,
    roll_over,
)
from finance_tracker.engine.thresholds import severity_for, status_for

__all__ = [
    # Derivations
    "account_balance",
    "budget_progress",
    "budget_spent",
    "goal_progress",
    "net_worth",
    "refresh_account",
    "required_daily_contribution",
    "projected_completion_date",
    "suggest_contribution",
    "transactions_for_budget",
    # Thresholds and alerts
    "severity_for",
    "status_for",
    "budget_alert",
    "budget_alerts",
    "goal_alert",
    "goal_alerts",
    "evaluate_alerts",
    "filter_dismissed",
    "highest_severity",
    "preview_budget_alerts",
    # Rollover
    "budget_state",
    "build_successor",
    "find_overlapping_active",
    "is_active_at",
    "roll_over",
    # Recompute
    "PLAN",
    "AffectedScope",
    "RecomputeOutcome",
    "RecomputeRunner",
    "RecomputeStep",
    "steps_for",
]
