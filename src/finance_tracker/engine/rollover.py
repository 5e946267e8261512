"""
Budget Period Rollover

State machine for a budget's lifecycle:

    UPCOMING -> ACTIVE -> EXPIRED -> ROLLED

ACTIVE -> EXPIRED is a function of the clock alone and needs no event.
EXPIRED -> ROLLED happens only when `roll_over()` is called explicitly: it
creates a successor for the next period and deactivates the predecessor.
ROLLED is terminal and a budget never has more than one direct successor.

DESIGN DECISION: Rolling is never triggered by a read.
Queries report EXPIRED budgets as they are; callers decide when to run a
rollover pass (see LedgerOrchestrator.roll_over_expired_budgets).
"""

from datetime import datetime
from typing import Optional

from finance_tracker.models.derived import BudgetState
from finance_tracker.models.entities import Budget, EntityKind, new_id
from finance_tracker.models.periods import calculate_end_date, next_period_start
from finance_tracker.models.results import EngineError, RolloverResult
from finance_tracker.models.snapshot import LedgerSnapshot


def budget_state(budget: Budget, snapshot: LedgerSnapshot, now: datetime) -> BudgetState:
    """Where a budget sits in its lifecycle at `now`."""
    if snapshot.successor_of(budget.id) is not None:
        return BudgetState.ROLLED
    if not budget.is_active:
        return BudgetState.INACTIVE
    today = now.date()
    if today < budget.start_date:
        return BudgetState.UPCOMING
    if today > budget.end_date:
        return BudgetState.EXPIRED
    return BudgetState.ACTIVE


def is_active_at(budget: Budget, now: datetime) -> bool:
    """Active flag set and `now` inside the inclusive window."""
    return budget.is_active and budget.contains(now.date())


def build_successor(budget: Budget, now: datetime) -> Budget:
    """
    The next-period budget for `budget`.
    
    Starts the day after the predecessor ends; category, limit and period
    are copied, identity is new.
    """
    start = next_period_start(budget.end_date)
    return Budget(
        id=new_id(),
        category=budget.category,
        limit=budget.limit,
        period=budget.period,
        start_date=start,
        end_date=calculate_end_date(start, budget.period),
        is_active=True,
        predecessor_id=budget.id,
        created_at=now,
        updated_at=now,
    )


def find_overlapping_active(
    snapshot: LedgerSnapshot,
    budget: Budget,
    exclude_ids: tuple[str, ...] = (),
) -> Optional[Budget]:
    """Another active budget for the same category whose window overlaps."""
    for other in snapshot.budgets:
        if other.id == budget.id or other.id in exclude_ids:
            continue
        if not other.is_active or other.category != budget.category:
            continue
        if other.start_date <= budget.end_date and budget.start_date <= other.end_date:
            return other
    return None


def roll_over(
    snapshot: LedgerSnapshot,
    budget_id: str,
    now: datetime,
) -> tuple[LedgerSnapshot, RolloverResult]:
    """
    Roll one expired budget into its next period.
    
    Returns the new snapshot and a result. Rejections (unknown budget,
    already rolled, not yet expired, inactive) leave the snapshot untouched.
    Rolling the same budget twice is rejected, so it can never gain a
    second successor.
    """
    budget = snapshot.get_budget(budget_id)
    if budget is None:
        return snapshot, RolloverResult(
            budget_id=budget_id,
            rolled=False,
            error=EngineError.missing(EntityKind.BUDGET, budget_id),
        )
    
    state = budget_state(budget, snapshot, now)
    if state != BudgetState.EXPIRED:
        reasons = {
            BudgetState.ROLLED: "has already been rolled over",
            BudgetState.INACTIVE: "is inactive",
            BudgetState.ACTIVE: "has not expired yet",
            BudgetState.UPCOMING: "has not started yet",
        }
        return snapshot, RolloverResult(
            budget_id=budget_id,
            rolled=False,
            predecessor=budget,
            error=EngineError.invariant(
                f"Budget {budget_id} {reasons[state]}",
                EntityKind.BUDGET,
                budget_id,
            ),
        )
    
    successor = build_successor(budget, now)
    clash = find_overlapping_active(snapshot, successor, exclude_ids=(budget.id,))
    if clash is not None:
        return snapshot, RolloverResult(
            budget_id=budget_id,
            rolled=False,
            predecessor=budget,
            error=EngineError.invariant(
                f"An active {budget.category} budget ({clash.id}) already covers the next period",
                EntityKind.BUDGET,
                budget_id,
            ),
        )
    
    predecessor = budget.touched(now, is_active=False)
    snapshot = snapshot.with_entities(EntityKind.BUDGET, [predecessor, successor])
    return snapshot, RolloverResult(
        budget_id=budget_id,
        rolled=True,
        predecessor=predecessor,
        successor=successor,
    )
