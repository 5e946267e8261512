"""
Recompute Plan

DESIGN DECISION: The dependency graph between derived values is declared,
not implied by method calls between services.

Each step names its inputs: entity kinds that changed, or other steps.
Adding a new derived value means adding one RecomputeStep with its inputs
and a handler; the runner orders and gates everything else.

    transaction, account -> account_balance   (commits Account.balance)
    transaction, budget  -> budget_progress -> budget_alerts
    goal                 -> goal_progress   -> goal_alerts

Goal progress is never driven by transactions. Contributions are an
explicit goal mutation.

FAILURE POLICY:
- A failing step is aborted on its own; whatever it had computed is thrown
  away and earlier steps keep their results.
- Steps that depend on a failed or skipped step are SKIPPED.
- A failure in a step that commits a persisted cache (account balance) is
  reported so the orchestrator can reject the whole mutation.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from finance_tracker.config import EngineSettings
from finance_tracker.engine.alerts import budget_alert, goal_alert
from finance_tracker.engine.derivations import (
    budget_progress,
    goal_progress,
    refresh_account,
)
from finance_tracker.engine.rollover import is_active_at
from finance_tracker.models.derived import Alert, BudgetProgress, GoalProgress
from finance_tracker.models.entities import EntityKind
from finance_tracker.models.results import (
    RecomputeReport,
    RecomputeStatus,
    RecomputeStepResult,
)
from finance_tracker.models.snapshot import LedgerSnapshot


logger = structlog.get_logger(__name__)


# =============================================================================
# Plan
# =============================================================================

class RecomputeStep(BaseModel):
    """One declared derived value and what it is computed from."""
    
    model_config = ConfigDict(frozen=True)
    
    name: str
    inputs: frozenset[str]
    commits_cache: bool = Field(
        default=False,
        description="Writes a cached value back onto an entity"
    )


ACCOUNT_BALANCE = "account_balance"
BUDGET_PROGRESS = "budget_progress"
BUDGET_ALERTS = "budget_alerts"
GOAL_PROGRESS = "goal_progress"
GOAL_ALERTS = "goal_alerts"

# Listed in dependency order
PLAN: tuple[RecomputeStep, ...] = (
    RecomputeStep(
        name=ACCOUNT_BALANCE,
        inputs=frozenset({EntityKind.TRANSACTION.value, EntityKind.ACCOUNT.value}),
        commits_cache=True,
    ),
    RecomputeStep(
        name=BUDGET_PROGRESS,
        inputs=frozenset({EntityKind.TRANSACTION.value, EntityKind.BUDGET.value}),
    ),
    RecomputeStep(name=BUDGET_ALERTS, inputs=frozenset({BUDGET_PROGRESS})),
    RecomputeStep(name=GOAL_PROGRESS, inputs=frozenset({EntityKind.GOAL.value})),
    RecomputeStep(name=GOAL_ALERTS, inputs=frozenset({GOAL_PROGRESS})),
)


def steps_for(changed: Iterable[str], plan: tuple[RecomputeStep, ...] = PLAN) -> list[RecomputeStep]:
    """
    Steps triggered by a change to the given entity kinds, in plan order.
    
    A step runs if any of its inputs changed or is an earlier triggered step.
    """
    triggered = {EntityKind(k).value for k in changed}
    steps = []
    for step in plan:
        if step.inputs & triggered:
            steps.append(step)
            triggered.add(step.name)
    return steps


# =============================================================================
# Scope and context
# =============================================================================

class AffectedScope(BaseModel):
    """Which entities a mutation can have changed the derived values of."""
    
    account_ids: set[str] = Field(default_factory=set)
    budget_ids: set[str] = Field(default_factory=set)
    goal_ids: set[str] = Field(default_factory=set)
    
    @classmethod
    def everything(cls, snapshot: LedgerSnapshot, now: datetime) -> 'AffectedScope':
        return cls(
            account_ids={a.id for a in snapshot.accounts},
            budget_ids={b.id for b in snapshot.budgets if is_active_at(b, now)},
            goal_ids={g.id for g in snapshot.goals},
        )


class RecomputeContext(BaseModel):
    """Working state threaded through the steps of one run."""
    
    snapshot: LedgerSnapshot
    scope: AffectedScope
    now: datetime
    settings: EngineSettings
    budget_progress: dict[str, BudgetProgress] = Field(default_factory=dict)
    goal_progress: dict[str, GoalProgress] = Field(default_factory=dict)
    alerts: list[Alert] = Field(default_factory=list)


class RecomputeOutcome(BaseModel):
    """Result of running the plan for one mutation."""
    
    snapshot: LedgerSnapshot
    report: RecomputeReport
    budget_progress: dict[str, BudgetProgress] = Field(default_factory=dict)
    goal_progress: dict[str, GoalProgress] = Field(default_factory=dict)
    alerts: list[Alert] = Field(default_factory=list)
    cache_failed: bool = False


# =============================================================================
# Step handlers
# =============================================================================
# Each handler works on a copy of what it changes and only hands it back
# on success, so a failing step leaves the context as it found it.

def _refresh_balances(ctx: RecomputeContext) -> list[str]:
    snapshot = ctx.snapshot
    refreshed = []
    for account_id in sorted(ctx.scope.account_ids):
        account = snapshot.get_account(account_id)
        if account is None:
            continue
        updated = refresh_account(account, snapshot.transactions, ctx.now)
        if updated is not account:
            snapshot = snapshot.with_entity(EntityKind.ACCOUNT, updated)
        refreshed.append(account_id)
    ctx.snapshot = snapshot
    return refreshed


def _budget_progress(ctx: RecomputeContext) -> list[str]:
    results = {}
    for budget_id in sorted(ctx.scope.budget_ids):
        budget = ctx.snapshot.get_budget(budget_id)
        if budget is None or not is_active_at(budget, ctx.now):
            continue
        results[budget_id] = budget_progress(
            budget, ctx.snapshot.transactions, ctx.now, ctx.settings
        )
    ctx.budget_progress.update(results)
    return list(results)


def _budget_alerts(ctx: RecomputeContext) -> list[str]:
    alerts = [
        alert for alert in (
            budget_alert(progress, ctx.settings)
            for progress in ctx.budget_progress.values()
        )
        if alert is not None
    ]
    ctx.alerts.extend(alerts)
    return [a.entity_id for a in alerts]


def _goal_progress(ctx: RecomputeContext) -> list[str]:
    results = {}
    for goal_id in sorted(ctx.scope.goal_ids):
        goal = ctx.snapshot.get_goal(goal_id)
        if goal is None:
            continue
        results[goal_id] = goal_progress(goal, ctx.now)
    ctx.goal_progress.update(results)
    return list(results)


def _goal_alerts(ctx: RecomputeContext) -> list[str]:
    alerts = []
    for goal_id, progress in ctx.goal_progress.items():
        goal = ctx.snapshot.get_goal(goal_id)
        if goal is None or goal.is_completed:
            continue
        alert = goal_alert(goal, progress, ctx.settings)
        if alert is not None:
            alerts.append(alert)
    ctx.alerts.extend(alerts)
    return [a.entity_id for a in alerts]


HANDLERS: dict[str, Callable[[RecomputeContext], list[str]]] = {
    ACCOUNT_BALANCE: _refresh_balances,
    BUDGET_PROGRESS: _budget_progress,
    BUDGET_ALERTS: _budget_alerts,
    GOAL_PROGRESS: _goal_progress,
    GOAL_ALERTS: _goal_alerts,
}


# =============================================================================
# Runner
# =============================================================================

class RecomputeRunner:
    """
    Runs the triggered steps of the plan against one snapshot.
    
    Usage:
        runner = RecomputeRunner(settings)
        outcome = runner.run(snapshot, {"transaction"}, scope, now)
    """
    
    def __init__(
        self,
        settings: EngineSettings,
        plan: tuple[RecomputeStep, ...] = PLAN,
        handlers: Optional[dict[str, Callable[[RecomputeContext], list[str]]]] = None,
    ):
        self._settings = settings
        self._plan = plan
        self._handlers = handlers or HANDLERS
    
    def run(
        self,
        snapshot: LedgerSnapshot,
        changed: Iterable[str],
        scope: AffectedScope,
        now: datetime,
    ) -> RecomputeOutcome:
        ctx = RecomputeContext(
            snapshot=snapshot,
            scope=scope,
            now=now,
            settings=self._settings,
        )
        report = RecomputeReport()
        blocked: set[str] = set()
        cache_failed = False
        
        for step in steps_for(changed, self._plan):
            if step.inputs & blocked:
                blocked.add(step.name)
                report.steps.append(RecomputeStepResult(
                    step=step.name,
                    status=RecomputeStatus.SKIPPED,
                ))
                continue
            
            try:
                entity_ids = self._handlers[step.name](ctx)
            except (ArithmeticError, ValueError) as e:
                logger.error(
                    "recompute_step_failed",
                    step=step.name,
                    error=str(e),
                )
                blocked.add(step.name)
                cache_failed = cache_failed or step.commits_cache
                report.steps.append(RecomputeStepResult(
                    step=step.name,
                    status=RecomputeStatus.FAILED,
                    error_message=str(e),
                ))
                continue
            
            report.steps.append(RecomputeStepResult(
                step=step.name,
                status=RecomputeStatus.COMPLETED,
                entity_ids=entity_ids,
            ))
        
        return RecomputeOutcome(
            snapshot=ctx.snapshot,
            report=report,
            budget_progress=ctx.budget_progress,
            goal_progress=ctx.goal_progress,
            alerts=ctx.alerts,
            cache_failed=cache_failed,
        )
