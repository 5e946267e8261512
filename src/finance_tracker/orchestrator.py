"""
Ledger Orchestrator

This module ties the entity model, validation, derivation engine, rollover
state machine and alert engine together. It defines the end-to-end flows
for:
1. Entity mutations (create/update/delete for all four entities)
2. Goal contributions and budget rollover
3. Queries over derived state (balances, progress, alerts)

DESIGN DECISION: The orchestrator holds no ledger state.
Every operation takes the current LedgerSnapshot as an argument and hands
back a new one inside its result. Nothing closes over shared mutable data,
so two orchestrators never interfere and every test controls its own
snapshot and clock.

The orchestrator enforces the boundaries:
- A mutation is applied completely or not at all
- Only the recompute steps a mutation affects are run, in plan order
- Every outcome, accepted or rejected, is audited under one correlation id
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Union
from uuid import UUID

import structlog

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import EngineSettings, get_settings
from finance_tracker.engine import alerts as alert_engine
from finance_tracker.engine import derivations
from finance_tracker.engine.recompute import AffectedScope, RecomputeRunner
from finance_tracker.engine.rollover import (
    budget_state,
    find_overlapping_active,
    is_active_at,
    roll_over,
)
from finance_tracker.models import (
    Account,
    Alert,
    Budget,
    BudgetProgress,
    BudgetState,
    ContributionSuggestion,
    EngineError,
    EntityKind,
    Goal,
    GoalProgress,
    LedgerSnapshot,
    LedgerState,
    MalformedPayloadError,
    MutationRequest,
    MutationResult,
    Operation,
    RolloverPassResult,
    Transaction,
    TransactionPreview,
    ValidationResult,
    new_id,
)
from finance_tracker.services.storage import AuditStorageInterface
from finance_tracker.validation import EntityValidator, as_record, parse_decimal


logger = structlog.get_logger(__name__)


# Fields a payload may set, per entity and operation
ACCOUNT_CREATE_FIELDS = {"id", "name", "type", "balance", "initial_balance", "currency"}
ACCOUNT_UPDATE_FIELDS = {"name", "type", "balance", "initial_balance", "currency"}
TRANSACTION_CREATE_FIELDS = {
    "id", "date", "amount", "description", "category", "account_id", "type", "tags",
}
TRANSACTION_UPDATE_FIELDS = TRANSACTION_CREATE_FIELDS - {"id"}
BUDGET_CREATE_FIELDS = {
    "id", "category", "limit", "period", "start_date", "end_date", "is_active",
}
BUDGET_UPDATE_FIELDS = BUDGET_CREATE_FIELDS - {"id"}
GOAL_CREATE_FIELDS = {
    "id", "name", "description", "target_amount", "current_amount",
    "target_date", "account_id", "is_completed",
}
GOAL_UPDATE_FIELDS = GOAL_CREATE_FIELDS - {"id", "is_completed"}


def _payload(data: Any, allowed: set[str], kind: EntityKind) -> dict[str, Any]:
    """
    Normalise a payload and reject fields it may not set.
    
    Unknown or immutable fields are a shape error, not a value error.
    """
    record = as_record(data)
    unexpected = set(record) - allowed
    if unexpected:
        raise MalformedPayloadError(
            f"Unexpected {kind.value} fields: {', '.join(sorted(unexpected))}"
        )
    return record


def _present(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if v is not None}


class LedgerOrchestrator:
    """
    Orchestrates every mutation and query over a ledger snapshot.
    
    Flow for a mutation:
    1. Shape check → MalformedPayloadError for the wrong shape
    2. Validate → every failing rule is returned, nothing is applied
    3. References and invariants → structured errors, nothing is applied
    4. Apply → new snapshot
    5. Recompute → only the affected steps of the plan, in order
    6. Audit → one correlation id for every event
    
    If the account balance step fails the whole mutation is rolled back,
    since the balance cache would otherwise disagree with the log.
    """
    
    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        validator: Optional[EntityValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._settings = settings or get_settings().engine
        self._validator = validator or EntityValidator(self._settings)
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._runner = RecomputeRunner(self._settings)
    
    @property
    def settings(self) -> EngineSettings:
        return self._settings
    
    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self._clock()
    
    # =========================================================================
    # Commit / reject
    # =========================================================================
    
    def _reject(
        self,
        snapshot: LedgerSnapshot,
        error: EngineError,
        correlation_id: UUID,
        warnings: Optional[list[str]] = None,
    ) -> MutationResult:
        logger.info(
            "mutation_rejected",
            kind=error.kind.value,
            entity_type=error.entity_type.value if error.entity_type else None,
            entity_id=error.entity_id,
            message=error.message,
        )
        if self._audit_logger:
            self._audit_logger.log_engine_error(error, correlation_id)
        return MutationResult(
            success=False,
            snapshot=snapshot,
            errors=[error],
            warnings=warnings or [],
            correlation_id=correlation_id,
        )
    
    def _reject_invalid(
        self,
        snapshot: LedgerSnapshot,
        kind: EntityKind,
        result: ValidationResult,
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> MutationResult:
        return self._reject(
            snapshot,
            EngineError.validation(kind, result, entity_id),
            correlation_id,
            warnings=result.warnings,
        )
    
    def _commit(
        self,
        original: LedgerSnapshot,
        updated: LedgerSnapshot,
        kind: EntityKind,
        action: str,
        entity_id: str,
        changed: Iterable[EntityKind],
        scope: AffectedScope,
        now: datetime,
        correlation_id: UUID,
        warnings: Optional[list[str]] = None,
        removed=None,
        details: Optional[dict] = None,
    ) -> MutationResult:
        """Run the recompute plan for an applied change and package the result."""
        outcome = self._runner.run(updated, changed, scope, now)
        
        if self._audit_logger:
            for step in outcome.report.steps:
                if step.error_message:
                    self._audit_logger.log_recompute_failed(
                        step.step, step.error_message, correlation_id
                    )
        
        if outcome.cache_failed:
            error = EngineError.invariant(
                "Account balances could not be recomputed; the change was not applied",
                kind,
                entity_id,
            )
            result = self._reject(original, error, correlation_id, warnings)
            return result.model_copy(update={"recompute": outcome.report})
        
        entity = removed if removed is not None else outcome.snapshot.get(kind, entity_id)
        
        logger.info(
            "mutation_applied",
            entity_type=kind.value,
            action=action,
            entity_id=entity_id,
            steps=[s.step for s in outcome.report.steps],
        )
        if self._audit_logger:
            self._audit_logger.log_entity_changed(
                kind.value, action, entity_id, correlation_id, details
            )
            for alert in outcome.alerts:
                self._audit_logger.log_alert(alert, correlation_id)
        
        return MutationResult(
            success=True,
            snapshot=outcome.snapshot,
            entity=entity,
            warnings=warnings or [],
            recompute=outcome.report,
            alerts=outcome.alerts,
            correlation_id=correlation_id,
        )
    
    def _budgets_touched_by(
        self,
        snapshot: LedgerSnapshot,
        transactions: Iterable[Transaction],
    ) -> set[str]:
        """Active budgets whose category and window match any of the transactions."""
        touched = set()
        for transaction in transactions:
            for budget in snapshot.budgets:
                if (
                    budget.is_active
                    and budget.category == transaction.category
                    and budget.contains(transaction.date)
                ):
                    touched.add(budget.id)
        return touched
    
    def _duplicate_id(
        self,
        snapshot: LedgerSnapshot,
        kind: EntityKind,
        entity_id: Optional[str],
    ) -> Optional[EngineError]:
        if entity_id and snapshot.get(kind, entity_id) is not None:
            return EngineError.invariant(
                f"{kind.value.capitalize()} with id {entity_id} already exists",
                kind,
                entity_id,
            )
        return None
    
    # =========================================================================
    # Accounts
    # =========================================================================
    
    def create_account(
        self,
        snapshot: LedgerSnapshot,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Create an account.
        
        `balance` (or `initial_balance`) in the payload is the opening
        balance; the cached balance starts equal to it.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        record = _payload(payload, ACCOUNT_CREATE_FIELDS, EntityKind.ACCOUNT)
        record.setdefault("currency", self._settings.default_currency)
        
        result = self._validator.validate_account(record)
        if not result.is_valid:
            return self._reject_invalid(snapshot, EntityKind.ACCOUNT, result, correlation_id)
        
        duplicate = self._duplicate_id(snapshot, EntityKind.ACCOUNT, record.get("id"))
        if duplicate:
            return self._reject(snapshot, duplicate, correlation_id)
        
        opening = parse_decimal(record.get("initial_balance", record.get("balance")))
        account = Account(
            id=record.get("id") or new_id(),
            name=record["name"],
            type=record["type"],
            initial_balance=opening,
            balance=opening,
            currency=record["currency"].strip().upper(),
            created_at=now,
            updated_at=now,
        )
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.ACCOUNT, account),
            EntityKind.ACCOUNT,
            "created",
            account.id,
            changed={EntityKind.ACCOUNT},
            scope=AffectedScope(account_ids={account.id}),
            now=now,
            correlation_id=correlation_id,
        )
    
    def update_account(
        self,
        snapshot: LedgerSnapshot,
        account_id: str,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Edit an account.
        
        A direct balance edit resets the opening balance; the cached
        balance is then re-derived from the transaction log. Balance sign
        rules are checked only when the edit touches the balance or type.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        updates = _payload(payload, ACCOUNT_UPDATE_FIELDS, EntityKind.ACCOUNT)
        
        account = snapshot.get_live_account(account_id)
        if account is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.ACCOUNT, account_id), correlation_id
            )
        
        merged = {**account.model_dump(), **updates}
        touches_balance = "balance" in updates or "initial_balance" in updates
        if touches_balance:
            opening = updates.get("initial_balance", updates.get("balance"))
            merged["initial_balance"] = opening
            merged["balance"] = opening
        
        result = self._validator.validate_account(
            merged,
            enforce_balance_rules=touches_balance or "type" in updates,
        )
        if not result.is_valid:
            return self._reject_invalid(
                snapshot, EntityKind.ACCOUNT, result, correlation_id, account_id
            )
        
        merged["currency"] = merged["currency"].strip().upper()
        merged["updated_at"] = now
        updated = Account.model_validate(merged)
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.ACCOUNT, updated),
            EntityKind.ACCOUNT,
            "updated",
            account_id,
            changed={EntityKind.ACCOUNT},
            scope=AffectedScope(account_ids={account_id}),
            now=now,
            correlation_id=correlation_id,
            details={"fields": sorted(updates)},
        )
    
    def delete_account(
        self,
        snapshot: LedgerSnapshot,
        account_id: str,
        hard: bool = False,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Delete an account and every transaction recorded against it.
        
        A soft delete archives the account record; a hard delete removes
        it. Goals that point at the account are left as they are.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        
        account = snapshot.get_account(account_id) if hard else snapshot.get_live_account(account_id)
        if account is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.ACCOUNT, account_id), correlation_id
            )
        
        transactions = snapshot.transactions_for_account(account_id)
        touched_budgets = self._budgets_touched_by(snapshot, transactions)
        
        updated = snapshot.without_entities(
            EntityKind.TRANSACTION, [t.id for t in transactions]
        )
        if hard:
            updated = updated.without_entities(EntityKind.ACCOUNT, [account_id])
            removed = account
        else:
            removed = account.touched(now, is_archived=True)
            updated = updated.with_entity(EntityKind.ACCOUNT, removed)
        
        return self._commit(
            snapshot,
            updated,
            EntityKind.ACCOUNT,
            "deleted",
            account_id,
            changed={EntityKind.ACCOUNT, EntityKind.TRANSACTION},
            scope=AffectedScope(account_ids={account_id}, budget_ids=touched_budgets),
            now=now,
            correlation_id=correlation_id,
            removed=removed if hard else None,
            details={"hard": hard, "transactions_removed": len(transactions)},
        )
    
    # =========================================================================
    # Transactions
    # =========================================================================
    
    def create_transaction(
        self,
        snapshot: LedgerSnapshot,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Record a transaction.
        
        Recomputes the owning account's balance and the progress and alerts
        of every active budget whose category and window match it.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        record = _payload(payload, TRANSACTION_CREATE_FIELDS, EntityKind.TRANSACTION)
        
        result = self._validator.validate_transaction(record)
        if not result.is_valid:
            return self._reject_invalid(snapshot, EntityKind.TRANSACTION, result, correlation_id)
        
        if snapshot.get_live_account(record["account_id"]) is None:
            return self._reject(
                snapshot,
                EngineError.missing(EntityKind.ACCOUNT, record["account_id"]),
                correlation_id,
                warnings=result.warnings,
            )
        
        duplicate = self._duplicate_id(snapshot, EntityKind.TRANSACTION, record.get("id"))
        if duplicate:
            return self._reject(snapshot, duplicate, correlation_id, result.warnings)
        
        record = _present(record)
        record.setdefault("id", new_id())
        transaction = Transaction(**record, created_at=now, updated_at=now)
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.TRANSACTION, transaction),
            EntityKind.TRANSACTION,
            "created",
            transaction.id,
            changed={EntityKind.TRANSACTION},
            scope=AffectedScope(
                account_ids={transaction.account_id},
                budget_ids=self._budgets_touched_by(snapshot, [transaction]),
            ),
            now=now,
            correlation_id=correlation_id,
            warnings=result.warnings,
        )
    
    def update_transaction(
        self,
        snapshot: LedgerSnapshot,
        transaction_id: str,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Edit a transaction.
        
        Both the old and the new version drive the recompute scope, so
        moving a transaction between accounts or categories refreshes both
        sides.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        updates = _payload(payload, TRANSACTION_UPDATE_FIELDS, EntityKind.TRANSACTION)
        
        existing = snapshot.get_transaction(transaction_id)
        if existing is None:
            return self._reject(
                snapshot,
                EngineError.missing(EntityKind.TRANSACTION, transaction_id),
                correlation_id,
            )
        
        merged = {**existing.model_dump(), **updates}
        result = self._validator.validate_transaction(merged)
        if not result.is_valid:
            return self._reject_invalid(
                snapshot, EntityKind.TRANSACTION, result, correlation_id, transaction_id
            )
        
        if snapshot.get_live_account(merged["account_id"]) is None:
            return self._reject(
                snapshot,
                EngineError.missing(EntityKind.ACCOUNT, merged["account_id"]),
                correlation_id,
                warnings=result.warnings,
            )
        
        merged = _present(merged)
        merged["updated_at"] = now
        updated = Transaction.model_validate(merged)
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.TRANSACTION, updated),
            EntityKind.TRANSACTION,
            "updated",
            transaction_id,
            changed={EntityKind.TRANSACTION},
            scope=AffectedScope(
                account_ids={existing.account_id, updated.account_id},
                budget_ids=self._budgets_touched_by(snapshot, [existing, updated]),
            ),
            now=now,
            correlation_id=correlation_id,
            warnings=result.warnings,
            details={"fields": sorted(updates)},
        )
    
    def delete_transaction(
        self,
        snapshot: LedgerSnapshot,
        transaction_id: str,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        now = self._now(now)
        correlation_id = create_correlation_id()
        
        existing = snapshot.get_transaction(transaction_id)
        if existing is None:
            return self._reject(
                snapshot,
                EngineError.missing(EntityKind.TRANSACTION, transaction_id),
                correlation_id,
            )
        
        return self._commit(
            snapshot,
            snapshot.without_entities(EntityKind.TRANSACTION, [transaction_id]),
            EntityKind.TRANSACTION,
            "deleted",
            transaction_id,
            changed={EntityKind.TRANSACTION},
            scope=AffectedScope(
                account_ids={existing.account_id},
                budget_ids=self._budgets_touched_by(snapshot, [existing]),
            ),
            now=now,
            correlation_id=correlation_id,
            removed=existing,
        )
    
    # =========================================================================
    # Budgets
    # =========================================================================
    
    def _active_budget_clash(
        self,
        snapshot: LedgerSnapshot,
        budget: Budget,
    ) -> Optional[EngineError]:
        if not budget.is_active:
            return None
        clash = find_overlapping_active(snapshot, budget)
        if clash is None:
            return None
        return EngineError.invariant(
            f"An active budget for category {budget.category} already exists",
            EntityKind.BUDGET,
            clash.id,
        )
    
    def create_budget(
        self,
        snapshot: LedgerSnapshot,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Create a budget.
        
        A second active budget for a category whose window overlaps an
        existing active one is rejected as an invariant violation.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        record = _payload(payload, BUDGET_CREATE_FIELDS, EntityKind.BUDGET)
        
        result = self._validator.validate_budget(record)
        if not result.is_valid:
            return self._reject_invalid(snapshot, EntityKind.BUDGET, result, correlation_id)
        
        duplicate = self._duplicate_id(snapshot, EntityKind.BUDGET, record.get("id"))
        if duplicate:
            return self._reject(snapshot, duplicate, correlation_id)
        
        record = _present(record)
        record.setdefault("id", new_id())
        budget = Budget(**record, created_at=now, updated_at=now)
        
        clash = self._active_budget_clash(snapshot, budget)
        if clash:
            return self._reject(snapshot, clash, correlation_id)
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.BUDGET, budget),
            EntityKind.BUDGET,
            "created",
            budget.id,
            changed={EntityKind.BUDGET},
            scope=AffectedScope(budget_ids={budget.id}),
            now=now,
            correlation_id=correlation_id,
        )
    
    def update_budget(
        self,
        snapshot: LedgerSnapshot,
        budget_id: str,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        now = self._now(now)
        correlation_id = create_correlation_id()
        updates = _payload(payload, BUDGET_UPDATE_FIELDS, EntityKind.BUDGET)
        
        existing = snapshot.get_budget(budget_id)
        if existing is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.BUDGET, budget_id), correlation_id
            )
        
        if updates.get("is_active") and snapshot.successor_of(budget_id) is not None:
            return self._reject(
                snapshot,
                EngineError.invariant(
                    "A rolled-over budget cannot be reactivated",
                    EntityKind.BUDGET,
                    budget_id,
                ),
                correlation_id,
            )
        
        merged = {**existing.model_dump(), **updates}
        # A new start or period moves the end date unless it was set explicitly
        if ("start_date" in updates or "period" in updates) and "end_date" not in updates:
            merged["end_date"] = None
        
        result = self._validator.validate_budget(merged)
        if not result.is_valid:
            return self._reject_invalid(
                snapshot, EntityKind.BUDGET, result, correlation_id, budget_id
            )
        
        merged["updated_at"] = now
        updated = Budget.model_validate(merged)
        
        clash = self._active_budget_clash(snapshot, updated)
        if clash:
            return self._reject(snapshot, clash, correlation_id)
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.BUDGET, updated),
            EntityKind.BUDGET,
            "updated",
            budget_id,
            changed={EntityKind.BUDGET},
            scope=AffectedScope(budget_ids={budget_id}),
            now=now,
            correlation_id=correlation_id,
            details={"fields": sorted(updates)},
        )
    
    def delete_budget(
        self,
        snapshot: LedgerSnapshot,
        budget_id: str,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        now = self._now(now)
        correlation_id = create_correlation_id()
        
        existing = snapshot.get_budget(budget_id)
        if existing is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.BUDGET, budget_id), correlation_id
            )
        
        return self._commit(
            snapshot,
            snapshot.without_entities(EntityKind.BUDGET, [budget_id]),
            EntityKind.BUDGET,
            "deleted",
            budget_id,
            changed={EntityKind.BUDGET},
            scope=AffectedScope(),
            now=now,
            correlation_id=correlation_id,
            removed=existing,
        )
    
    def rollover_budget(
        self,
        snapshot: LedgerSnapshot,
        budget_id: str,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Roll one expired budget into its next period.
        
        The result's entity is the successor. Rolling a budget that has
        already been rolled is rejected, never duplicated.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        
        updated, rollover = roll_over(snapshot, budget_id, now)
        if not rollover.rolled:
            return self._reject(snapshot, rollover.error, correlation_id)
        
        if self._audit_logger:
            self._audit_logger.log_budget_rolled_over(
                budget_id, rollover.successor.id, correlation_id
            )
        return self._commit(
            snapshot,
            updated,
            EntityKind.BUDGET,
            "created",
            rollover.successor.id,
            changed={EntityKind.BUDGET},
            scope=AffectedScope(budget_ids={rollover.successor.id}),
            now=now,
            correlation_id=correlation_id,
            details={"predecessor_id": budget_id},
        )
    
    def roll_over_expired_budgets(
        self,
        snapshot: LedgerSnapshot,
        now: Optional[datetime] = None,
    ) -> RolloverPassResult:
        """
        Catch every expired budget up to the period containing `now`.
        
        A budget that expired several periods ago is rolled once per
        missed period; each successor links to the one before it. A
        budget whose rollover is rejected is reported once and not retried.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        results = []
        rejected: set[str] = set()
        
        while True:
            expired = [
                b.id for b in snapshot.budgets
                if b.id not in rejected
                and budget_state(b, snapshot, now) == BudgetState.EXPIRED
            ]
            if not expired:
                break
            rolled_any = False
            for budget_id in expired:
                snapshot, rollover = roll_over(snapshot, budget_id, now)
                results.append(rollover)
                if rollover.rolled:
                    rolled_any = True
                    if self._audit_logger:
                        self._audit_logger.log_budget_rolled_over(
                            budget_id, rollover.successor.id, correlation_id
                        )
                else:
                    rejected.add(budget_id)
                    if self._audit_logger:
                        self._audit_logger.log_engine_error(rollover.error, correlation_id)
            if not rolled_any:
                break
        
        logger.info(
            "rollover_pass_completed",
            rolled=sum(1 for r in results if r.rolled),
            rejected=sum(1 for r in results if not r.rolled),
        )
        return RolloverPassResult(
            snapshot=snapshot,
            results=results,
            correlation_id=correlation_id,
        )
    
    # =========================================================================
    # Goals
    # =========================================================================
    
    def create_goal(
        self,
        snapshot: LedgerSnapshot,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        now = self._now(now)
        correlation_id = create_correlation_id()
        record = _payload(payload, GOAL_CREATE_FIELDS, EntityKind.GOAL)
        record.setdefault("current_amount", Decimal("0"))
        
        result = self._validator.validate_goal(record, now)
        if not result.is_valid:
            return self._reject_invalid(snapshot, EntityKind.GOAL, result, correlation_id)
        
        if snapshot.get_live_account(record["account_id"]) is None:
            return self._reject(
                snapshot,
                EngineError.missing(EntityKind.ACCOUNT, record["account_id"]),
                correlation_id,
            )
        
        duplicate = self._duplicate_id(snapshot, EntityKind.GOAL, record.get("id"))
        if duplicate:
            return self._reject(snapshot, duplicate, correlation_id)
        
        record = _present(record)
        record.setdefault("id", new_id())
        goal = Goal(**record, created_at=now, updated_at=now)
        if goal.is_achieved and not goal.is_completed:
            goal = goal.model_copy(update={"is_completed": True})
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.GOAL, goal),
            EntityKind.GOAL,
            "created",
            goal.id,
            changed={EntityKind.GOAL},
            scope=AffectedScope(goal_ids={goal.id}),
            now=now,
            correlation_id=correlation_id,
        )
    
    def update_goal(
        self,
        snapshot: LedgerSnapshot,
        goal_id: str,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Edit a goal.
        
        Setting the current or target amount re-derives completion in the
        same step: current == target completes the goal, one unit below
        leaves it open.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        updates = _payload(payload, GOAL_UPDATE_FIELDS, EntityKind.GOAL)
        
        existing = snapshot.get_goal(goal_id)
        if existing is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.GOAL, goal_id), correlation_id
            )
        
        merged = {**existing.model_dump(), **updates}
        result = self._validator.validate_goal(
            merged,
            now,
            require_future_target="target_date" in updates,
        )
        if not result.is_valid:
            return self._reject_invalid(
                snapshot, EntityKind.GOAL, result, correlation_id, goal_id
            )
        
        if "account_id" in updates and snapshot.get_live_account(merged["account_id"]) is None:
            return self._reject(
                snapshot,
                EngineError.missing(EntityKind.ACCOUNT, merged["account_id"]),
                correlation_id,
            )
        
        merged["updated_at"] = now
        updated = Goal.model_validate(merged)
        if "current_amount" in updates or "target_amount" in updates:
            updated = updated.with_current_amount(updated.current_amount, now)
        
        if self._audit_logger and updated.is_completed and not existing.is_completed:
            self._audit_logger.log_goal_completed(goal_id, updated.name, correlation_id)
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.GOAL, updated),
            EntityKind.GOAL,
            "updated",
            goal_id,
            changed={EntityKind.GOAL},
            scope=AffectedScope(goal_ids={goal_id}),
            now=now,
            correlation_id=correlation_id,
            details={"fields": sorted(updates)},
        )
    
    def delete_goal(
        self,
        snapshot: LedgerSnapshot,
        goal_id: str,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        now = self._now(now)
        correlation_id = create_correlation_id()
        
        existing = snapshot.get_goal(goal_id)
        if existing is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.GOAL, goal_id), correlation_id
            )
        
        return self._commit(
            snapshot,
            snapshot.without_entities(EntityKind.GOAL, [goal_id]),
            EntityKind.GOAL,
            "deleted",
            goal_id,
            changed={EntityKind.GOAL},
            scope=AffectedScope(),
            now=now,
            correlation_id=correlation_id,
            removed=existing,
        )
    
    def add_contribution(
        self,
        snapshot: LedgerSnapshot,
        goal_id: str,
        amount: Union[Decimal, int, str],
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Add a positive contribution to a goal.
        
        Contributions only ever increase the saved amount. Reaching the
        target completes the goal in the same operation.
        """
        now = self._now(now)
        correlation_id = create_correlation_id()
        
        goal = snapshot.get_goal(goal_id)
        if goal is None:
            return self._reject(
                snapshot, EngineError.missing(EntityKind.GOAL, goal_id), correlation_id
            )
        
        value = parse_decimal(amount)
        if value is None or value <= 0:
            return self._reject_invalid(
                snapshot,
                EntityKind.GOAL,
                ValidationResult.from_messages(
                    ["Contribution amount must be greater than zero"]
                ),
                correlation_id,
                goal_id,
            )
        
        updated = goal.with_contribution(value, now)
        if self._audit_logger:
            self._audit_logger.log_goal_contribution(
                goal_id, str(value), str(updated.current_amount), correlation_id
            )
            if updated.is_completed and not goal.is_completed:
                self._audit_logger.log_goal_completed(goal_id, goal.name, correlation_id)
        
        return self._commit(
            snapshot,
            snapshot.with_entity(EntityKind.GOAL, updated),
            EntityKind.GOAL,
            "updated",
            goal_id,
            changed={EntityKind.GOAL},
            scope=AffectedScope(goal_ids={goal_id}),
            now=now,
            correlation_id=correlation_id,
            details={"contribution": str(value)},
        )
    
    # =========================================================================
    # Dispatch
    # =========================================================================
    
    def apply(
        self,
        snapshot: LedgerSnapshot,
        request: Union[MutationRequest, dict],
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Apply one MutationRequest.
        
        Raises MalformedPayloadError for a request of the wrong shape.
        """
        request = MutationRequest.coerce(request)
        kind, operation = request.entity, request.operation
        
        if operation == Operation.CREATE:
            create = {
                EntityKind.ACCOUNT: self.create_account,
                EntityKind.TRANSACTION: self.create_transaction,
                EntityKind.BUDGET: self.create_budget,
                EntityKind.GOAL: self.create_goal,
            }[kind]
            return create(snapshot, request.payload, now)
        
        if operation == Operation.UPDATE:
            update = {
                EntityKind.ACCOUNT: self.update_account,
                EntityKind.TRANSACTION: self.update_transaction,
                EntityKind.BUDGET: self.update_budget,
                EntityKind.GOAL: self.update_goal,
            }[kind]
            return update(snapshot, request.entity_id, request.payload, now)
        
        if kind == EntityKind.ACCOUNT:
            options = _payload(request.payload, {"hard"}, kind)
            return self.delete_account(
                snapshot, request.entity_id, hard=bool(options.get("hard")), now=now
            )
        if request.payload:
            raise MalformedPayloadError(f"Delete of a {kind.value} takes no payload")
        delete = {
            EntityKind.TRANSACTION: self.delete_transaction,
            EntityKind.BUDGET: self.delete_budget,
            EntityKind.GOAL: self.delete_goal,
        }[kind]
        return delete(snapshot, request.entity_id, now)
    
    # =========================================================================
    # Previews and full rescans
    # =========================================================================
    
    def preview_transaction(
        self,
        snapshot: LedgerSnapshot,
        payload: Any,
        now: Optional[datetime] = None,
    ) -> TransactionPreview:
        """
        Would this candidate transaction raise a budget alert?
        
        Uses the pre-commit spent totals plus the candidate's absolute
        amount. Nothing is recorded and no derived state changes.
        """
        now = self._now(now)
        record = _payload(payload, TRANSACTION_CREATE_FIELDS, EntityKind.TRANSACTION)
        result = self._validator.validate_transaction(record)
        if not result.is_valid:
            return TransactionPreview(validation=result)
        
        record = _present(record)
        record.setdefault("id", new_id())
        candidate = Transaction(**record)
        return TransactionPreview(
            validation=result,
            alerts=alert_engine.preview_budget_alerts(snapshot, candidate, now, self._settings),
        )
    
    def refresh(
        self,
        snapshot: LedgerSnapshot,
        now: Optional[datetime] = None,
    ) -> LedgerState:
        """
        Full rescan: every balance, every active budget, every goal.
        
        Idempotent. Refreshing an already consistent snapshot returns it
        unchanged, and records keep their positions.
        """
        now = self._now(now)
        outcome = self._runner.run(
            snapshot,
            changed=list(EntityKind),
            scope=AffectedScope.everything(snapshot, now),
            now=now,
        )
        return LedgerState(
            snapshot=snapshot if outcome.cache_failed else outcome.snapshot,
            budget_progress=list(outcome.budget_progress.values()),
            goal_progress=list(outcome.goal_progress.values()),
            alerts=outcome.alerts,
            recompute=outcome.report,
        )
    
    # =========================================================================
    # Queries
    # =========================================================================
    
    def get_account_balance(
        self,
        snapshot: LedgerSnapshot,
        account_id: str,
    ) -> Optional[Decimal]:
        """Balance derived from the transaction log, or None for an unknown account."""
        account = snapshot.get_account(account_id)
        if account is None:
            return None
        return derivations.account_balance(account, snapshot.transactions)
    
    def get_net_worth(
        self,
        snapshot: LedgerSnapshot,
        currency: Optional[str] = None,
    ) -> Decimal:
        return derivations.net_worth(
            snapshot.accounts, currency or self._settings.default_currency
        )
    
    def get_budget_progress(
        self,
        snapshot: LedgerSnapshot,
        budget_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[BudgetProgress]:
        budget = snapshot.get_budget(budget_id)
        if budget is None:
            return None
        return derivations.budget_progress(
            budget, snapshot.transactions, self._now(now), self._settings
        )
    
    def get_all_budget_progress(
        self,
        snapshot: LedgerSnapshot,
        now: Optional[datetime] = None,
    ) -> list[BudgetProgress]:
        """Progress of every budget that is active and whose window contains now."""
        now = self._now(now)
        return [
            derivations.budget_progress(b, snapshot.transactions, now, self._settings)
            for b in snapshot.budgets
            if is_active_at(b, now)
        ]
    
    def get_budget_state(
        self,
        snapshot: LedgerSnapshot,
        budget_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[BudgetState]:
        budget = snapshot.get_budget(budget_id)
        if budget is None:
            return None
        return budget_state(budget, snapshot, self._now(now))
    
    def get_goal_progress(
        self,
        snapshot: LedgerSnapshot,
        goal_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[GoalProgress]:
        goal = snapshot.get_goal(goal_id)
        if goal is None:
            return None
        return derivations.goal_progress(goal, self._now(now))
    
    def get_all_goal_progress(
        self,
        snapshot: LedgerSnapshot,
        now: Optional[datetime] = None,
    ) -> list[GoalProgress]:
        now = self._now(now)
        return [derivations.goal_progress(g, now) for g in snapshot.goals]
    
    def suggest_contribution(
        self,
        snapshot: LedgerSnapshot,
        goal_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[ContributionSuggestion]:
        goal = snapshot.get_goal(goal_id)
        if goal is None:
            return None
        return derivations.suggest_contribution(goal, self._now(now))
    
    def get_alerts(
        self,
        snapshot: LedgerSnapshot,
        now: Optional[datetime] = None,
        dismissed_ids: Iterable[str] = (),
    ) -> list[Alert]:
        """Current alerts, minus those the caller has dismissed."""
        alerts = alert_engine.evaluate_alerts(snapshot, self._now(now), self._settings)
        return alert_engine.filter_dismissed(alerts, dismissed_ids)


def create_app_components(
    settings: Optional[EngineSettings] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> tuple[LedgerOrchestrator, AuditLogger]:
    """
    Factory function to create the orchestrator and its audit logger.
    
    Args:
        settings: Engine settings; defaults to the environment.
        audit_storage: Where audit events are persisted.
                      If None, events are only logged locally.
    
    Returns:
        (orchestrator, audit_logger)
    """
    audit_logger = AuditLogger(audit_storage)
    orchestrator = LedgerOrchestrator(
        settings=settings,
        audit_logger=audit_logger,
    )
    return orchestrator, audit_logger
