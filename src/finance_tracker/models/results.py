"""
Result Models

DESIGN DECISION: Expected failures are returned, not raised.
A validation failure, a dangling reference or a broken business rule is
something a user can trigger, so callers get a structured result they can
render in full. Exceptions are reserved for programmer errors.
"""

from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from finance_tracker.models.derived import Alert, BudgetProgress, GoalProgress
from finance_tracker.models.entities import (
    Account,
    Budget,
    EntityKind,
    Goal,
    Transaction,
)
from finance_tracker.models.snapshot import LedgerSnapshot


Entity = Union[Account, Transaction, Budget, Goal]


class MalformedPayloadError(TypeError):
    """A request had the wrong shape (not merely a wrong value)."""
    pass


class ValidationResult(BaseModel):
    """
    Outcome of validating a (partial) entity record.
    
    All rules run; every failing message is collected.
    Warnings don't block but should be shown.
    """
    
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    
    @classmethod
    def from_messages(
        cls,
        errors: list[str],
        warnings: Optional[list[str]] = None,
    ) -> 'ValidationResult':
        return cls(is_valid=not errors, errors=errors, warnings=warnings or [])
    
    @property
    def error_count(self) -> int:
        return len(self.errors)


class ErrorKind(str, Enum):
    """Taxonomy of expected, user-triggerable failures."""
    VALIDATION = "validation"   # Payload breaks entity rules
    REFERENCE = "reference"     # Names an entity that doesn't exist
    INVARIANT = "invariant"     # Breaks a cross-entity business rule


class EngineError(BaseModel):
    """A structured, non-fatal error reported to the caller."""
    
    kind: ErrorKind
    message: str
    entity_type: Optional[EntityKind] = None
    entity_id: Optional[str] = None
    errors: list[str] = Field(
        default_factory=list,
        description="Individual rule violations for validation errors"
    )
    
    @classmethod
    def validation(
        cls,
        entity_type: EntityKind,
        result: ValidationResult,
        entity_id: Optional[str] = None,
    ) -> 'EngineError':
        return cls(
            kind=ErrorKind.VALIDATION,
            message=f"{EntityKind(entity_type).value.capitalize()} validation failed",
            entity_type=entity_type,
            entity_id=entity_id,
            errors=list(result.errors),
        )
    
    @classmethod
    def missing(cls, entity_type: EntityKind, entity_id: str) -> 'EngineError':
        return cls(
            kind=ErrorKind.REFERENCE,
            message=f"{EntityKind(entity_type).value.capitalize()} with id {entity_id} not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )
    
    @classmethod
    def invariant(
        cls,
        message: str,
        entity_type: Optional[EntityKind] = None,
        entity_id: Optional[str] = None,
    ) -> 'EngineError':
        return cls(
            kind=ErrorKind.INVARIANT,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )


class RecomputeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RecomputeStepResult(BaseModel):
    """What one step of the recompute plan did."""
    
    step: str
    status: RecomputeStatus
    entity_ids: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None


class RecomputeReport(BaseModel):
    """Ordered record of the recompute steps run after a mutation."""
    
    steps: list[RecomputeStepResult] = Field(default_factory=list)
    
    @property
    def ok(self) -> bool:
        return all(s.status != RecomputeStatus.FAILED for s in self.steps)
    
    @property
    def failed_steps(self) -> list[str]:
        return [s.step for s in self.steps if s.status == RecomputeStatus.FAILED]
    
    def step(self, name: str) -> Optional[RecomputeStepResult]:
        for result in self.steps:
            if result.step == name:
                return result
        return None


class MutationResult(BaseModel):
    """
    Outcome of a create/update/delete.
    
    On failure `snapshot` is the caller's snapshot, unchanged: a mutation
    is applied completely or not at all.
    """
    
    success: bool
    snapshot: LedgerSnapshot
    entity: Optional[Entity] = None
    errors: list[EngineError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recompute: RecomputeReport = Field(default_factory=RecomputeReport)
    alerts: list[Alert] = Field(default_factory=list)
    correlation_id: Optional[UUID] = None
    
    @property
    def error_kinds(self) -> list[ErrorKind]:
        return [e.kind for e in self.errors]


class RolloverResult(BaseModel):
    """Outcome of rolling one budget into its next period."""
    
    budget_id: str
    rolled: bool
    predecessor: Optional[Budget] = None
    successor: Optional[Budget] = None
    error: Optional[EngineError] = None


class RolloverPassResult(BaseModel):
    """Outcome of rolling every expired budget forward."""
    
    snapshot: LedgerSnapshot
    results: list[RolloverResult] = Field(default_factory=list)
    correlation_id: Optional[UUID] = None
    
    @property
    def rolled_count(self) -> int:
        return sum(1 for r in self.results if r.rolled)
    
    @property
    def successors(self) -> list[Budget]:
        return [r.successor for r in self.results if r.successor is not None]


class TransactionPreview(BaseModel):
    """What committing a candidate transaction would do to budgets."""
    
    validation: ValidationResult
    alerts: list[Alert] = Field(default_factory=list)
    
    @property
    def would_exceed_budget(self) -> bool:
        return any(a.entity_type == "budget" and a.percentage > 100 for a in self.alerts)


class LedgerState(BaseModel):
    """Every derived value for a snapshot, produced by a full rescan."""
    
    snapshot: LedgerSnapshot
    budget_progress: list[BudgetProgress] = Field(default_factory=list)
    goal_progress: list[GoalProgress] = Field(default_factory=list)
    alerts: list[Alert] = Field(default_factory=list)
    recompute: RecomputeReport = Field(default_factory=RecomputeReport)
