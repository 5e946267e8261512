"""
Data Models Package

This package contains all Pydantic models used by the finance tracker
engine: the source entities, the snapshot that carries them, derived
values, result envelopes and audit events.
"""

from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_tracker.models.derived import (
    Alert,
    AlertSeverity,
    BudgetProgress,
    BudgetState,
    BudgetStatus,
    ContributionSuggestion,
    GoalMilestone,
    GoalProgress,
    GoalStatus,
)
from finance_tracker.models.entities import (
    Account,
    AccountType,
    Budget,
    EntityKind,
    Goal,
    Transaction,
    TransactionType,
    naive_local,
    new_id,
)
from finance_tracker.models.periods import BudgetPeriod, calculate_end_date
from finance_tracker.models.results import (
    EngineError,
    ErrorKind,
    LedgerState,
    MalformedPayloadError,
    MutationResult,
    RecomputeReport,
    RecomputeStatus,
    RecomputeStepResult,
    RolloverPassResult,
    RolloverResult,
    TransactionPreview,
    ValidationResult,
)
from finance_tracker.models.requests import MutationRequest, Operation
from finance_tracker.models.snapshot import LedgerSnapshot

__all__ = [
    # Entities
    "Account",
    "AccountType",
    "Budget",
    "BudgetPeriod",
    "EntityKind",
    "Goal",
    "Transaction",
    "TransactionType",
    "LedgerSnapshot",
    "calculate_end_date",
    "naive_local",
    "new_id",
    # Derived
    "Alert",
    "AlertSeverity",
    "BudgetProgress",
    "BudgetState",
    "BudgetStatus",
    "ContributionSuggestion",
    "GoalMilestone",
    "GoalProgress",
    "GoalStatus",
    # Results
    "EngineError",
    "ErrorKind",
    "MalformedPayloadError",
    "MutationResult",
    "RecomputeReport",
    "RecomputeStatus",
    "RecomputeStepResult",
    "LedgerState",
    "RolloverPassResult",
    "RolloverResult",
    "TransactionPreview",
    "ValidationResult",
    # Requests
    "MutationRequest",
    "Operation",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
