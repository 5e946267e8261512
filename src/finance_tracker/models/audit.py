"""
Audit Models for the Finance Tracker

Every mutation the engine accepts or rejects is logged for audit purposes.
This provides:
1. Traceability of how the ledger reached its current state
2. Debugging information when a recompute fails
3. A record of alerts as they were raised

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Entity lifecycle
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    
    # Derived state
    BUDGET_ROLLED_OVER = "budget_rolled_over"
    GOAL_CONTRIBUTION_RECORDED = "goal_contribution_recorded"
    GOAL_COMPLETED = "goal_completed"
    ALERT_RAISED = "alert_raised"
    
    # Rejections
    VALIDATION_FAILED = "validation_failed"
    REFERENCE_ERROR = "reference_error"
    INVARIANT_VIOLATION = "invariant_violation"
    RECOMPUTE_STEP_FAILED = "recompute_step_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_LIFECYCLE_EVENTS = {
    ("account", "created"): AuditEventType.ACCOUNT_CREATED,
    ("account", "updated"): AuditEventType.ACCOUNT_UPDATED,
    ("account", "deleted"): AuditEventType.ACCOUNT_DELETED,
    ("transaction", "created"): AuditEventType.TRANSACTION_CREATED,
    ("transaction", "updated"): AuditEventType.TRANSACTION_UPDATED,
    ("transaction", "deleted"): AuditEventType.TRANSACTION_DELETED,
    ("budget", "created"): AuditEventType.BUDGET_CREATED,
    ("budget", "updated"): AuditEventType.BUDGET_UPDATED,
    ("budget", "deleted"): AuditEventType.BUDGET_DELETED,
    ("goal", "created"): AuditEventType.GOAL_CREATED,
    ("goal", "updated"): AuditEventType.GOAL_UPDATED,
    ("goal", "deleted"): AuditEventType.GOAL_DELETED,
}


class AuditEvent(BaseModel):
    """
    A single audit event.
    
    This is the core unit of our audit trail.
    """
    
    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )
    
    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO
    
    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'budget')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    
    # Correlation - all events caused by one mutation share an id
    correlation_id: Optional[UUID] = None
    
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    
    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    
    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
    
    def to_row(self) -> list[str]:
        """
        Flatten to a row for tabular export.
        
        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.
    
    Usage:
        event = AuditEventBuilder.entity_changed("budget", "created", budget_id, cid)
        event = AuditEventBuilder.budget_rolled_over(old_id, new_id, cid)
    """
    
    @staticmethod
    def entity_changed(
        entity_type: str,
        action: str,
        entity_id: str,
        correlation_id: Optional[UUID],
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=_LIFECYCLE_EVENTS[(entity_type, action)],
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {action}",
            details=details or {},
        )
    
    @staticmethod
    def validation_failed(
        entity_type: str,
        entity_id: Optional[str],
        errors: list[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} validation failed with {len(errors)} issues",
            details={"errors": errors},
        )
    
    @staticmethod
    def reference_error(
        entity_type: str,
        entity_id: Optional[str],
        message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFERENCE_ERROR,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=message,
            error_code="reference",
            error_message=message,
        )
    
    @staticmethod
    def invariant_violation(
        entity_type: Optional[str],
        entity_id: Optional[str],
        message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_VIOLATION,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=message,
            error_code="invariant",
            error_message=message,
        )
    
    @staticmethod
    def budget_rolled_over(
        budget_id: str,
        successor_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ROLLED_OVER,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget rolled over into {successor_id}",
            details={"successor_id": successor_id},
        )
    
    @staticmethod
    def goal_contribution(
        goal_id: str,
        amount: str,
        new_total: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION_RECORDED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Contribution of {amount} recorded",
            details={"amount": amount, "current_amount": new_total},
        )
    
    @staticmethod
    def goal_completed(
        goal_id: str,
        name: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal achieved: {name}",
        )
    
    @staticmethod
    def alert_raised(
        entity_type: str,
        entity_id: str,
        severity: str,
        message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALERT_RAISED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=message,
            details={"alert_severity": severity},
        )
    
    @staticmethod
    def recompute_failed(
        step: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECOMPUTE_STEP_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Recompute step failed: {step}",
            error_code=step,
            error_message=error_message,
        )
