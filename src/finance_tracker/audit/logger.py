"""
Audit Logger

DESIGN DECISION: Every mutation the engine accepts or rejects is logged.
This provides:
1. Complete traceability of how a ledger reached its state
2. Debugging capability when a recompute step fails
3. A history of the alerts users were shown

The audit logger:
- Is synchronous, like the engine it serves
- Gracefully handles failures (a broken audit store never fails a mutation)
- Supports correlation IDs to trace every event caused by one mutation
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.config import LoggingSettings, get_settings
from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finance_tracker.models.derived import Alert
from finance_tracker.models.results import EngineError, ErrorKind
from finance_tracker.services.storage import AuditStorageInterface


def configure_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure structlog for local logging.
    
    JSON lines for machines, or the console renderer for development.
    """
    settings = settings or get_settings().logging
    logging.basicConfig(format="%(message)s", level=settings.level)
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.
    
    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage, when one is configured
    """
    
    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.
        
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_tracker.audit")
    
    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.
        
        Always logs locally. Persists to storage if available.
        
        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()
        
        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)
        
        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False
        
        return True
    
    def log_entity_changed(
        self,
        entity_type: str,
        action: str,
        entity_id: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log a create/update/delete that was applied."""
        self.log(AuditEventBuilder.entity_changed(
            entity_type=entity_type,
            action=action,
            entity_id=entity_id,
            correlation_id=correlation_id,
            details=details,
        ))
    
    def log_engine_error(
        self,
        error: EngineError,
        correlation_id: UUID,
    ) -> None:
        """Log a rejected mutation, picking the event type from the error kind."""
        entity_type = error.entity_type.value if error.entity_type else None
        if error.kind == ErrorKind.VALIDATION:
            event = AuditEventBuilder.validation_failed(
                entity_type=entity_type or "unknown",
                entity_id=error.entity_id,
                errors=error.errors,
                correlation_id=correlation_id,
            )
        elif error.kind == ErrorKind.REFERENCE:
            event = AuditEventBuilder.reference_error(
                entity_type=entity_type or "unknown",
                entity_id=error.entity_id,
                message=error.message,
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.invariant_violation(
                entity_type=entity_type,
                entity_id=error.entity_id,
                message=error.message,
                correlation_id=correlation_id,
            )
        self.log(event)
    
    def log_budget_rolled_over(
        self,
        budget_id: str,
        successor_id: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.budget_rolled_over(
            budget_id=budget_id,
            successor_id=successor_id,
            correlation_id=correlation_id,
        ))
    
    def log_goal_contribution(
        self,
        goal_id: str,
        amount: str,
        new_total: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.goal_contribution(
            goal_id=goal_id,
            amount=amount,
            new_total=new_total,
            correlation_id=correlation_id,
        ))
    
    def log_goal_completed(
        self,
        goal_id: str,
        name: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.goal_completed(
            goal_id=goal_id,
            name=name,
            correlation_id=correlation_id,
        ))
    
    def log_alert(
        self,
        alert: Alert,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.alert_raised(
            entity_type=alert.entity_type,
            entity_id=alert.entity_id,
            severity=alert.severity.value,
            message=alert.message,
            correlation_id=correlation_id,
        ))
    
    def log_recompute_failed(
        self,
        step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.recompute_failed(
            step=step,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.
    
    Use this at the start of a new mutation and pass it through every
    event the mutation causes.
    """
    return uuid4()
