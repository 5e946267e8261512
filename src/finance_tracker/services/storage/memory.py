"""
In-memory storage, used by tests and by sessions that don't persist.
"""

from typing import Optional
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.snapshot import LedgerSnapshot
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    SnapshotStorageInterface,
)


class InMemorySnapshotStorage(SnapshotStorageInterface):
    """Keeps the last saved snapshot. Snapshots are immutable, so no copy is needed."""
    
    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        self._snapshot = snapshot
        self.save_count = 0
    
    def load(self) -> LedgerSnapshot:
        if self._snapshot is None:
            raise NotFoundError("No snapshot has been saved")
        return self._snapshot
    
    def save(self, snapshot: LedgerSnapshot) -> bool:
        self._snapshot = snapshot
        self.save_count += 1
        return True
    
    def exists(self) -> bool:
        return self._snapshot is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""
    
    def __init__(self):
        self._events: list[AuditEvent] = []
    
    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)
    
    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True
    
    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)
    
    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)
    
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
