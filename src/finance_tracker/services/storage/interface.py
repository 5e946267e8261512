"""
Abstract Storage Interface

DESIGN DECISION: Persistence is an external concern of the engine.
The engine works on in-memory snapshots; storage only loads and saves
them. Defining the boundary as an interface lets us:
1. Use in-memory storage for testing
2. Keep JSON files for a single-user desktop setup
3. Swap in a database later without touching business logic

The interface is intentionally simple. A snapshot is loaded and saved
whole; there are no partial writes.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.snapshot import LedgerSnapshot


class SnapshotStorageInterface(ABC):
    """
    Abstract interface for ledger snapshot storage.
    
    Implementations guarantee that a loaded snapshot holds correctly typed
    dates and finite decimals; the engine does not re-check them.
    """
    
    @abstractmethod
    def load(self) -> LedgerSnapshot:
        """
        Load the most recently saved snapshot.
        
        Raises:
            NotFoundError: If nothing has been saved yet
            StorageError: If the stored data cannot be read
        """
        pass
    
    @abstractmethod
    def save(self, snapshot: LedgerSnapshot) -> bool:
        """
        Replace the stored snapshot.
        
        Returns:
            True if saved successfully
            
        Raises:
            StorageError: If save fails
        """
        pass
    
    @abstractmethod
    def exists(self) -> bool:
        """Whether a snapshot has been saved."""
        pass


class AuditStorageInterface(ABC):
    """
    Where audit events are kept.
    
    Events are only ever appended; nothing rewrites or removes them.
    """
    
    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append one event.
        
        Returns:
            True once the event is stored
        """
        pass
    
    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Every event caused by one mutation, oldest first."""
        pass
    
    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """History of one entity, oldest first."""
        pass
    
    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Up to `limit` events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Nothing stored under the requested key."""
    pass
