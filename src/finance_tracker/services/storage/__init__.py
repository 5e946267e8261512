"""
Storage Services Package

Provides abstract interfaces and concrete implementations for persisting
ledger snapshots and audit events. JSON files are the default backend,
but the engine only ever sees the interfaces.
"""

from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    SnapshotStorageInterface,
    StorageError,
)
from finance_tracker.services.storage.json_file import (
    JsonFileSnapshotStorage,
    JsonLinesAuditStorage,
)
from finance_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemorySnapshotStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "SnapshotStorageInterface",
    # Exceptions
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemorySnapshotStorage",
    "JsonFileSnapshotStorage",
    "JsonLinesAuditStorage",
]
