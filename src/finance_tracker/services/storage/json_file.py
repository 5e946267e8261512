"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON document per ledger.
For a single-user ledger this is enough:
1. The file is human-readable and easy to back up
2. pydantic serializes and re-validates every entity on the way in,
   so loaded dates and amounts are correctly typed
3. Writes go to a temporary file that is then renamed over the old one,
   so a crash mid-write never leaves a half-written ledger

TRADEOFFS:
- The whole ledger is rewritten on every save
- No concurrent writers (the engine assumes a single writer anyway)

Audit events are appended as JSON lines next to the ledger.
"""

import os
from pathlib import Path
from typing import Union
from uuid import UUID

import structlog
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.snapshot import LedgerSnapshot
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    SnapshotStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class JsonFileSnapshotStorage(SnapshotStorageInterface):
    """Snapshot stored as one pydantic-serialized JSON document."""
    
    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
    
    @property
    def path(self) -> Path:
        return self._path
    
    def exists(self) -> bool:
        return self._path.exists()
    
    def load(self) -> LedgerSnapshot:
        if not self._path.exists():
            raise NotFoundError(f"Ledger file not found: {self._path}")
        try:
            raw = self._path.read_text(encoding="utf-8")
            return LedgerSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Ledger file {self._path} is not a valid ledger: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read ledger file {self._path}: {e}")
    
    def save(self, snapshot: LedgerSnapshot) -> bool:
        try:
            self._write(snapshot.model_dump_json(indent=2))
        except OSError as e:
            raise StorageError(f"Failed to write ledger file {self._path}: {e}")
        logger.debug("ledger_saved", path=str(self._path), **snapshot.counts)
        return True
    
    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self._path)


class JsonLinesAuditStorage(AuditStorageInterface):
    """Append-only audit log, one JSON event per line."""
    
    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
    
    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def append_event(self, event: AuditEvent) -> bool:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(event.model_dump_json() + "\n")
        return True
    
    def _read_all(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        try:
            with self._path.open(encoding="utf-8") as fh:
                for line_no, line in enumerate(fh, start=1):
                    if not line.strip():
                        continue
                    try:
                        events.append(AuditEvent.model_validate_json(line))
                    except ValidationError:
                        logger.warning(
                            "audit_line_unreadable",
                            path=str(self._path),
                            line=line_no,
                        )
        except OSError as e:
            raise StorageError(f"Failed to read audit log {self._path}: {e}")
        return events
    
    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._read_all() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)
    
    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._read_all()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)
    
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._read_all(), key=lambda e: e.timestamp, reverse=True)[:limit]
