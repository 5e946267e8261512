"""
Ledger Session

DESIGN DECISION: One writer owns the current snapshot.
The orchestrator is stateless; a session is the single place that holds
"the ledger as it is now". It loads the snapshot from storage, routes
every mutation through the orchestrator, swaps in the new snapshot only
when the mutation succeeded, and saves it.

Readers get the current snapshot. It is immutable, so they can keep it
as long as they like.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

import structlog

from finance_tracker.models import (
    Alert,
    LedgerSnapshot,
    LedgerState,
    MutationRequest,
    MutationResult,
    RolloverPassResult,
)
from finance_tracker.orchestrator import LedgerOrchestrator
from finance_tracker.services.storage import (
    InMemorySnapshotStorage,
    NotFoundError,
    SnapshotStorageInterface,
)


logger = structlog.get_logger(__name__)


class LedgerSession:
    """
    Single-writer holder of the current ledger snapshot.
    
    Usage:
        session = LedgerSession.open(orchestrator, JsonFileSnapshotStorage(path))
        result = session.apply({"entity": "account", "operation": "create", ...})
        session.snapshot  # the new state when result.success
    """
    
    def __init__(
        self,
        orchestrator: LedgerOrchestrator,
        storage: Optional[SnapshotStorageInterface] = None,
        snapshot: Optional[LedgerSnapshot] = None,
    ):
        self._orchestrator = orchestrator
        self._storage = storage or InMemorySnapshotStorage()
        self._snapshot = snapshot or LedgerSnapshot()
    
    @classmethod
    def open(
        cls,
        orchestrator: LedgerOrchestrator,
        storage: SnapshotStorageInterface,
        now: Optional[datetime] = None,
    ) -> 'LedgerSession':
        """
        Load the stored ledger, or start an empty one.
        
        Cached balances are re-derived on load so the session never starts
        from a stale cache.
        """
        try:
            snapshot = storage.load()
        except NotFoundError:
            logger.info("ledger_not_found_starting_empty")
            snapshot = LedgerSnapshot()
        state = orchestrator.refresh(snapshot, now)
        return cls(orchestrator, storage, state.snapshot)
    
    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot
    
    def _accept(self, snapshot: LedgerSnapshot) -> None:
        self._snapshot = snapshot
        self._storage.save(snapshot)
    
    def apply(
        self,
        request: Union[MutationRequest, dict],
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """Apply one mutation and persist the result if it succeeded."""
        result = self._orchestrator.apply(self._snapshot, request, now)
        if result.success:
            self._accept(result.snapshot)
        return result
    
    def add_contribution(
        self,
        goal_id: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        result = self._orchestrator.add_contribution(self._snapshot, goal_id, amount, now)
        if result.success:
            self._accept(result.snapshot)
        return result
    
    def roll_over_expired_budgets(self, now: Optional[datetime] = None) -> RolloverPassResult:
        result = self._orchestrator.roll_over_expired_budgets(self._snapshot, now)
        if result.rolled_count:
            self._accept(result.snapshot)
        return result
    
    def refresh(self, now: Optional[datetime] = None) -> LedgerState:
        state = self._orchestrator.refresh(self._snapshot, now)
        if state.snapshot != self._snapshot:
            self._accept(state.snapshot)
        return state
    
    def alerts(
        self,
        now: Optional[datetime] = None,
        dismissed_ids: Iterable[str] = (),
    ) -> list[Alert]:
        return self._orchestrator.get_alerts(self._snapshot, now, dismissed_ids)
    
    def query(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """
        Run a read-only orchestrator query against the current snapshot.
        
        e.g. session.query("get_budget_progress", budget_id)
        """
        if not name.startswith(("get_", "suggest_", "preview_")):
            raise AttributeError(f"{name} is not a query")
        return getattr(self._orchestrator, name)(self._snapshot, *args, **kwargs)
