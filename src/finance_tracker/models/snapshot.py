"""
Ledger Snapshot

DESIGN DECISION: The four entity collections travel together as one
immutable snapshot. Every orchestrator operation takes a snapshot and
returns a new one; nothing closes over shared mutable state. Readers can
hold on to a snapshot safely because it can never change under them.
"""

from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from finance_tracker.models.entities import (
    Account,
    Budget,
    EntityKind,
    Goal,
    Transaction,
)


_COLLECTIONS = {
    EntityKind.ACCOUNT: "accounts",
    EntityKind.TRANSACTION: "transactions",
    EntityKind.BUDGET: "budgets",
    EntityKind.GOAL: "goals",
}


class LedgerSnapshot(BaseModel):
    """All entity collections as they exist at one moment."""
    
    model_config = ConfigDict(frozen=True)
    
    accounts: tuple[Account, ...] = Field(default_factory=tuple)
    transactions: tuple[Transaction, ...] = Field(default_factory=tuple)
    budgets: tuple[Budget, ...] = Field(default_factory=tuple)
    goals: tuple[Goal, ...] = Field(default_factory=tuple)
    
    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------
    
    def get(self, kind: EntityKind, entity_id: str):
        """Find an entity of the given kind by id, or None."""
        for entity in getattr(self, _COLLECTIONS[EntityKind(kind)]):
            if entity.id == entity_id:
                return entity
        return None
    
    def get_account(self, account_id: str) -> Optional[Account]:
        return self.get(EntityKind.ACCOUNT, account_id)
    
    def get_live_account(self, account_id: str) -> Optional[Account]:
        account = self.get_account(account_id)
        if account is None or not account.is_live:
            return None
        return account
    
    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.get(EntityKind.TRANSACTION, transaction_id)
    
    def get_budget(self, budget_id: str) -> Optional[Budget]:
        return self.get(EntityKind.BUDGET, budget_id)
    
    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self.get(EntityKind.GOAL, goal_id)
    
    def transactions_for_account(self, account_id: str) -> list[Transaction]:
        return [t for t in self.transactions if t.account_id == account_id]
    
    def successor_of(self, budget_id: str) -> Optional[Budget]:
        """The budget created by rolling over budget_id, if any."""
        for budget in self.budgets:
            if budget.predecessor_id == budget_id:
                return budget
        return None
    
    # -------------------------------------------------------------------------
    # Copy-on-write edits
    # -------------------------------------------------------------------------
    
    def with_entity(self, kind: EntityKind, entity) -> 'LedgerSnapshot':
        """
        Insert or replace an entity.
        
        Replacement keeps the entity's position so that historical
        ordering is never disturbed.
        """
        field = _COLLECTIONS[EntityKind(kind)]
        items = list(getattr(self, field))
        for index, existing in enumerate(items):
            if existing.id == entity.id:
                items[index] = entity
                break
        else:
            items.append(entity)
        return self.model_copy(update={field: tuple(items)})
    
    def with_entities(self, kind: EntityKind, entities: Iterable) -> 'LedgerSnapshot':
        snapshot = self
        for entity in entities:
            snapshot = snapshot.with_entity(kind, entity)
        return snapshot
    
    def without_entities(self, kind: EntityKind, entity_ids: Iterable[str]) -> 'LedgerSnapshot':
        field = _COLLECTIONS[EntityKind(kind)]
        doomed = set(entity_ids)
        kept = tuple(e for e in getattr(self, field) if e.id not in doomed)
        return self.model_copy(update={field: kept})
    
    @property
    def counts(self) -> dict[str, int]:
        return {field: len(getattr(self, field)) for field in _COLLECTIONS.values()}
