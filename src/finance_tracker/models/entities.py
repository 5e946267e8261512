"""
Core Entity Models for the Finance Tracker

These models define the four source-of-truth entities: Account,
Transaction, Budget and Goal.

DESIGN DECISION: Entities are frozen Pydantic models.
Pydantic only enforces the *shape* of a record (types, enums). Business
rules (limits, lengths, date ordering) live in the validation package so
that every violation can be reported at once instead of raising on the
first one. Edits never mutate an entity in place: they produce a new
instance through model_copy().
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from finance_tracker.models.periods import BudgetPeriod, calculate_end_date


def new_id() -> str:
    """Generate a new entity identity."""
    return str(uuid4())


def naive_local(value: datetime) -> datetime:
    """
    Convert an offset-aware datetime to naive local time.
    
    The engine compares timestamps against a naive clock, so every stored
    datetime is naive. Naive values pass through unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    """
    Transaction direction.
    
    IMPORTANT: The type is authoritative for categorical filtering only.
    Balance arithmetic always uses the signed amount.
    """
    INCOME = "income"
    EXPENSE = "expense"


class EntityKind(str, Enum):
    """The entity collections the engine owns."""
    ACCOUNT = "account"
    TRANSACTION = "transaction"
    BUDGET = "budget"
    GOAL = "goal"


class EntityModel(BaseModel):
    """Shared configuration for all entities."""
    
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
    )
    
    id: str = Field(
        default_factory=new_id,
        description="Unique entity ID"
    )
    created_at: datetime = Field(
        default_factory=datetime.now,
        description="When the entity was created"
    )
    updated_at: datetime = Field(
        default_factory=datetime.now,
        description="Last update timestamp"
    )
    
    @field_validator("created_at", "updated_at")
    @classmethod
    def _naive_timestamps(cls, value: datetime) -> datetime:
        return naive_local(value)
    
    def touched(self, now: Optional[datetime] = None, **updates: Any):
        """Return a copy with the given field updates and a fresh updated_at."""
        updates["updated_at"] = now or datetime.now()
        return self.model_copy(update=updates)


# =============================================================================
# ACCOUNT
# =============================================================================

class Account(EntityModel):
    """
    A money container transactions are recorded against.
    
    CRITICAL: `balance` is a derived cache. The source of truth is
    `initial_balance` plus the signed sum of the account's transactions.
    Only the orchestrator refreshes it.
    """
    
    name: str = Field(
        ...,
        description="Display name"
    )
    type: AccountType = Field(
        ...,
        description="Account type"
    )
    initial_balance: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance, set at creation or by a direct balance edit"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Cached balance derived from the transaction log"
    )
    currency: str = Field(
        default="USD",
        description="ISO-4217 currency code"
    )
    is_archived: bool = Field(
        default=False,
        description="Soft-deleted accounts are kept but no longer live"
    )
    
    @model_validator(mode='before')
    @classmethod
    def default_balances(cls, data: Any) -> Any:
        """A freshly built account's cache equals its opening balance."""
        if isinstance(data, dict):
            if "initial_balance" not in data and "balance" in data:
                data = {**data, "initial_balance": data["balance"]}
            elif "balance" not in data and "initial_balance" in data:
                data = {**data, "balance": data["initial_balance"]}
        return data
    
    @property
    def is_live(self) -> bool:
        return not self.is_archived


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(EntityModel):
    """A single dated movement of money on one account."""
    
    date: dt.date
    amount: Decimal = Field(
        ...,
        description="Signed amount; the sign is the truth for balance math"
    )
    description: str = ""
    category: str = Field(
        ...,
        description="Free-text category, matched exactly against budgets"
    )
    account_id: str
    type: TransactionType
    tags: tuple[str, ...] = Field(default_factory=tuple)
    
    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME
    
    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE
    
    @property
    def spent_amount(self) -> Decimal:
        """What this transaction consumes from a budget."""
        return abs(self.amount)


# =============================================================================
# BUDGET
# =============================================================================

class Budget(EntityModel):
    """
    A spending limit for one category over one period.
    
    A budget owns no transactions. Spending is always recomputed from the
    transaction log. `predecessor_id` links a rolled-over budget to the
    budget it replaced.
    """
    
    category: str
    limit: Decimal = Field(
        ...,
        description="Spending limit for the period"
    )
    period: BudgetPeriod
    start_date: date
    end_date: date = Field(
        ...,
        description="Last day (inclusive) of the budget window"
    )
    is_active: bool = True
    predecessor_id: Optional[str] = Field(
        default=None,
        description="Budget this one succeeded in a rollover"
    )
    
    @model_validator(mode='before')
    @classmethod
    def derive_end_date(cls, data: Any) -> Any:
        """End date defaults to the period end when not overridden."""
        if isinstance(data, dict) and data.get("end_date") is None:
            start = data.get("start_date")
            period = data.get("period")
            if start is not None and period is not None:
                if isinstance(start, str):
                    start = date.fromisoformat(start)
                if isinstance(start, datetime):
                    start = start.date()
                data = {**data, "end_date": calculate_end_date(start, BudgetPeriod(period))}
        return data
    
    def contains(self, day: date) -> bool:
        """Inclusive window check."""
        return self.start_date <= day <= self.end_date


# =============================================================================
# GOAL
# =============================================================================

class Goal(EntityModel):
    """
    A savings target.
    
    IMPORTANT: `current_amount` is accumulated through explicit
    contributions. It is independent of the transaction log.
    """
    
    name: str
    description: Optional[str] = None
    target_amount: Decimal
    current_amount: Decimal = Decimal("0")
    target_date: datetime
    account_id: str
    is_completed: bool = False
    
    @field_validator("target_date")
    @classmethod
    def _naive_target_date(cls, value: datetime) -> datetime:
        return naive_local(value)
    
    @property
    def is_achieved(self) -> bool:
        return self.current_amount >= self.target_amount
    
    def with_current_amount(self, amount: Decimal, now: Optional[datetime] = None) -> 'Goal':
        """
        Set the accumulated amount.
        
        Completion follows the amount in the same step: reaching the
        target completes the goal, dropping below it reopens it.
        """
        return self.touched(
            now,
            current_amount=amount,
            is_completed=amount >= self.target_amount,
        )
    
    def with_contribution(self, amount: Decimal, now: Optional[datetime] = None) -> 'Goal':
        """Add a non-negative contribution."""
        if amount < 0:
            raise ValueError("Contribution amount must not be negative")
        new_amount = self.current_amount + amount
        return self.touched(
            now,
            current_amount=new_amount,
            is_completed=self.is_completed or new_amount >= self.target_amount,
        )
