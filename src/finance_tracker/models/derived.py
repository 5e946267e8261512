"""
Derived Models

These are computed from the entities and never persisted. Recomputing
them from the same snapshot always yields the same values.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BudgetStatus(str, Enum):
    """Display status derived from the uncapped spending percentage."""
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


class BudgetState(str, Enum):
    """
    Where a budget sits in its period lifecycle.
    
    ACTIVE -> EXPIRED happens by the clock alone. EXPIRED -> ROLLED happens
    only when a rollover pass creates the successor. ROLLED is terminal.
    """
    UPCOMING = "upcoming"   # Window has not started yet
    ACTIVE = "active"       # now is inside [start_date, end_date]
    EXPIRED = "expired"     # now is past end_date, no successor yet
    ROLLED = "rolled"       # A successor exists
    INACTIVE = "inactive"   # Switched off without a successor


class AlertSeverity(str, Enum):
    WARNING = "warning"
    DANGER = "danger"


class GoalStatus(str, Enum):
    COMPLETED = "completed"
    ON_TRACK = "on-track"
    BEHIND = "behind"
    OVERDUE = "overdue"


class DerivedModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class BudgetProgress(DerivedModel):
    """Spending against one budget."""
    
    budget_id: str
    category: str
    limit: Decimal
    spent: Decimal
    remaining: Decimal = Field(
        ...,
        description="max(0, limit - spent)"
    )
    percentage: Decimal = Field(
        ...,
        description="Display percentage, capped at 100"
    )
    raw_percentage: Decimal = Field(
        ...,
        description="Uncapped percentage; 125 stays 125"
    )
    status: BudgetStatus
    days_remaining: int = Field(ge=0)
    
    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.limit


class Alert(DerivedModel):
    """
    A user-facing alert for one budget or goal.
    
    Dismissal is owned by the caller; the engine regenerates alerts from
    scratch on every evaluation.
    """
    
    entity_id: str
    entity_type: str = Field(
        ...,
        pattern="^(budget|goal)$"
    )
    category: str
    severity: AlertSeverity
    message: str
    percentage: Decimal


class GoalMilestone(DerivedModel):
    percentage: int
    amount: Decimal
    achieved: bool


class GoalProgress(DerivedModel):
    """Progress summary for one goal."""
    
    goal_id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal
    remaining: Decimal
    percentage: Decimal = Field(
        ...,
        description="Uncapped progress percentage"
    )
    display_percentage: Decimal = Field(
        ...,
        description="Progress percentage capped at 100"
    )
    days_remaining: int = Field(ge=0)
    required_daily_contribution: Decimal
    projected_completion_date: Optional[datetime] = Field(
        default=None,
        description="None means no projection is available (no progress yet)"
    )
    is_on_track: bool
    status: GoalStatus
    milestones: list[GoalMilestone] = Field(default_factory=list)
    
    @property
    def has_projection(self) -> bool:
        return self.projected_completion_date is not None


class ContributionSuggestion(DerivedModel):
    """Contribution needed per day/week/month to hit a goal on time."""
    
    goal_id: str
    daily: Decimal
    weekly: Decimal
    monthly: Decimal
