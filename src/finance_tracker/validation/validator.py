"""
Entity Validation

DESIGN DECISION: Validators never raise for bad values.
Each validator takes a partial record (a mapping or an entity), runs every
rule, and returns a ValidationResult listing all failures, so a form can
show every problem at once.

Two kinds of rules run for every entity:
- SHAPE: required fields present and parseable (numbers, dates, enums)
- BUSINESS: limits, lengths, date ordering, type-specific rules

The only exception raised here is MalformedPayloadError, when the record
itself is not a mapping at all.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel

from finance_tracker.config import EngineSettings, get_settings
from finance_tracker.models.entities import AccountType, TransactionType, naive_local
from finance_tracker.models.periods import BudgetPeriod, calculate_end_date
from finance_tracker.models.results import MalformedPayloadError, ValidationResult


Record = Union[Mapping[str, Any], BaseModel]

ACCOUNT_NAME_MAX = 100
TRANSACTION_DESCRIPTION_MAX = 255
CATEGORY_MAX = 50
GOAL_NAME_MAX = 100
GOAL_DESCRIPTION_MAX = 500


# =============================================================================
# Parsing helpers - return None instead of raising
# =============================================================================

def as_record(data: Record) -> dict[str, Any]:
    """Normalise a partial record to a plain dict."""
    if isinstance(data, BaseModel):
        return data.model_dump()
    if isinstance(data, Mapping):
        return dict(data)
    raise MalformedPayloadError(
        f"Expected a mapping or entity, got {type(data).__name__}"
    )


def parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            return None
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse to a naive datetime; offset-aware input becomes local time."""
    if isinstance(value, datetime):
        return naive_local(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return naive_local(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def parse_enum(enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


# =============================================================================
# Validator
# =============================================================================

class EntityValidator:
    """
    Validates account, transaction, budget and goal records.
    
    Limits and tolerances come from EngineSettings.
    """
    
    def __init__(self, settings: Optional[EngineSettings] = None):
        self._settings = settings or get_settings().engine
    
    def validate_account(
        self,
        data: Record,
        enforce_balance_rules: bool = True,
    ) -> ValidationResult:
        """
        Validate an account record.
        
        Type-specific balance rules (credit can't open positive, savings
        can't open negative) apply at creation and on edits that touch the
        balance or type. They are never re-checked as transactions land.
        """
        record = as_record(data)
        errors: list[str] = []
        
        name = record.get("name")
        if _blank(name):
            errors.append("Account name is required")
        elif len(name) > ACCOUNT_NAME_MAX:
            errors.append(f"Account name must be {ACCOUNT_NAME_MAX} characters or less")
        
        account_type = parse_enum(AccountType, record.get("type"))
        if account_type is None:
            errors.append("Account type must be one of: checking, savings, credit, investment")
        
        raw_balance = record.get("balance", record.get("initial_balance"))
        balance = parse_decimal(raw_balance)
        if raw_balance is None:
            errors.append("Initial balance is required")
        elif balance is None:
            errors.append("Initial balance must be a number")
        
        currency = record.get("currency")
        if _blank(currency):
            errors.append("Currency is required")
        elif len(currency.strip()) != 3 or not currency.strip().isalpha():
            errors.append("Currency must be a 3-letter ISO code (e.g., USD, EUR)")
        
        if enforce_balance_rules and balance is not None:
            if account_type == AccountType.CREDIT and balance > 0:
                errors.append("Credit card accounts should start with zero or negative balance")
            if account_type == AccountType.SAVINGS and balance < 0:
                errors.append("Savings accounts cannot have negative balance")
        
        return ValidationResult.from_messages(errors)
    
    def validate_transaction(self, data: Record) -> ValidationResult:
        """
        Validate a transaction record.
        
        The amount is signed. A type that disagrees with the sign (income
        with a negative amount, expense with a positive one) is reported as
        a warning rather than silently resolved.
        """
        record = as_record(data)
        errors: list[str] = []
        warnings: list[str] = []
        
        amount = parse_decimal(record.get("amount"))
        if amount is None or amount == 0:
            errors.append("Amount is required and must be non-zero")
        
        description = record.get("description")
        if _blank(description):
            errors.append("Description is required")
        elif len(description) > TRANSACTION_DESCRIPTION_MAX:
            errors.append(
                f"Description must be {TRANSACTION_DESCRIPTION_MAX} characters or less"
            )
        
        category = record.get("category")
        if _blank(category):
            errors.append("Category is required")
        elif len(category) > CATEGORY_MAX:
            errors.append(f"Category must be {CATEGORY_MAX} characters or less")
        
        if _blank(record.get("account_id")):
            errors.append("Account ID is required")
        
        transaction_type = parse_enum(TransactionType, record.get("type"))
        if transaction_type is None:
            errors.append('Type must be either "income" or "expense"')
        
        if parse_date(record.get("date")) is None:
            errors.append("Valid date is required")
        
        tags = record.get("tags")
        if tags is not None and (
            isinstance(tags, str) or not all(isinstance(t, str) for t in tags)
        ):
            errors.append("Tags must be a list of strings")
        
        if amount is not None and transaction_type is not None:
            if transaction_type == TransactionType.INCOME and amount < 0:
                warnings.append("Income transaction has a negative amount")
            elif transaction_type == TransactionType.EXPENSE and amount > 0:
                warnings.append("Expense transaction has a positive amount")
        
        return ValidationResult.from_messages(errors, warnings)
    
    def validate_budget(self, data: Record) -> ValidationResult:
        """
        Validate a budget record.
        
        A missing end date is derived from the start date and period before
        the date rules run.
        """
        record = as_record(data)
        errors: list[str] = []
        
        category = record.get("category")
        if _blank(category):
            errors.append("Budget category is required")
        elif len(category) > CATEGORY_MAX:
            errors.append(f"Budget category must be {CATEGORY_MAX} characters or less")
        
        limit = parse_decimal(record.get("limit"))
        if limit is None or limit <= 0:
            errors.append("Budget limit must be greater than zero")
        elif limit > self._settings.max_budget_limit:
            errors.append(
                f"Budget limit cannot exceed ${self._settings.max_budget_limit:,.0f}"
            )
        
        period = parse_enum(BudgetPeriod, record.get("period"))
        if period is None:
            errors.append('Budget period must be either "weekly" or "monthly"')
        
        start_date = parse_date(record.get("start_date"))
        if start_date is None:
            errors.append("Valid start date is required")
        
        raw_end = record.get("end_date")
        if raw_end is None and start_date is not None and period is not None:
            end_date = calculate_end_date(start_date, period)
        else:
            end_date = parse_date(raw_end)
        if end_date is None:
            errors.append("Valid end date is required")
        
        if start_date is not None and end_date is not None:
            if start_date >= end_date:
                errors.append("End date must be after start date")
            elif period is not None:
                expected_end = calculate_end_date(start_date, period)
                drift = abs((end_date - expected_end).days)
                if drift > self._settings.budget_end_date_tolerance_days:
                    errors.append(
                        f"End date does not match the specified {period.value} period"
                    )
        
        return ValidationResult.from_messages(errors)
    
    def validate_goal(
        self,
        data: Record,
        now: Optional[datetime] = None,
        require_future_target: bool = True,
    ) -> ValidationResult:
        """
        Validate a goal record against the clock `now`.
        
        Edits that leave the target date alone pass
        require_future_target=False so an overdue goal can still be renamed.
        """
        record = as_record(data)
        now = now or datetime.now()
        errors: list[str] = []
        
        name = record.get("name")
        if _blank(name):
            errors.append("Goal name is required")
        elif len(name) > GOAL_NAME_MAX:
            errors.append(f"Goal name must be {GOAL_NAME_MAX} characters or less")
        
        description = record.get("description")
        if description is not None and len(str(description)) > GOAL_DESCRIPTION_MAX:
            errors.append(
                f"Goal description must be {GOAL_DESCRIPTION_MAX} characters or less"
            )
        
        target = parse_decimal(record.get("target_amount"))
        if target is None or target <= 0:
            errors.append("Target amount must be greater than zero")
        elif target > self._settings.max_goal_target:
            errors.append(
                f"Target amount cannot exceed ${self._settings.max_goal_target:,.0f}"
            )
        
        current = parse_decimal(record.get("current_amount"))
        if current is None or current < 0:
            errors.append("Current amount must be zero or greater")
        
        if (
            current is not None
            and target is not None
            and target > 0
            and current > target * self._settings.goal_overshoot_ratio
        ):
            overshoot = (self._settings.goal_overshoot_ratio - 1) * 100
            errors.append(
                f"Current amount should not exceed target amount by more than {overshoot:.0f}%"
            )
        
        target_date = parse_datetime(record.get("target_date"))
        if target_date is None:
            errors.append("Valid target date is required")
        elif (
            require_future_target
            and not record.get("is_completed")
            and target_date <= now
        ):
            errors.append("Target date should be in the future for incomplete goals")
        
        if _blank(record.get("account_id")):
            errors.append("Account ID is required")
        
        return ValidationResult.from_messages(errors)
