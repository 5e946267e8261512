"""Percentage thresholds shared by budget status and alert severity."""

from decimal import Decimal
from typing import Optional

from finance_tracker.config import EngineSettings
from finance_tracker.models.derived import AlertSeverity, BudgetStatus


HUNDRED = Decimal("100")


def severity_for(percentage: Decimal, settings: EngineSettings) -> Optional[AlertSeverity]:
    """
    Map a raw (uncapped) percentage to an alert severity.
    
    [0, warning) -> None, [warning, danger) -> WARNING, >= danger -> DANGER.
    """
    if percentage >= settings.danger_threshold:
        return AlertSeverity.DANGER
    if percentage >= settings.warning_threshold:
        return AlertSeverity.WARNING
    return None


def status_for(percentage: Decimal, settings: EngineSettings) -> BudgetStatus:
    severity = severity_for(percentage, settings)
    if severity is None:
        return BudgetStatus.SAFE
    return BudgetStatus(severity.value)


def percentage_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return Decimal("0")
    return part * HUNDRED / whole
