"""Entity validation package."""

from finance_tracker.validation.validator import (
    EntityValidator,
    as_record,
    parse_date,
    parse_datetime,
    parse_decimal,
)

__all__ = [
    "EntityValidator",
    "as_record",
    "parse_date",
    "parse_datetime",
    "parse_decimal",
]
