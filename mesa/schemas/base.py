"""
Shared schema base and request-parameter parsing.

Field names are snake_case internally and camelCase on the wire.
"""
from datetime import date, time
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from mesa.core.clock import parse_hhmm
from mesa.core.errors import ValidationError


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase input, serializes camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def to_date(value: Optional[str]) -> date:
    """Parse a YYYY-MM-DD request value, ValidationError if malformed."""
    if not value:
        raise ValidationError("Date is required (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value}. Expected YYYY-MM-DD format.")


def to_time(value: Optional[str]) -> time:
    """Parse an HH:MM request value, ValidationError if malformed."""
    if not value:
        raise ValidationError("Time is required (HH:MM)")
    try:
        return parse_hhmm(value)
    except ValueError as e:
        raise ValidationError(str(e))
