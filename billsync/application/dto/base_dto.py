"""
Base DTOs for the application layer.
Provides common patterns for request/response data transfer objects.
"""

from typing import Any, Optional
from datetime import datetime, date
from pydantic import BaseModel, ConfigDict

from billsync.domain.models.base import ValidationError
from billsync.domain.models.value_objects import parse_calendar_date


class BaseDTO(BaseModel):
    """Base DTO with common configuration."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Convert enum values to their values
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True,
        # Unknown fields are rejected
        extra="forbid",
    )


class RequestDTO(BaseDTO):
    """Base class for request DTOs."""
    pass


class ResponseDTO(BaseDTO):
    """Base class for response DTOs."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: Optional[int] = None


class IdRequestDTO(RequestDTO):
    """Request addressing one entity by ID."""

    id: str


def calendar_date(value: Any) -> Any:
    """
    Before-validator for calendar date fields.
    Rejects datetimes and timestamps so a time component is never truncated silently.
    """
    if value is None:
        return value
    if isinstance(value, datetime) or not isinstance(value, (date, str)):
        raise ValueError("Date must be a calendar date formatted as YYYY-MM-DD")
    try:
        return parse_calendar_date(value)
    except ValidationError as e:
        raise ValueError(e.message)
