"""Validation rules for time entry input.
Shared by the DTO layer and direct callers so both agree on what is valid.
"""

from dataclasses import dataclass, replace
from datetime import date as calendar_date
from decimal import Decimal
from typing import Optional, Union

from billsync.domain.models.base import ValidationError, ImmutableEntryError
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.value_objects import Number, to_decimal, parse_calendar_date


@dataclass
class TimeEntryInput:
    """Raw time entry fields. Unset fields are left alone on update."""

    description: Optional[str] = None
    duration: Optional[Number] = None
    date: Optional[Union[calendar_date, str]] = None
    billable: Optional[bool] = None
    hourly_rate: Optional[Number] = None
    jira_issue_key: Optional[str] = None


class TimeEntryValidator:
    """
    Pure validation of time entry input.
    Returns normalized input (Decimal numbers, parsed dates) or raises
    ValidationError; never touches storage.
    """

    def validate_create(self, data: TimeEntryInput) -> TimeEntryInput:
        """Validate the fields required to create an entry."""
        if data.description is None:
            raise ValidationError("Description is required", "description")
        if data.duration is None:
            raise ValidationError("Duration is required", "duration")
        if data.date is None:
            raise ValidationError("Date is required", "date")

        normalized = self.validate_fields(data)
        if normalized.billable is None:
            normalized = replace(normalized, billable=False)
        return normalized

    def validate_update(self, existing: TimeEntry, data: TimeEntryInput) -> TimeEntryInput:
        """Validate an update against the existing entry."""
        if existing.invoiced:
            raise ImmutableEntryError(existing.id, "edit")
        return self.validate_fields(data)

    def validate_fields(self, data: TimeEntryInput) -> TimeEntryInput:
        """Validate and normalize whichever fields are set."""
        description = data.description
        if description is not None:
            description = description.strip()
            if not description:
                raise ValidationError("Description cannot be empty", "description")

        duration = None
        if data.duration is not None:
            duration = to_decimal(data.duration, "duration")
            if duration < 0:
                raise ValidationError("Duration cannot be negative", "duration")

        entry_date = parse_calendar_date(data.date) if data.date is not None else None

        hourly_rate = None
        if data.hourly_rate is not None:
            hourly_rate = to_decimal(data.hourly_rate, "hourly_rate")
            if hourly_rate < Decimal("0"):
                raise ValidationError("Hourly rate cannot be negative", "hourly_rate")

        issue_key = data.jira_issue_key
        if issue_key is not None:
            issue_key = issue_key.strip() or None

        return TimeEntryInput(
            description=description,
            duration=duration,
            date=entry_date,
            billable=data.billable,
            hourly_rate=hourly_rate,
            jira_issue_key=issue_key
        )
