"""
Time Entry DTOs for the application layer.
Data Transfer Objects for time tracking and sync operations.
"""

from typing import Optional, List
import datetime as dt
from decimal import Decimal
from pydantic import AliasChoices, Field, field_validator, model_validator

from billsync.domain.models.base import ValidationError
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.services.validation_service import TimeEntryInput, TimeEntryValidator

from .base_dto import RequestDTO, ResponseDTO, calendar_date


_validator = TimeEntryValidator()


class TimeEntryFieldsMixin(RequestDTO):
    """Shared fields; ``hours`` and ``is_billable`` are accepted as aliases."""

    description: Optional[str] = Field(default=None, max_length=2000, description="Work description")
    duration: Optional[Decimal] = Field(
        default=None,
        validation_alias=AliasChoices("duration", "hours"),
        description="Duration in decimal hours"
    )
    date: Optional[dt.date] = Field(default=None, description="Calendar day of the work (YYYY-MM-DD)")
    billable: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("billable", "is_billable"),
        description="Whether time is billable"
    )
    hourly_rate: Optional[Decimal] = Field(default=None, description="Override hourly rate")
    jira_issue_key: Optional[str] = Field(default=None, max_length=64, description="Tracker issue key")

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v):
        """Accept calendar dates only."""
        return calendar_date(v)

    def to_input(self) -> TimeEntryInput:
        """Convert to the domain input structure."""
        return TimeEntryInput(
            description=self.description,
            duration=self.duration,
            date=self.date,
            billable=self.billable,
            hourly_rate=self.hourly_rate,
            jira_issue_key=self.jira_issue_key
        )


# Request DTOs
class CreateTimeEntryRequestDTO(TimeEntryFieldsMixin):
    """DTO for manual time entry creation."""

    description: str = Field(max_length=2000, description="Work description")
    duration: Decimal = Field(validation_alias=AliasChoices("duration", "hours"), description="Duration in decimal hours")
    date: dt.date = Field(description="Calendar day of the work (YYYY-MM-DD)")

    @model_validator(mode="after")
    def validate_entry(self):
        """Apply the time entry creation rules."""
        try:
            _validator.validate_create(self.to_input())
        except ValidationError as e:
            raise ValueError(e.message)
        return self


class UpdateTimeEntryRequestDTO(TimeEntryFieldsMixin):
    """DTO for time entry update requests. Unset fields are left unchanged."""

    id: Optional[str] = Field(default=None, description="Time entry ID, set from the path")

    @model_validator(mode="after")
    def validate_entry(self):
        """Apply the field rules to whichever fields are set."""
        try:
            _validator.validate_fields(self.to_input())
        except ValidationError as e:
            raise ValueError(e.message)
        return self


class ListTimeEntriesRequestDTO(RequestDTO):
    """DTO for listing time entries with filters."""

    start_date: Optional[dt.date] = Field(default=None, description="Filter from date")
    end_date: Optional[dt.date] = Field(default=None, description="Filter to date")
    billable: Optional[bool] = Field(default=None, validation_alias=AliasChoices("billable", "is_billable"))
    invoiced: Optional[bool] = Field(default=None, validation_alias=AliasChoices("invoiced", "is_invoiced"))
    invoice_id: Optional[str] = Field(default=None, description="Filter by invoice")
    page: Optional[int] = Field(default=None, ge=1, description="Page number")
    limit: Optional[int] = Field(default=None, ge=1, le=100, description="Items per page")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def validate_dates(cls, v):
        return calendar_date(v)

    @model_validator(mode="after")
    def validate_date_range(self):
        """Validate the end date is not before the start date."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class SyncTimeEntryRequestDTO(RequestDTO):
    """DTO for pushing a time entry to the tracker."""

    id: Optional[str] = Field(default=None, description="Time entry ID, set from the path")
    issue_key: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Tracker issue key; defaults to the entry's own jira_issue_key"
    )

    @field_validator("issue_key")
    @classmethod
    def validate_issue_key(cls, v):
        if v is None:
            return v
        if not v.strip():
            raise ValueError("Issue key cannot be blank")
        return v.strip()


# Response DTOs
class TimeEntryResponseDTO(ResponseDTO):
    """DTO for time entry responses."""

    user_id: str
    description: str
    duration: float
    date: dt.date
    billable: bool
    hourly_rate: Optional[float] = None
    jira_issue_key: Optional[str] = None
    jira_worklog_id: Optional[str] = None
    jira_synced_at: Optional[dt.datetime] = None
    invoiced: bool
    invoice_id: Optional[str] = None
    sync_state: str

    @classmethod
    def from_entity(cls, entry: TimeEntry) -> "TimeEntryResponseDTO":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            description=entry.description,
            duration=float(entry.duration),
            date=entry.date,
            billable=entry.billable,
            hourly_rate=float(entry.hourly_rate) if entry.hourly_rate is not None else None,
            jira_issue_key=entry.jira_issue_key,
            jira_worklog_id=entry.jira_worklog_id,
            jira_synced_at=entry.jira_synced_at,
            invoiced=entry.invoiced,
            invoice_id=entry.invoice_id,
            sync_state=entry.sync_state.value,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
            version=entry.version
        )


class TimeEntryListResponseDTO(ResponseDTO):
    """DTO for time entry lists. Totals cover every matching entry, not just the page."""

    items: List[TimeEntryResponseDTO]
    total: int
    total_hours: float
    page: Optional[int] = None
    limit: Optional[int] = None
    total_pages: Optional[int] = None
