"""
Time entry mapper for converting between domain entities and database models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from billsync.domain.models.time_entry import TimeEntry
from billsync.infrastructure.db.models import TimeEntryModel


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TimeEntryMapper:
    """Maps between TimeEntry domain entity and TimeEntryModel database model."""

    def domain_to_values(self, time_entry: TimeEntry) -> Dict[str, Any]:
        """Column values for a time entry, without id and version."""
        return {
            "user_id": time_entry.user_id,
            "description": time_entry.description,
            "duration_hours": time_entry.duration,
            "entry_date": time_entry.date,
            "billable": time_entry.billable,
            "hourly_rate": time_entry.hourly_rate,
            "jira_issue_key": time_entry.jira_issue_key,
            "jira_worklog_id": time_entry.jira_worklog_id,
            "jira_synced_at": time_entry.jira_synced_at,
            "invoiced": time_entry.invoiced,
            "invoice_id": time_entry.invoice_id,
            "created_at": time_entry.created_at,
            "updated_at": time_entry.updated_at,
        }

    def domain_to_model(self, time_entry: TimeEntry) -> TimeEntryModel:
        """Convert TimeEntry domain entity to TimeEntryModel."""
        return TimeEntryModel(
            id=time_entry.id,
            version=time_entry.version,
            **self.domain_to_values(time_entry)
        )

    def model_to_domain(self, model: TimeEntryModel) -> TimeEntry:
        """Convert TimeEntryModel to TimeEntry domain entity."""
        return TimeEntry(
            id=model.id,
            user_id=model.user_id,
            description=model.description,
            duration=model.duration_hours,
            date=model.entry_date,
            billable=bool(model.billable),
            hourly_rate=model.hourly_rate,
            jira_issue_key=model.jira_issue_key,
            jira_worklog_id=model.jira_worklog_id,
            jira_synced_at=as_utc(model.jira_synced_at),
            invoiced=bool(model.invoiced),
            invoice_id=model.invoice_id,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
            version=model.version or 1
        )
