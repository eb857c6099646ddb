"""
TimeEntry domain model.
Represents a unit of billable or non-billable work and its sync lifecycle.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Dict, Any, TYPE_CHECKING
from enum import Enum

from billsync.domain.models.base import (
    BaseEntity,
    DomainEvent,
    ValidationError,
    ImmutableEntryError,
    NotBillableError,
    AlreadyInvoicedError,
    InvalidStateTransition,
    utcnow
)
from billsync.domain.models.value_objects import to_decimal, parse_calendar_date

if TYPE_CHECKING:
    from billsync.domain.models.worklog import WorklogEntry


class SyncState(str, Enum):
    """Position of a time entry in the sync and invoicing lifecycle."""
    LOCAL = "local"
    BILLABLE = "billable"
    SYNCED = "synced"
    INVOICED = "invoiced"


# Domain Events

class TimeEntrySyncedEvent(DomainEvent):
    """Event raised when a time entry is pushed to the tracker."""

    def __init__(self, entry_id: Optional[str], issue_key: str, worklog_id: str):
        super().__init__()
        self.entry_id = entry_id
        self.issue_key = issue_key
        self.worklog_id = worklog_id

    @property
    def event_name(self) -> str:
        return "time_entry.synced"


class TimeEntryInvoicedEvent(DomainEvent):
    """Event raised when time entry is included in an invoice."""

    def __init__(self, entry_id: Optional[str], invoice_id: str):
        super().__init__()
        self.entry_id = entry_id
        self.invoice_id = invoice_id

    @property
    def event_name(self) -> str:
        return "time_entry.invoiced"


class TimeEntryDetachedEvent(DomainEvent):
    """Event raised when time entry is released from an invoice."""

    def __init__(self, entry_id: Optional[str], invoice_id: Optional[str]):
        super().__init__()
        self.entry_id = entry_id
        self.invoice_id = invoice_id

    @property
    def event_name(self) -> str:
        return "time_entry.detached"


class TimeEntry(BaseEntity):
    """
    TimeEntry entity.

    The sync state is derived from the flags rather than stored, so the
    invariants below are the only source of truth:

    - ``invoiced`` implies ``billable`` and a set ``invoice_id``
    - ``jira_worklog_id`` implies ``jira_synced_at``
    - ``duration`` (decimal hours) is never negative
    """

    def __init__(
        self,
        user_id: str,
        description: str,
        duration: Decimal,
        date: date,
        billable: bool = False,
        hourly_rate: Optional[Decimal] = None,
        jira_issue_key: Optional[str] = None,
        jira_worklog_id: Optional[str] = None,
        jira_synced_at: Optional[datetime] = None,
        invoiced: bool = False,
        invoice_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(**kwargs)

        # Owner
        self.user_id = user_id

        # Entry details
        self.description = description
        self.duration = to_decimal(duration, "duration")
        self.date = date

        # Billing information
        self.billable = billable
        self.hourly_rate = to_decimal(hourly_rate, "hourly_rate") if hourly_rate is not None else None

        # Tracker references
        self.jira_issue_key = jira_issue_key
        self.jira_worklog_id = jira_worklog_id
        self.jira_synced_at = jira_synced_at

        # Invoice association
        self.invoiced = invoiced
        self.invoice_id = invoice_id

        self.validate()

    def validate(self) -> None:
        """Validate time entry state."""
        if not self.user_id:
            raise ValidationError("User ID is required", "user_id")

        if not self.description or not self.description.strip():
            raise ValidationError("Description is required", "description")

        if self.duration < 0:
            raise ValidationError("Duration cannot be negative", "duration")

        if not isinstance(self.date, date) or isinstance(self.date, datetime):
            raise ValidationError("Date must be a calendar date", "date")

        if self.hourly_rate is not None and self.hourly_rate < 0:
            raise ValidationError("Hourly rate cannot be negative", "hourly_rate")

        # Business rules
        if self.invoiced and not self.billable:
            raise ValidationError("Invoiced entries must be billable", "invoiced")

        if self.invoiced != bool(self.invoice_id):
            raise ValidationError("Invoice ID is required exactly when the entry is invoiced", "invoice_id")

        if self.jira_worklog_id and not self.jira_synced_at:
            raise ValidationError("Synced entries must record the sync timestamp", "jira_synced_at")

    @property
    def sync_state(self) -> SyncState:
        """Current lifecycle state derived from the entry's flags."""
        if self.invoiced:
            return SyncState.INVOICED
        if self.jira_worklog_id:
            return SyncState.SYNCED
        if self.billable:
            return SyncState.BILLABLE
        return SyncState.LOCAL

    @property
    def is_synced(self) -> bool:
        """Check if the entry carries a tracker worklog reference."""
        return self.jira_worklog_id is not None

    @property
    def can_be_edited(self) -> bool:
        """Check if entry can be edited."""
        return not self.invoiced

    @property
    def can_be_deleted(self) -> bool:
        """Check if entry can be deleted."""
        return not self.invoiced

    def is_synced_to(self, issue_key: str) -> bool:
        """Check if the entry is already synced to the given issue."""
        return self.is_synced and self.jira_issue_key == issue_key

    def update_info(
        self,
        description: Optional[str] = None,
        duration: Optional[Decimal] = None,
        date: Optional[date] = None,
        billable: Optional[bool] = None,
        hourly_rate: Optional[Decimal] = None
    ) -> None:
        """Update time entry information."""
        if not self.can_be_edited:
            raise ImmutableEntryError(self.id, "edit")

        if description is not None:
            self.description = description

        if duration is not None:
            self.duration = to_decimal(duration, "duration")

        if date is not None:
            self.date = parse_calendar_date(date)

        if billable is not None:
            self.billable = billable

        if hourly_rate is not None:
            self.hourly_rate = to_decimal(hourly_rate, "hourly_rate")

        self.validate()
        self.mark_as_updated()

    def mark_billable(self) -> bool:
        """Set the billable flag. Returns False when nothing changed."""
        if self.invoiced:
            raise ImmutableEntryError(self.id, "change billing of")

        if self.billable:
            return False

        self.billable = True
        self.mark_as_updated()
        return True

    def record_sync(self, issue_key: str, worklog_id: str, synced_at: Optional[datetime] = None) -> None:
        """Record a successful push to the tracker, replacing any previous reference."""
        if self.invoiced:
            raise ImmutableEntryError(self.id, "sync")

        if not issue_key or not issue_key.strip():
            raise ValidationError("Issue key is required", "issue_key")

        if not worklog_id:
            raise ValidationError("Worklog ID is required", "jira_worklog_id")

        self.jira_issue_key = issue_key
        self.jira_worklog_id = str(worklog_id)
        self.jira_synced_at = synced_at or utcnow()
        self.mark_as_updated()

        self.add_event(TimeEntrySyncedEvent(
            entry_id=self.id,
            issue_key=issue_key,
            worklog_id=self.jira_worklog_id
        ))

    def attach_to_invoice(self, invoice_id: str) -> None:
        """Mark entry as invoiced."""
        if self.invoiced:
            raise AlreadyInvoicedError(self.id)

        if not self.billable:
            raise NotBillableError(self.id)

        if not invoice_id:
            raise ValidationError("Invoice ID is required", "invoice_id")

        self.invoiced = True
        self.invoice_id = invoice_id
        self.mark_as_updated()

        self.add_event(TimeEntryInvoicedEvent(
            entry_id=self.id,
            invoice_id=invoice_id
        ))

    def detach_from_invoice(self) -> None:
        """Release the entry from its invoice, returning to Synced or Billable."""
        if not self.invoiced:
            raise InvalidStateTransition(
                f"Time entry {self.id} is in state '{self.sync_state.value}', not invoiced"
            )

        previous_invoice = self.invoice_id
        self.invoiced = False
        self.invoice_id = None
        self.mark_as_updated()

        self.add_event(TimeEntryDetachedEvent(
            entry_id=self.id,
            invoice_id=previous_invoice
        ))

    def matches_worklog(self, worklog: "WorklogEntry") -> bool:
        """Check if the tracker-owned fields equal the worklog's."""
        return (
            self.duration == worklog.hours
            and self.description == worklog.description
            and self.date == worklog.date
        )

    def apply_worklog(self, worklog: "WorklogEntry", synced_at: Optional[datetime] = None) -> None:
        """Overwrite tracker-owned fields with the worklog's values."""
        if self.invoiced:
            raise ImmutableEntryError(self.id, "reconcile")

        self.description = worklog.description
        self.duration = worklog.hours
        self.date = worklog.date
        self.jira_issue_key = worklog.issue_key
        self.jira_synced_at = synced_at or utcnow()

        self.validate()
        self.mark_as_updated()

    @classmethod
    def create_manual_entry(
        cls,
        user_id: str,
        description: str,
        duration: Decimal,
        date: date,
        billable: bool = False,
        hourly_rate: Optional[Decimal] = None,
        jira_issue_key: Optional[str] = None
    ) -> 'TimeEntry':
        """Create a local entry with no tracker reference."""
        return cls(
            user_id=user_id,
            description=description,
            duration=duration,
            date=date,
            billable=billable,
            hourly_rate=hourly_rate,
            jira_issue_key=jira_issue_key
        )

    @classmethod
    def from_worklog(
        cls,
        user_id: str,
        worklog: "WorklogEntry",
        billable: bool = True,
        synced_at: Optional[datetime] = None
    ) -> 'TimeEntry':
        """Create an entry that is born synced from a tracker worklog."""
        entry = cls(
            user_id=user_id,
            description=worklog.description,
            duration=worklog.hours,
            date=worklog.date,
            billable=billable
        )
        entry.record_sync(worklog.issue_key, worklog.worklog_id, synced_at)
        # Creation from the tracker is not a push
        entry.pull_events()
        return entry

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "description": self.description,
            "duration": float(self.duration),
            "hourly_rate": float(self.hourly_rate) if self.hourly_rate is not None else None,
            "date": self.date.isoformat(),
            "billable": self.billable,
            "invoiced": self.invoiced,
            "invoice_id": self.invoice_id,
            "jira_issue_key": self.jira_issue_key,
            "jira_worklog_id": self.jira_worklog_id,
            "jira_synced_at": self.jira_synced_at.isoformat() if self.jira_synced_at else None,
            "sync_state": self.sync_state.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version
        }
