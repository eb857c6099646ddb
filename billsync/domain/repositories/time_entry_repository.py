"""Time Entry repository interface.
Defines the contract for time entry data persistence operations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
from datetime import date

from billsync.domain.models.time_entry import TimeEntry


@dataclass
class TimeEntryFilter:
    """Criteria for listing time entries. Unset fields do not filter."""

    user_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    billable: Optional[bool] = None
    invoiced: Optional[bool] = None
    invoice_id: Optional[str] = None
    jira_worklog_id: Optional[str] = None
    jira_issue_key: Optional[str] = None

    def matches(self, entry: TimeEntry) -> bool:
        """Check if an entry satisfies every set criterion."""
        if self.user_id is not None and entry.user_id != self.user_id:
            return False
        if self.start_date is not None and entry.date < self.start_date:
            return False
        if self.end_date is not None and entry.date > self.end_date:
            return False
        if self.billable is not None and entry.billable != self.billable:
            return False
        if self.invoiced is not None and entry.invoiced != self.invoiced:
            return False
        if self.invoice_id is not None and entry.invoice_id != self.invoice_id:
            return False
        if self.jira_worklog_id is not None and entry.jira_worklog_id != self.jira_worklog_id:
            return False
        if self.jira_issue_key is not None and entry.jira_issue_key != self.jira_issue_key:
            return False
        return True


class TimeEntryRepository(ABC):
    """
    Repository interface for TimeEntry entity.
    Implementations return fresh copies: mutating a returned entry never
    changes stored state until it is saved.
    """

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[TimeEntry]:
        """
        Find a time entry by its ID.
        Returns None if not found.
        """
        pass

    @abstractmethod
    async def save_entry(self, entry: TimeEntry, expected_version: Optional[int] = None) -> TimeEntry:
        """
        Save a time entry.

        With ``expected_version`` None the entry is created and gets an ID.
        Otherwise the write only happens if the stored version still equals
        ``expected_version``; raises ConcurrencyConflictError if not.
        Returns the saved entry with its new version.
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> bool:
        """
        Delete a time entry.
        Returns True if deleted, False if not found.
        """
        pass

    @abstractmethod
    async def list_entries(self, criteria: Optional[TimeEntryFilter] = None) -> List[TimeEntry]:
        """
        List time entries matching the filter, ordered by date then creation.
        """
        pass

    async def find_by_worklog_id(self, worklog_id: str) -> Optional[TimeEntry]:
        """Find the entry reconciled from a tracker worklog."""
        entries = await self.list_entries(TimeEntryFilter(jira_worklog_id=worklog_id))
        return entries[0] if entries else None
