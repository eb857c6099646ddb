"""Issue tracker client port."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.value_objects import DateRange
from billsync.domain.models.worklog import WorklogEntry


class IssueTrackerClient(ABC):
    """
    Remote issue tracker holding worklogs.
    Implementations raise TrackerError for failures reported by the tracker.
    """

    @abstractmethod
    async def pull_worklogs(
        self,
        date_range: DateRange,
        issue_keys: Optional[Sequence[str]] = None
    ) -> List[WorklogEntry]:
        """
        Fetch worklogs started within the range.
        With ``issue_keys`` only worklogs of those issues are returned.
        """
        pass

    @abstractmethod
    async def push_worklog(self, entry: TimeEntry, issue_key: str) -> str:
        """
        Create a worklog for the entry on the issue.
        Returns the tracker's worklog ID.
        """
        pass

    @abstractmethod
    async def delete_worklog(self, issue_key: str, worklog_id: str) -> None:
        """
        Delete a worklog from the issue.
        Used to undo a push whose local record could not be saved.
        """
        pass
