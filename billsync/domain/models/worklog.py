"""
Worklog and monthly invoice data models.
Tracker-owned worklogs and the immutable monthly aggregation built from them.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any, Tuple, Mapping, Iterable

from billsync.domain.models.base import ValidationError, WorklogParseError
from billsync.domain.models.value_objects import Month, to_decimal


@dataclass(frozen=True)
class WorklogEntry:
    """A record of time spent on an issue, owned by the tracker."""

    date: date
    author: str
    hours: Decimal
    description: str
    issue_key: str
    worklog_id: Optional[str] = None
    parse_error: Optional[str] = None

    @classmethod
    def unparseable(cls, issue_key: str, worklog_id: Optional[str], reason: str) -> "WorklogEntry":
        """Placeholder for a payload that could not be parsed; never merged or aggregated."""
        return cls(
            date=None,
            author="",
            hours=Decimal("0"),
            description="",
            issue_key=issue_key,
            worklog_id=worklog_id,
            parse_error=reason
        )

    @property
    def is_parsed(self) -> bool:
        return self.parse_error is None

    def __post_init__(self):
        """Normalize hours to Decimal."""
        if not isinstance(self.hours, Decimal):
            object.__setattr__(self, "hours", to_decimal(self.hours, "hours"))

    def validate(self, require_id: bool = False) -> None:
        """Validate a worklog before it is merged into local entries."""
        if self.parse_error is not None:
            raise WorklogParseError(
                f"Worklog {self.worklog_id or '-'} on {self.issue_key}: {self.parse_error}",
                self.worklog_id
            )

        if require_id and not self.worklog_id:
            raise ValidationError("Worklog ID is required", "worklog_id")

        if not self.issue_key:
            raise ValidationError("Issue key is required", "issue_key")

        if not isinstance(self.date, date) or isinstance(self.date, datetime):
            raise ValidationError(f"Invalid worklog date: {self.date!r}", "date")

        if self.hours < 0:
            raise ValidationError("Worklog hours cannot be negative", "hours")

        if not self.description or not self.description.strip():
            raise ValidationError("Worklog description is required", "description")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "date": self.date.isoformat(),
            "author": self.author,
            "hours": float(self.hours),
            "description": self.description,
            "issue_key": self.issue_key,
            "worklog_id": self.worklog_id
        }


@dataclass(frozen=True)
class EpicMeta:
    """Description of a requested epic."""

    epic_key: str
    epic_name: str
    project_id: str
    status: str = ""

    def validate(self) -> None:
        if not self.epic_key:
            raise ValidationError("Epic key is required", "epic_key")


def sum_hours(worklogs: Iterable[WorklogEntry]) -> Decimal:
    """Exact sum of worklog hours."""
    return sum((worklog.hours for worklog in worklogs), Decimal("0"))


@dataclass(frozen=True)
class MonthlyInvoiceEpic:
    """One epic's worklogs for one month, grouped into buckets."""

    epic_key: str
    epic_name: str
    project_id: str
    status: str
    buckets: Mapping[str, Tuple[WorklogEntry, ...]] = field(default_factory=dict)
    total_hours: Decimal = Decimal("0")

    def __post_init__(self):
        """Check the total against the bucketed worklogs."""
        expected = sum((sum_hours(entries) for entries in self.buckets.values()), Decimal("0"))
        if self.total_hours != expected:
            raise ValidationError(
                f"Epic {self.epic_key} total_hours {self.total_hours} does not match "
                f"bucketed hours {expected}",
                "total_hours"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "epic_key": self.epic_key,
            "epic_name": self.epic_name,
            "project_id": self.project_id,
            "status": self.status,
            "buckets": {
                key: [worklog.to_dict() for worklog in entries]
                for key, entries in self.buckets.items()
            },
            "total_hours": float(self.total_hours)
        }


@dataclass(frozen=True)
class MonthlyInvoiceDataResponse:
    """Aggregated billing data for one month. Regenerated wholesale, never mutated."""

    month: Month
    epics: Tuple[MonthlyInvoiceEpic, ...]
    grand_total_hours: Decimal
    generated_at: datetime

    def __post_init__(self):
        """Check epic uniqueness and the grand total."""
        seen = set()
        for epic in self.epics:
            if epic.epic_key in seen:
                raise ValidationError(f"Epic {epic.epic_key} appears more than once", "epics")
            seen.add(epic.epic_key)

        expected = sum((epic.total_hours for epic in self.epics), Decimal("0"))
        if self.grand_total_hours != expected:
            raise ValidationError(
                f"grand_total_hours {self.grand_total_hours} does not match epic totals {expected}",
                "grand_total_hours"
            )

    def get_epic(self, epic_key: str) -> Optional[MonthlyInvoiceEpic]:
        """Find an epic by key."""
        for epic in self.epics:
            if epic.epic_key == epic_key:
                return epic
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "month": str(self.month),
            "epics": [epic.to_dict() for epic in self.epics],
            "grand_total_hours": float(self.grand_total_hours),
            "generated_at": self.generated_at.isoformat()
        }


# Derivations for presentation layers

def total_hours(epic: MonthlyInvoiceEpic) -> Decimal:
    """Recompute an epic's total from its buckets."""
    return sum((sum_hours(entries) for entries in epic.buckets.values()), Decimal("0"))


def bucket_hours(epic: MonthlyInvoiceEpic) -> Dict[str, Decimal]:
    """Hours per bucket, in bucket order."""
    return {key: sum_hours(entries) for key, entries in epic.buckets.items()}


def grand_total_hours(epics: Iterable[MonthlyInvoiceEpic]) -> Decimal:
    """Sum of epic totals."""
    return sum((total_hours(epic) for epic in epics), Decimal("0"))


def hours_by_author(epic: MonthlyInvoiceEpic) -> Dict[str, Decimal]:
    """Hours per worklog author, in first-seen order."""
    result: Dict[str, Decimal] = {}
    for entries in epic.buckets.values():
        for worklog in entries:
            result[worklog.author] = result.get(worklog.author, Decimal("0")) + worklog.hours
    return result
