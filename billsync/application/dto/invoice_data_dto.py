"""
Monthly invoice data DTOs.
Worklog aggregation requests and the per-epic, per-bucket response.
"""

from typing import Dict, List, Optional
import datetime as dt
from pydantic import Field

from billsync.domain.models.worklog import (
    EpicMeta,
    WorklogEntry,
    MonthlyInvoiceEpic,
    MonthlyInvoiceDataResponse
)

from .base_dto import RequestDTO, ResponseDTO


# Request DTOs
class EpicRequestDTO(RequestDTO):
    """One epic to aggregate."""

    epic_key: str = Field(min_length=1, max_length=64)
    epic_name: str = Field(default="", max_length=255)
    project_id: str = Field(default="", max_length=64)
    status: str = Field(default="", max_length=64)

    def to_domain(self) -> EpicMeta:
        return EpicMeta(
            epic_key=self.epic_key,
            epic_name=self.epic_name,
            project_id=self.project_id,
            status=self.status
        )


class MonthlyInvoiceDataRequestDTO(RequestDTO):
    """DTO for requesting monthly invoice data."""

    month: Optional[str] = Field(default=None, description="YYYY-MM, set from the path")
    epics: List[EpicRequestDTO] = Field(default_factory=list, description="Epics in output order")


# Response DTOs
class WorklogEntryResponseDTO(ResponseDTO):
    """DTO for a single worklog."""

    date: dt.date
    author: str
    hours: float
    description: str
    issue_key: str
    worklog_id: Optional[str] = None

    @classmethod
    def from_domain(cls, worklog: WorklogEntry) -> "WorklogEntryResponseDTO":
        return cls(
            date=worklog.date,
            author=worklog.author,
            hours=float(worklog.hours),
            description=worklog.description,
            issue_key=worklog.issue_key,
            worklog_id=worklog.worklog_id
        )


class MonthlyInvoiceEpicResponseDTO(ResponseDTO):
    """DTO for one epic's monthly data."""

    epic_key: str
    epic_name: str
    project_id: str
    status: str
    buckets: Dict[str, List[WorklogEntryResponseDTO]]
    total_hours: float

    @classmethod
    def from_domain(cls, epic: MonthlyInvoiceEpic) -> "MonthlyInvoiceEpicResponseDTO":
        return cls(
            epic_key=epic.epic_key,
            epic_name=epic.epic_name,
            project_id=epic.project_id,
            status=epic.status,
            buckets={
                key: [WorklogEntryResponseDTO.from_domain(worklog) for worklog in worklogs]
                for key, worklogs in epic.buckets.items()
            },
            total_hours=float(epic.total_hours)
        )


class MonthlyInvoiceDataResponseDTO(ResponseDTO):
    """DTO for the monthly invoice data response."""

    month: str
    epics: List[MonthlyInvoiceEpicResponseDTO]
    grand_total_hours: float
    generated_at: dt.datetime

    @classmethod
    def from_domain(cls, data: MonthlyInvoiceDataResponse) -> "MonthlyInvoiceDataResponseDTO":
        return cls(
            month=str(data.month),
            epics=[MonthlyInvoiceEpicResponseDTO.from_domain(epic) for epic in data.epics],
            grand_total_hours=float(data.grand_total_hours),
            generated_at=data.generated_at
        )
