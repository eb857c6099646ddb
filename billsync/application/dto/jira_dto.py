"""
Jira sync DTOs.
"""

from typing import List, Optional
import datetime as dt
from pydantic import Field, field_validator, model_validator

from billsync.domain.services.reconciliation_service import PullFailure, PullResult

from .base_dto import RequestDTO, ResponseDTO, calendar_date


# Request DTOs
class PullWorklogsRequestDTO(RequestDTO):
    """DTO for pulling worklogs from Jira."""

    start_date: dt.date = Field(description="First day to pull")
    end_date: dt.date = Field(description="Last day to pull")
    issue_keys: Optional[List[str]] = Field(default=None, description="Limit to these issues")
    fail_on_partial: bool = Field(default=False, description="Report partial failures as an error")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def validate_dates(cls, v):
        return calendar_date(v)

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class PushWorklogRequestDTO(RequestDTO):
    """DTO for pushing one time entry to Jira."""

    time_entry_id: str = Field(min_length=1)
    issue_key: str = Field(min_length=1, max_length=64)


# Response DTOs
class PullFailureResponseDTO(ResponseDTO):
    """One failed fetch or worklog."""

    stage: str
    message: str
    code: str
    retryable: bool
    issue_key: Optional[str] = None
    worklog_id: Optional[str] = None

    @classmethod
    def from_domain(cls, failure: PullFailure) -> "PullFailureResponseDTO":
        return cls(**failure.to_dict())


class PullResultResponseDTO(ResponseDTO):
    """DTO for pull results."""

    created: int
    updated: int
    skipped: int
    failures: List[PullFailureResponseDTO]
    cancelled: bool

    @classmethod
    def from_domain(cls, result: PullResult) -> "PullResultResponseDTO":
        return cls(
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            failures=[PullFailureResponseDTO.from_domain(failure) for failure in result.failures],
            cancelled=result.cancelled
        )
