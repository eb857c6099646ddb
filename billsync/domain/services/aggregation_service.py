"""Worklog aggregation service.
Turns raw tracker worklogs into the monthly per-epic, per-bucket dataset.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Sequence, Tuple, Union

from billsync.domain.models.base import DuplicateEpicError, ValidationError, utcnow
from billsync.domain.models.value_objects import Month
from billsync.domain.models.worklog import (
    EpicMeta,
    WorklogEntry,
    MonthlyInvoiceEpic,
    MonthlyInvoiceDataResponse,
    sum_hours
)

logger = logging.getLogger(__name__)


BucketStrategy = Callable[[date], str]


def day_bucket(day: date) -> str:
    """Bucket per calendar day: YYYY-MM-DD."""
    return day.isoformat()


def iso_week_bucket(day: date) -> str:
    """Bucket per ISO week: YYYY-Www."""
    year, week, _ = day.isocalendar()
    return f"{year:04d}-W{week:02d}"


def week_of_month_bucket(day: date) -> str:
    """Bucket per seven-day block of the month: Week 1 covers days 1-7."""
    return f"Week {(day.day - 1) // 7 + 1}"


BUCKET_STRATEGIES: Dict[str, BucketStrategy] = {
    "day": day_bucket,
    "iso_week": iso_week_bucket,
    "week_of_month": week_of_month_bucket,
}


def resolve_bucket_strategy(strategy: Union[str, BucketStrategy]) -> BucketStrategy:
    """Look up a named strategy, or pass a callable through."""
    if callable(strategy):
        return strategy
    try:
        return BUCKET_STRATEGIES[strategy]
    except KeyError:
        raise ValidationError(
            f"Unknown bucket strategy '{strategy}'. Use one of: {', '.join(BUCKET_STRATEGIES)}",
            "bucket_granularity"
        )


def check_unique_epics(epics: Iterable[EpicMeta]) -> None:
    """Raise DuplicateEpicError if two epics share a key."""
    seen = set()
    for meta in epics:
        meta.validate()
        if meta.epic_key in seen:
            raise DuplicateEpicError(meta.epic_key)
        seen.add(meta.epic_key)


EpicWorklogs = Tuple[EpicMeta, Sequence[WorklogEntry]]


class WorklogAggregator:
    """
    Pure aggregation of worklogs into a MonthlyInvoiceDataResponse.

    Buckets keep their worklogs in input order and appear in the order
    their first worklog was seen. Hours are summed exactly, never rounded.
    """

    def __init__(
        self,
        bucket_strategy: Union[str, BucketStrategy] = "week_of_month",
        clock: Callable[[], datetime] = utcnow
    ):
        self.bucket_key = resolve_bucket_strategy(bucket_strategy)
        self.clock = clock

    def aggregate(self, month: Union[Month, str], epics: Sequence[EpicWorklogs]) -> MonthlyInvoiceDataResponse:
        """Aggregate each epic's worklogs for the month, keeping epic input order."""
        month = Month.parse(month)

        check_unique_epics(meta for meta, _ in epics)

        results = tuple(self.aggregate_epic(month, meta, worklogs) for meta, worklogs in epics)
        grand_total = sum((epic.total_hours for epic in results), Decimal("0"))

        return MonthlyInvoiceDataResponse(
            month=month,
            epics=results,
            grand_total_hours=grand_total,
            generated_at=self.clock()
        )

    def aggregate_epic(self, month: Month, meta: EpicMeta, worklogs: Sequence[WorklogEntry]) -> MonthlyInvoiceEpic:
        """Group one epic's worklogs into buckets."""
        buckets: Dict[str, List[WorklogEntry]] = {}

        for worklog in worklogs:
            if not month.contains(worklog.date):
                logger.warning(
                    f"Worklog {worklog.worklog_id or '-'} on {worklog.issue_key} dated "
                    f"{worklog.date.isoformat()} is outside {month} (epic {meta.epic_key})"
                )
            buckets.setdefault(self.bucket_key(worklog.date), []).append(worklog)

        frozen = {key: tuple(entries) for key, entries in buckets.items()}
        total = sum((sum_hours(entries) for entries in frozen.values()), Decimal("0"))

        return MonthlyInvoiceEpic(
            epic_key=meta.epic_key,
            epic_name=meta.epic_name,
            project_id=meta.project_id,
            status=meta.status,
            buckets=frozen,
            total_hours=total
        )
