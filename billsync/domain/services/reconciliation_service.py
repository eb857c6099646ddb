"""Reconciliation between tracker worklogs and local time entries.
Pulls worklogs and merges them into the store without duplicating hours.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from billsync.domain.models.base import (
    DomainException,
    ValidationError,
    WorklogParseError,
    ImmutableEntryError,
    PartialFailureError
)
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.value_objects import DateRange, Month
from billsync.domain.models.worklog import EpicMeta, WorklogEntry, MonthlyInvoiceDataResponse
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.issue_tracker import IssueTrackerClient
from billsync.domain.services.aggregation_service import WorklogAggregator, check_unique_epics
from billsync.domain.services.external_calls import call_with_timeout

logger = logging.getLogger(__name__)


CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"


@dataclass
class PullFailure:
    """One fetch or worklog that could not be reconciled."""

    stage: str
    message: str
    code: str
    retryable: bool = False
    issue_key: Optional[str] = None
    worklog_id: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        stage: str,
        exc: DomainException,
        issue_key: Optional[str] = None,
        worklog_id: Optional[str] = None
    ) -> "PullFailure":
        return cls(
            stage=stage,
            message=exc.message,
            code=exc.code,
            retryable=bool(exc.retryable),
            issue_key=issue_key,
            worklog_id=worklog_id
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "issue_key": self.issue_key,
            "worklog_id": self.worklog_id
        }


@dataclass
class PullResult:
    """Outcome of a pull. Successes are committed even when failures exist."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    failures: List[PullFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def raise_for_failures(self) -> "PullResult":
        """Raise PartialFailureError if anything failed, else return self."""
        if self.failures:
            raise PartialFailureError(
                f"Pull finished with {len(self.failures)} failure(s) "
                f"({self.created} created, {self.updated} updated, {self.skipped} skipped)",
                failures=list(self.failures)
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failures": [failure.to_dict() for failure in self.failures],
            "cancelled": self.cancelled
        }


class ReconciliationCoordinator:
    """
    Session-scoped coordinator for pulling tracker worklogs.

    The tracker is authoritative for a worklog's duration, description and
    date. Entries are matched on the tracker's worklog ID, so pulling the
    same range twice never creates a second entry.
    """

    def __init__(
        self,
        store: BackingStore,
        tracker: IssueTrackerClient,
        user_id: str,
        aggregator: Optional[WorklogAggregator] = None,
        reconciled_entries_billable: bool = True,
        store_timeout: Optional[float] = None,
        tracker_timeout: Optional[float] = None
    ):
        self.store = store
        self.tracker = tracker
        self.user_id = user_id
        self.aggregator = aggregator or WorklogAggregator()
        self.reconciled_entries_billable = reconciled_entries_billable
        self.store_timeout = store_timeout
        self.tracker_timeout = tracker_timeout

    async def pull(
        self,
        date_range: DateRange,
        issue_keys: Optional[Sequence[str]] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PullResult:
        """
        Fetch worklogs in the range and merge them into local entries.

        Cancellation is checked between worklogs; whatever was merged before
        the event was set stays merged.
        """
        result = PullResult()

        worklogs = await self._fetch(date_range, issue_keys, result, cancel_event)

        for worklog in worklogs:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break

            try:
                outcome = await self._reconcile(worklog)
            except WorklogParseError as exc:
                result.failures.append(
                    PullFailure.from_exception("parse", exc, worklog.issue_key, worklog.worklog_id)
                )
                continue
            except ValidationError as exc:
                result.failures.append(
                    PullFailure.from_exception("validate", exc, worklog.issue_key, worklog.worklog_id)
                )
                continue
            except DomainException as exc:
                result.failures.append(
                    PullFailure.from_exception("merge", exc, worklog.issue_key, worklog.worklog_id)
                )
                continue

            result.record(outcome)

        if result.cancelled:
            logger.info(f"Pull for {date_range} cancelled after {result.created + result.updated + result.skipped} worklogs")

        if result.failures:
            logger.warning(
                f"Pull for {date_range} finished with {len(result.failures)} failure(s): "
                + "; ".join(f"{f.code} {f.issue_key or ''} {f.worklog_id or ''}".strip() for f in result.failures)
            )

        logger.info(
            f"Pull for {date_range}: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {len(result.failures)} failed"
        )
        return result

    async def _fetch(
        self,
        date_range: DateRange,
        issue_keys: Optional[Sequence[str]],
        result: PullResult,
        cancel_event: Optional[asyncio.Event]
    ) -> List[WorklogEntry]:
        """Fetch worklogs, one call per issue key so one bad key does not block the rest."""
        if not issue_keys:
            return await call_with_timeout(
                self.tracker.pull_worklogs(date_range),
                self.tracker_timeout,
                "pull_worklogs"
            )

        worklogs: List[WorklogEntry] = []
        errors: List[DomainException] = []
        keys = list(dict.fromkeys(key.strip() for key in issue_keys if key and key.strip()))
        if not keys:
            raise ValidationError("Issue keys cannot be blank", "issue_keys")

        for key in keys:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break
            try:
                worklogs.extend(await call_with_timeout(
                    self.tracker.pull_worklogs(date_range, [key]),
                    self.tracker_timeout,
                    "pull_worklogs"
                ))
            except DomainException as exc:
                errors.append(exc)
                result.failures.append(PullFailure.from_exception("fetch", exc, issue_key=key))

        if errors and len(errors) == len(keys):
            raise errors[0]

        return worklogs

    async def _reconcile(self, worklog: WorklogEntry) -> str:
        """Merge one worklog. Returns the outcome name."""
        worklog.validate(require_id=True)

        existing = await call_with_timeout(
            self.store.find_by_worklog_id(worklog.worklog_id),
            self.store_timeout,
            "find_by_worklog_id"
        )

        if existing is None:
            entry = TimeEntry.from_worklog(
                self.user_id,
                worklog,
                billable=self.reconciled_entries_billable
            )
            await call_with_timeout(self.store.save_entry(entry), self.store_timeout, "save_entry")
            return CREATED

        if existing.matches_worklog(worklog):
            return SKIPPED

        if existing.invoiced:
            raise ImmutableEntryError(existing.id, "reconcile")

        version = existing.version
        existing.apply_worklog(worklog)
        await call_with_timeout(
            self.store.save_entry(existing, expected_version=version),
            self.store_timeout,
            "save_entry"
        )
        logger.info(f"Time entry {existing.id} updated from worklog {worklog.worklog_id}")
        return UPDATED

    async def monthly_invoice_data(
        self,
        month: Union[Month, str],
        epics: Sequence[EpicMeta]
    ) -> MonthlyInvoiceDataResponse:
        """
        Pull each epic's worklogs for the month and aggregate them.

        Fetches run concurrently; when one fails the others are cancelled
        and the error propagates. Unparseable worklogs are left out.
        """
        month = Month.parse(month)
        check_unique_epics(epics)

        date_range = month.to_range()
        tasks = [
            asyncio.ensure_future(call_with_timeout(
                self.tracker.pull_worklogs(date_range, [meta.epic_key]),
                self.tracker_timeout,
                "pull_worklogs"
            ))
            for meta in epics
        ]
        try:
            worklogs_per_epic = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        pairs = []
        for meta, worklogs in zip(epics, worklogs_per_epic):
            parsed = [worklog for worklog in worklogs if worklog.is_parsed]
            if len(parsed) != len(worklogs):
                logger.warning(
                    f"Epic {meta.epic_key}: left {len(worklogs) - len(parsed)} unparseable worklog(s) "
                    f"out of {month}"
                )
            pairs.append((meta, parsed))

        return self.aggregator.aggregate(month, pairs)

    async def monthly_invoice_data_by_issue(self, month: Union[Month, str]) -> MonthlyInvoiceDataResponse:
        """
        Aggregate the session user's worklogs for the month, one group per issue.
        Groups appear in the order their issue was first seen.
        """
        month = Month.parse(month)

        worklogs = await call_with_timeout(
            self.tracker.pull_worklogs(month.to_range()),
            self.tracker_timeout,
            "pull_worklogs"
        )

        groups: Dict[str, List[WorklogEntry]] = {}
        for worklog in worklogs:
            if not worklog.is_parsed:
                logger.warning(f"Left unparseable worklog {worklog.worklog_id or '-'} on {worklog.issue_key} out of {month}")
                continue
            groups.setdefault(worklog.issue_key, []).append(worklog)

        epics = [
            (EpicMeta(epic_key=key, epic_name=key, project_id=key.split("-")[0]), entries)
            for key, entries in groups.items()
        ]
        return self.aggregator.aggregate(month, epics)
