"""
Unit tests for tracker sync and monthly invoice data use cases.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from billsync.application.dto.invoice_data_dto import EpicRequestDTO, MonthlyInvoiceDataRequestDTO
from billsync.application.dto.jira_dto import PullWorklogsRequestDTO, PushWorklogRequestDTO
from billsync.application.use_cases.sync_use_cases import (
    PullWorklogsUseCase,
    PushWorklogUseCase,
    GetMonthlyInvoiceDataUseCase
)
from billsync.domain.models.base import TrackerError
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.worklog import WorklogEntry
from billsync.domain.services.reconciliation_service import ReconciliationCoordinator
from billsync.domain.services.sync_service import SyncStateMachine
from billsync.infrastructure.repositories.memory_store import InMemoryBackingStore


def make_worklog(worklog_id, issue_key, day, hours="1"):
    return WorklogEntry(
        date=date(2024, 3, day),
        author="Ana Dev",
        hours=Decimal(hours),
        description=f"Work on {issue_key}",
        issue_key=issue_key,
        worklog_id=worklog_id
    )


class MockTracker:
    """Tracker double keyed by issue; listed keys fail."""

    def __init__(self, worklogs=None, failing=()):
        self.worklogs = worklogs or {}
        self.failing = set(failing)
        self.pushed = []

    async def pull_worklogs(self, date_range, issue_keys=None):
        result = []
        for key in (issue_keys or list(self.worklogs)):
            if key in self.failing:
                raise TrackerError(f"{key} unavailable", 500)
            result.extend(w for w in self.worklogs.get(key, []) if date_range.contains(w.date))
        return result

    async def push_worklog(self, entry, issue_key):
        if issue_key in self.failing:
            raise TrackerError(f"{issue_key} unavailable", 503)
        self.pushed.append((entry.id, issue_key))
        return "wl-new"


class TestPullWorklogsUseCase:
    """Test cases for PullWorklogsUseCase."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryBackingStore()
        self.tracker = MockTracker(
            worklogs={
                "PROJ-1": [make_worklog("w1", "PROJ-1", 4), make_worklog("w2", "PROJ-1", 5)],
                "PROJ-2": [make_worklog("w3", "PROJ-2", 6)],
            },
            failing=["BAD-1"]
        )
        self.coordinator = ReconciliationCoordinator(self.store, self.tracker, "user-1")

    def request(self, **overrides):
        fields = {"start_date": "2024-03-01", "end_date": "2024-03-31"}
        fields.update(overrides)
        return PullWorklogsRequestDTO(**fields)

    @pytest.mark.asyncio
    async def test_pull(self):
        result = await PullWorklogsUseCase(self.coordinator).set_current_user("user-1").execute(self.request())

        assert result.success is True
        assert result.data.created == 3
        entries = await self.store.list_entries()
        assert {entry.user_id for entry in entries} == {"user-1"}

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported_in_result(self):
        use_case = PullWorklogsUseCase(self.coordinator).set_current_user("user-1")

        result = await use_case.execute(self.request(issue_keys=["PROJ-2", "BAD-1"]))

        assert result.success is True
        assert result.data.created == 1
        assert [failure.issue_key for failure in result.data.failures] == ["BAD-1"]

    @pytest.mark.asyncio
    async def test_fail_on_partial(self):
        """Test successes stay committed when partial failures are raised."""
        use_case = PullWorklogsUseCase(self.coordinator).set_current_user("user-1")

        result = await use_case.execute(self.request(issue_keys=["PROJ-2", "BAD-1"], fail_on_partial=True))

        assert result.success is False
        assert result.error_code == "PARTIAL_FAILURE"
        assert result.metadata["failures"][0]["issue_key"] == "BAD-1"
        assert len(await self.store.list_entries()) == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        cancel = asyncio.Event()
        cancel.set()

        result = await PullWorklogsUseCase(self.coordinator, cancel_event=cancel).set_current_user("user-1").execute(
            self.request()
        )

        assert result.data.cancelled is True
        assert result.data.created == 0


class TestPushWorklogUseCase:
    """Test cases for PushWorklogUseCase."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryBackingStore()
        self.tracker = MockTracker()
        self.state_machine = SyncStateMachine(self.store, self.tracker)

    async def stored_entry(self, user_id="user-1"):
        return await self.store.save_entry(TimeEntry(
            user_id=user_id,
            description="Review",
            duration=Decimal("1"),
            date=date(2024, 3, 5)
        ))

    @pytest.mark.asyncio
    async def test_push(self):
        entry = await self.stored_entry()

        result = await PushWorklogUseCase(self.state_machine).set_current_user("user-1").execute(
            PushWorklogRequestDTO(time_entry_id=entry.id, issue_key="PROJ-1")
        )

        assert result.data.jira_worklog_id == "wl-new"
        assert result.data.sync_state == "synced"

    @pytest.mark.asyncio
    async def test_push_other_users_entry(self):
        entry = await self.stored_entry(user_id="user-2")

        result = await PushWorklogUseCase(self.state_machine).set_current_user("user-1").execute(
            PushWorklogRequestDTO(time_entry_id=entry.id, issue_key="PROJ-1")
        )

        assert result.error_code == "NOT_FOUND"
        assert self.tracker.pushed == []

    @pytest.mark.asyncio
    async def test_push_tracker_failure_keeps_entry_unsynced(self):
        entry = await self.stored_entry()
        self.tracker.failing.add("BAD-1")

        result = await PushWorklogUseCase(self.state_machine).set_current_user("user-1").execute(
            PushWorklogRequestDTO(time_entry_id=entry.id, issue_key="BAD-1")
        )

        assert result.error_code == "TRACKER_ERROR"
        assert result.retryable is True
        stored = await self.store.get_entry(entry.id)
        assert stored.jira_worklog_id is None
        assert stored.version == 1


class TestGetMonthlyInvoiceDataUseCase:
    """Test cases for GetMonthlyInvoiceDataUseCase."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tracker = MockTracker(worklogs={
            "EPIC-1": [make_worklog("w1", "EPIC-1", 4, "2"), make_worklog("w2", "EPIC-1", 20, "1.5")],
            "EPIC-2": [make_worklog("w3", "EPIC-2", 11, "0.5")],
        })
        coordinator = ReconciliationCoordinator(InMemoryBackingStore(), self.tracker, "user-1")
        self.use_case = GetMonthlyInvoiceDataUseCase(coordinator).set_current_user("user-1")

    @pytest.mark.asyncio
    async def test_monthly_data(self):
        request = MonthlyInvoiceDataRequestDTO(
            month="2024-03",
            epics=[EpicRequestDTO(epic_key="EPIC-1", epic_name="Login"), EpicRequestDTO(epic_key="EPIC-2")]
        )

        result = await self.use_case.execute(request)

        assert result.success is True, result.error
        assert result.data.month == "2024-03"
        assert [epic.total_hours for epic in result.data.epics] == [3.5, 0.5]
        assert result.data.grand_total_hours == 4.0

    @pytest.mark.asyncio
    async def test_month_is_required(self):
        result = await self.use_case.execute(MonthlyInvoiceDataRequestDTO(epics=[]))

        assert result.error_code == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_duplicate_epic(self):
        request = MonthlyInvoiceDataRequestDTO(
            month="2024-03",
            epics=[EpicRequestDTO(epic_key="EPIC-1"), EpicRequestDTO(epic_key="EPIC-1")]
        )

        result = await self.use_case.execute(request)

        assert result.error_code == "DUPLICATE_EPIC"

    @pytest.mark.asyncio
    async def test_monthly_data_per_issue_without_epics(self):
        result = await self.use_case.execute(MonthlyInvoiceDataRequestDTO(month="2024-03", epics=[]))

        assert result.success is True, result.error
        assert [epic.epic_key for epic in result.data.epics] == ["EPIC-1", "EPIC-2"]
        assert [epic.project_id for epic in result.data.epics] == ["EPIC", "EPIC"]
        assert [epic.total_hours for epic in result.data.epics] == [3.5, 0.5]
        assert result.data.grand_total_hours == 4.0

    @pytest.mark.asyncio
    async def test_monthly_data_per_issue_empty_month(self):
        result = await self.use_case.execute(MonthlyInvoiceDataRequestDTO(month="2024-07", epics=[]))

        assert result.success is True, result.error
        assert result.data.epics == []
        assert result.data.grand_total_hours == 0.0
