"""
Unit tests for JiraClient with a mocked HTTP session.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import requests

from billsync.domain.models.base import TrackerError, WorklogParseError
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.value_objects import DateRange
from billsync.domain.services.reconciliation_service import ReconciliationCoordinator
from billsync.infrastructure.repositories.memory_store import InMemoryBackingStore
from billsync.infrastructure.tracker.jira_client import (
    JiraClient, adf_text, hours_to_seconds, seconds_to_hours
)


MARCH = DateRange(date(2024, 3, 1), date(2024, 3, 31))


def response(data=None, status_code=200, reason="OK"):
    """Build a mock requests response."""
    r = Mock()
    r.ok = status_code < 400
    r.status_code = status_code
    r.reason = reason
    r.content = b"{}" if data is not None else b""
    r.json.return_value = data
    return r


def worklog(worklog_id, started, seconds, text=None, author="Ana Dev"):
    raw = {
        "id": worklog_id,
        "started": started,
        "timeSpentSeconds": seconds,
        "author": {"displayName": author, "accountId": "acc-1"},
    }
    if text is not None:
        raw["comment"] = {
            "type": "doc",
            "version": 1,
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
        }
    return raw


class TestConversions:
    """Test cases for unit conversions."""

    def test_seconds_to_hours(self):
        assert seconds_to_hours(5400) == Decimal("1.5000")
        assert seconds_to_hours(1000) == Decimal("0.2778")

    def test_hours_to_seconds(self):
        assert hours_to_seconds(Decimal("2.5")) == 9000
        assert hours_to_seconds(Decimal("0.0001")) == 0

    def test_adf_text(self):
        doc = {
            "type": "doc",
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": "Fix "}, {"type": "text", "text": "login"}]},
                {"type": "paragraph", "content": [{"type": "text", "text": "Deploy"}]},
            ],
        }

        assert adf_text(doc) == "Fix login\nDeploy"
        assert adf_text("plain") == "plain"
        assert adf_text(None) == ""


class TestJiraClient:
    """Test cases for JiraClient."""

    def setup_method(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.client = JiraClient(
            "https://acme.atlassian.net/",
            "ana@acme.example.com",
            "token",
            timeout=5,
            session=self.session
        )

    def test_configures_session(self):
        assert self.client.base_url == "https://acme.atlassian.net"
        assert self.session.auth == ("ana@acme.example.com", "token")

    def test_build_jql_for_keys_includes_children(self):
        jql = self.client.build_jql(MARCH, ["PROJ-1", "PROJ-2"])

        assert jql.startswith('(issuekey in ("PROJ-1", "PROJ-2") OR parent in ("PROJ-1", "PROJ-2"))')
        assert 'worklogDate >= "2024-03-01"' in jql
        assert 'worklogDate <= "2024-03-31"' in jql

    def test_build_jql_without_keys(self):
        jql = self.client.build_jql(MARCH)

        assert jql.startswith("worklogAuthor = currentUser()")

    def test_fetch_worklogs(self):
        """Test issues are searched and their worklogs parsed."""
        self.session.request.side_effect = [
            response({"issues": [{"key": "PROJ-1", "fields": {"summary": "Login page"}}], "isLast": True}),
            response({
                "worklogs": [
                    worklog("10", "2024-03-05T10:00:00.000+0000", 5400, text="Fix login"),
                    worklog("11", "2024-03-06T10:00:00.000+0000", 3600),
                    worklog("12", "2024-04-02T10:00:00.000+0000", 3600),
                ],
                "total": 3,
            }),
        ]

        worklogs = self.client.fetch_worklogs(MARCH, ["PROJ-1"])

        assert len(worklogs) == 2
        first, second = worklogs
        assert first.worklog_id == "10"
        assert first.date == date(2024, 3, 5)
        assert first.hours == Decimal("1.5")
        assert first.description == "Fix login"
        assert first.author == "Ana Dev"
        assert first.issue_key == "PROJ-1"
        # Falls back to the issue summary without a comment
        assert second.description == "Login page"

        search_call, worklog_call = self.session.request.call_args_list
        assert search_call.args == ("GET", "https://acme.atlassian.net/rest/api/3/search/jql")
        assert worklog_call.args == ("GET", "https://acme.atlassian.net/rest/api/3/issue/PROJ-1/worklog")
        assert worklog_call.kwargs["timeout"] == 5

    def test_search_follows_pagination(self):
        self.session.request.side_effect = [
            response({"issues": [{"key": "PROJ-1"}], "isLast": False, "nextPageToken": "abc"}),
            response({"issues": [{"key": "PROJ-2"}], "isLast": True}),
        ]

        issues = self.client.search_issues("project = PROJ")

        assert [issue["key"] for issue in issues] == ["PROJ-1", "PROJ-2"]
        assert self.session.request.call_args_list[1].kwargs["params"]["nextPageToken"] == "abc"

    def test_parse_worklog_reports_bad_start(self):
        parsed = self.client.parse_worklog({"id": "1", "started": "yesterday"}, "PROJ-1")

        assert parsed.is_parsed is False
        assert parsed.worklog_id == "1"
        assert parsed.issue_key == "PROJ-1"
        with pytest.raises(WorklogParseError):
            parsed.validate(require_id=True)

    def test_parse_worklog_reports_bad_duration(self):
        raw = worklog("2", "2024-03-05T10:00:00.000+0000", "ninety")

        parsed = self.client.parse_worklog(raw, "PROJ-1")

        assert parsed.is_parsed is False
        assert "timeSpentSeconds" in parsed.parse_error

    def test_parse_worklog_without_author(self):
        raw = worklog("3", "2024-03-05T10:00:00.000+0000", 3600, text="Fix")
        raw["author"] = None

        parsed = self.client.parse_worklog(raw, "PROJ-1")

        assert parsed.is_parsed is True
        assert parsed.author == ""
        assert parsed.hours == Decimal("1")

    @pytest.mark.asyncio
    async def test_pull_reports_unparseable_worklogs(self):
        """Test a malformed worklog is a parse failure while the good one is committed."""
        bad_start = worklog("11", "garbage", 3600)
        no_author = worklog("12", "2024-03-06T10:00:00.000+0000", 1800, text="Review")
        no_author["author"] = None
        self.session.request.side_effect = [
            response({"issues": [{"key": "PROJ-1", "fields": {"summary": "Login"}}], "isLast": True}),
            response({
                "worklogs": [worklog("10", "2024-03-05T10:00:00.000+0000", 3600, text="Fix"), bad_start, no_author],
                "total": 3,
            }),
        ]
        store = InMemoryBackingStore()

        result = await ReconciliationCoordinator(store, self.client, "user-1").pull(MARCH)

        assert result.created == 2
        assert [(f.stage, f.code, f.worklog_id) for f in result.failures] == [("parse", "INVALID_INPUT", "11")]
        assert await store.find_by_worklog_id("11") is None
        assert (await store.find_by_worklog_id("12")).duration == Decimal("0.5")
    def test_create_worklog(self):
        self.session.request.return_value = response({"id": "20001"})
        entry = TimeEntry(
            user_id="user-1",
            description="Pairing",
            duration=Decimal("2.5"),
            date=date(2024, 3, 5),
            id="entry-1"
        )

        worklog_id = self.client.create_worklog(entry, "PROJ-7")

        assert worklog_id == "20001"
        call = self.session.request.call_args
        assert call.args == ("POST", "https://acme.atlassian.net/rest/api/3/issue/PROJ-7/worklog")
        payload = call.kwargs["json"]
        assert payload["timeSpentSeconds"] == 9000
        assert payload["started"] == "2024-03-05T09:00:00.000+0000"
        assert adf_text(payload["comment"]) == "Pairing"

    def test_remove_worklog(self):
        self.session.request.return_value = response(status_code=204, reason="No Content")

        self.client.remove_worklog("PROJ-7", "20001")

        call = self.session.request.call_args
        assert call.args == ("DELETE", "https://acme.atlassian.net/rest/api/3/issue/PROJ-7/worklog/20001")

    def test_create_worklog_without_id(self):
        self.session.request.return_value = response({})
        entry = TimeEntry(user_id="user-1", description="Pairing", duration=Decimal("1"), date=date(2024, 3, 5))

        with pytest.raises(TrackerError):
            self.client.create_worklog(entry, "PROJ-7")

    def test_auth_failure_is_not_retryable(self):
        self.session.request.return_value = response(status_code=401, reason="Unauthorized")

        with pytest.raises(TrackerError) as exc_info:
            self.client.search_issues("project = PROJ")

        assert exc_info.value.status_code == 401
        assert exc_info.value.retryable is False
        assert "Authentication failed" in exc_info.value.message

    def test_server_error_is_retryable(self):
        self.session.request.return_value = response(status_code=503, reason="Service Unavailable")

        with pytest.raises(TrackerError) as exc_info:
            self.client.search_issues("project = PROJ")

        assert exc_info.value.retryable is True

    def test_connection_error_is_retryable(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TrackerError) as exc_info:
            self.client.search_issues("project = PROJ")

        assert exc_info.value.status_code is None
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_pull_worklogs_runs_blocking_fetch(self):
        self.session.request.side_effect = [
            response({"issues": [{"key": "PROJ-1", "fields": {"summary": "Login"}}], "isLast": True}),
            response({"worklogs": [worklog("10", "2024-03-05T10:00:00.000+0000", 3600, text="Fix")], "total": 1}),
        ]

        worklogs = await self.client.pull_worklogs(MARCH, ["PROJ-1"])

        assert [w.worklog_id for w in worklogs] == ["10"]

    @pytest.mark.asyncio
    async def test_push_worklog(self):
        self.session.request.return_value = response({"id": "30"})
        entry = TimeEntry(user_id="user-1", description="Review", duration=Decimal("1"), date=date(2024, 3, 5))

        assert await self.client.push_worklog(entry, "PROJ-1") == "30"

    @pytest.mark.asyncio
    async def test_delete_worklog(self):
        self.session.request.return_value = response(status_code=204, reason="No Content")

        await self.client.delete_worklog("PROJ-1", "30")

        assert self.session.request.call_args.args[0] == "DELETE"
