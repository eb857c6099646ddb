"""Jira REST API client implementing the issue tracker port."""

import asyncio
import logging
from datetime import datetime, date, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

import requests

from billsync.domain.models.base import TrackerError
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.value_objects import DateRange
from billsync.domain.models.worklog import WorklogEntry
from billsync.domain.repositories.issue_tracker import IssueTrackerClient

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = Decimal(3600)
HOURS_PRECISION = Decimal("0.0001")
JIRA_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
SEARCH_PAGE_SIZE = 100
WORKLOG_PAGE_SIZE = 1000

# Pushed worklogs start at 09:00 UTC on the entry's day
WORKLOG_START_TIME = time(9, 0)


def _handle_api_error(response: requests.Response, service: str = "Jira") -> str:
    """Convert HTTP errors to user-friendly messages."""
    status = response.status_code

    messages = {
        400: f"{service}: Bad request. Check issue keys and JQL.",
        401: f"{service}: Authentication failed. Check your API token!",
        403: f"{service}: Access denied. Check your permissions or API token!",
        404: f"{service}: Resource not found. Check the issue key and base URL!",
        429: f"{service}: Too many requests. Wait a moment and try again.",
        500: f"{service}: Server error. The service may be temporarily unavailable.",
        502: f"{service}: Bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: Service unavailable. Try again later.",
    }

    return messages.get(status, f"{service}: HTTP {status} - {response.reason}")


def seconds_to_hours(seconds: int) -> Decimal:
    """Tracker seconds to decimal hours, four places."""
    return (Decimal(seconds) / SECONDS_PER_HOUR).quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


def hours_to_seconds(hours: Decimal) -> int:
    """Decimal hours to whole tracker seconds."""
    return int((hours * SECONDS_PER_HOUR).to_integral_value(rounding=ROUND_HALF_UP))


def adf_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node to plain text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text":
        return node.get("text", "")
    parts = [adf_text(child) for child in node.get("content") or []]
    separator = "\n" if node.get("type") == "doc" else ""
    return separator.join(part for part in parts if part)


def to_adf(text: str) -> Dict[str, Any]:
    """Wrap plain text as a single-paragraph ADF document."""
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


def _jql_list(keys: Sequence[str]) -> str:
    return ", ".join(f'"{key}"' for key in keys)


class JiraClient(IssueTrackerClient):
    """
    Client for Jira Cloud REST API v3.

    Blocking ``requests`` calls run in a worker thread so the event loop
    stays free. Failures surface as TrackerError carrying the HTTP status.
    """

    def __init__(
        self,
        base_url: str,
        user_email: str,
        api_token: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (user_email, api_token)
        self.session.headers.update({"Accept": "application/json"})

    # IssueTrackerClient

    async def pull_worklogs(
        self,
        date_range: DateRange,
        issue_keys: Optional[Sequence[str]] = None
    ) -> List[WorklogEntry]:
        return await asyncio.to_thread(self.fetch_worklogs, date_range, issue_keys)

    async def push_worklog(self, entry: TimeEntry, issue_key: str) -> str:
        return await asyncio.to_thread(self.create_worklog, entry, issue_key)

    async def delete_worklog(self, issue_key: str, worklog_id: str) -> None:
        await asyncio.to_thread(self.remove_worklog, issue_key, worklog_id)

    # Blocking implementation

    def fetch_worklogs(self, date_range: DateRange, issue_keys: Optional[Sequence[str]] = None) -> List[WorklogEntry]:
        """Fetch worklogs started within the range, per issue found by JQL."""
        issues = self.search_issues(self.build_jql(date_range, issue_keys))

        worklogs: List[WorklogEntry] = []
        for issue in issues:
            summary = issue.get("fields", {}).get("summary") or ""
            for raw in self.fetch_issue_worklogs(issue["key"], date_range):
                worklog = self.parse_worklog(raw, issue["key"], summary)
                if not worklog.is_parsed or date_range.contains(worklog.date):
                    worklogs.append(worklog)

        logger.debug(f"Fetched {len(worklogs)} worklogs from {len(issues)} issues for {date_range}")
        return worklogs

    def build_jql(self, date_range: DateRange, issue_keys: Optional[Sequence[str]] = None) -> str:
        """JQL for issues with worklogs in the range; keys also match their child issues."""
        clauses = [
            f'worklogDate >= "{date_range.start.isoformat()}"',
            f'worklogDate <= "{date_range.end.isoformat()}"',
        ]
        if issue_keys:
            keys = _jql_list(issue_keys)
            clauses.insert(0, f"(issuekey in ({keys}) OR parent in ({keys}))")
        else:
            clauses.insert(0, "worklogAuthor = currentUser()")
        return " AND ".join(clauses) + " ORDER BY key ASC"

    def search_issues(self, jql: str) -> List[Dict[str, Any]]:
        """Run a JQL search, following pagination tokens."""
        issues: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"jql": jql, "fields": "summary", "maxResults": SEARCH_PAGE_SIZE}

        while True:
            data = self._request("GET", "/rest/api/3/search/jql", params=params)
            issues.extend(data.get("issues", []))

            token = data.get("nextPageToken")
            if data.get("isLast", True) or not token:
                return issues
            params = {**params, "nextPageToken": token}

    def fetch_issue_worklogs(self, issue_key: str, date_range: DateRange) -> List[Dict[str, Any]]:
        """Fetch an issue's worklogs started within the range."""
        started_after = datetime.combine(date_range.start, time.min, tzinfo=timezone.utc)
        started_before = datetime.combine(date_range.end, time.max, tzinfo=timezone.utc)
        worklogs: List[Dict[str, Any]] = []
        start_at = 0

        while True:
            data = self._request(
                "GET",
                f"/rest/api/3/issue/{issue_key}/worklog",
                params={
                    "startAt": start_at,
                    "maxResults": WORKLOG_PAGE_SIZE,
                    "startedAfter": int(started_after.timestamp() * 1000),
                    "startedBefore": int(started_before.timestamp() * 1000),
                },
            )
            page = data.get("worklogs", [])
            worklogs.extend(page)

            start_at += len(page)
            if not page or start_at >= data.get("total", 0):
                return worklogs

    def parse_worklog(self, raw: Dict[str, Any], issue_key: str, summary: str = "") -> WorklogEntry:
        """
        Convert a Jira worklog payload.

        Never raises: a payload that cannot be read comes back as an
        unparseable WorklogEntry so the caller can report it.
        """
        worklog_id = str(raw["id"]) if raw.get("id") is not None else None

        try:
            started = datetime.strptime(raw["started"], JIRA_DATETIME_FORMAT)
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Worklog {worklog_id} on {issue_key}: unparseable start {raw.get('started')!r}")
            return WorklogEntry.unparseable(issue_key, worklog_id, f"unparseable start {raw.get('started')!r}")

        try:
            seconds = int(raw.get("timeSpentSeconds") or 0)
        except (TypeError, ValueError):
            logger.warning(f"Worklog {worklog_id} on {issue_key}: invalid timeSpentSeconds {raw.get('timeSpentSeconds')!r}")
            return WorklogEntry.unparseable(
                issue_key, worklog_id, f"invalid timeSpentSeconds {raw.get('timeSpentSeconds')!r}"
            )

        author = raw.get("author") or {}
        if not isinstance(author, dict):
            author = {}

        return WorklogEntry(
            date=started.date(),
            author=author.get("displayName") or author.get("accountId") or "",
            hours=seconds_to_hours(seconds),
            description=adf_text(raw.get("comment")).strip() or summary or f"Work on {issue_key}",
            issue_key=issue_key,
            worklog_id=worklog_id
        )

    def create_worklog(self, entry: TimeEntry, issue_key: str) -> str:
        """Create a worklog for the entry. Returns the new worklog ID."""
        started = datetime.combine(entry.date, WORKLOG_START_TIME, tzinfo=timezone.utc)
        payload = {
            "timeSpentSeconds": hours_to_seconds(entry.duration),
            "started": started.strftime("%Y-%m-%dT%H:%M:%S.000%z"),
            "comment": to_adf(entry.description),
        }

        data = self._request("POST", f"/rest/api/3/issue/{issue_key}/worklog", json=payload)
        worklog_id = data.get("id")
        if not worklog_id:
            raise TrackerError(f"Jira: worklog created on {issue_key} but no ID was returned")

        logger.info(f"Created Jira worklog {worklog_id} on {issue_key} for entry {entry.id}")
        return str(worklog_id)

    def remove_worklog(self, issue_key: str, worklog_id: str) -> None:
        """Delete a worklog from the issue."""
        self._request("DELETE", f"/rest/api/3/issue/{issue_key}/worklog/{worklog_id}")
        logger.info(f"Deleted Jira worklog {worklog_id} on {issue_key}")

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            r = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except requests.exceptions.ConnectionError:
            raise TrackerError(f"Jira: Cannot connect to {self.base_url}. Check your network!")
        except requests.exceptions.Timeout:
            raise TrackerError("Jira: Connection timed out. The server may be slow.")

        if not r.ok:
            raise TrackerError(_handle_api_error(r), r.status_code)

        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError:
            raise TrackerError(f"Jira: Invalid JSON response from {path}", r.status_code)
