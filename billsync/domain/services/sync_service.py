"""Sync state machine for time entries.
Drives entries through Local -> Billable -> Synced -> Invoiced with
compare-and-swap writes against the backing store.
"""

import logging
from typing import Optional

from billsync.domain.models.base import (
    ValidationError,
    ImmutableEntryError,
    EntityNotFoundError,
    ConcurrencyConflictError,
    DomainException
)
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.issue_tracker import IssueTrackerClient
from billsync.domain.services.external_calls import call_with_timeout

logger = logging.getLogger(__name__)


class SyncStateMachine:
    """
    Domain service applying sync and invoicing transitions to stored entries.

    Every write is conditional on the version read at the start of the
    transition, so two concurrent transitions on one entry cannot both win.
    Nothing here retries: collaborator errors propagate unchanged.
    """

    def __init__(
        self,
        store: BackingStore,
        tracker: Optional[IssueTrackerClient] = None,
        store_timeout: Optional[float] = None,
        tracker_timeout: Optional[float] = None
    ):
        self.store = store
        self.tracker = tracker
        self.store_timeout = store_timeout
        self.tracker_timeout = tracker_timeout

    async def load_entry(self, entry_id: str) -> TimeEntry:
        """Read an entry or raise EntityNotFoundError."""
        entry = await call_with_timeout(self.store.get_entry(entry_id), self.store_timeout, "get_entry")
        if entry is None:
            raise EntityNotFoundError("TimeEntry", entry_id)
        return entry

    async def commit(self, entry: TimeEntry, expected_version: int) -> TimeEntry:
        """Conditionally write an entry and log the events it raised."""
        events = entry.pull_events()
        saved = await call_with_timeout(
            self.store.save_entry(entry, expected_version=expected_version),
            self.store_timeout,
            "save_entry"
        )
        for event in events:
            logger.debug(f"Domain event {event.event_name}: {event.to_dict()['data']}")
        return saved

    async def mark_billable(self, entry_id: str) -> TimeEntry:
        """Flag an entry as billable. Idempotent: no write when already billable."""
        entry = await self.load_entry(entry_id)
        version = entry.version

        if not entry.mark_billable():
            return entry

        saved = await self.commit(entry, version)
        logger.info(f"Time entry {entry_id} marked billable ({saved.sync_state.value})")
        return saved

    async def sync_to_tracker(self, entry_id: str, issue_key: str) -> TimeEntry:
        """
        Push an entry to the tracker as a worklog on ``issue_key``.

        Re-syncing to the same issue returns the existing reference without
        a push. Syncing to a different issue pushes again and overwrites the
        reference. The reference is recorded only after the push succeeded.
        If the entry changed while the push was in flight, the pushed worklog
        is deleted again before the conflict propagates.
        """
        if not issue_key or not issue_key.strip():
            raise ValidationError("Issue key is required", "issue_key")
        issue_key = issue_key.strip()

        entry = await self.load_entry(entry_id)
        version = entry.version

        if entry.invoiced:
            raise ImmutableEntryError(entry.id, "sync")

        if entry.is_synced_to(issue_key):
            logger.debug(f"Time entry {entry_id} already synced to {issue_key}")
            return entry

        if self.tracker is None:
            raise ValidationError("No issue tracker is configured", "issue_key")

        worklog_id = await call_with_timeout(
            self.tracker.push_worklog(entry, issue_key),
            self.tracker_timeout,
            "push_worklog"
        )

        entry.record_sync(issue_key, worklog_id)
        try:
            saved = await self.commit(entry, version)
        except (ConcurrencyConflictError, EntityNotFoundError):
            await self._undo_push(entry_id, issue_key, worklog_id)
            raise
        logger.info(f"Time entry {entry_id} synced to {issue_key} as worklog {saved.jira_worklog_id}")
        return saved

    async def _undo_push(self, entry_id: str, issue_key: str, worklog_id: str) -> None:
        """Delete a worklog whose local record was never saved."""
        try:
            await call_with_timeout(
                self.tracker.delete_worklog(issue_key, worklog_id),
                self.tracker_timeout,
                "delete_worklog"
            )
        except DomainException as exc:
            logger.error(
                f"Worklog {worklog_id} on {issue_key} is orphaned: time entry {entry_id} "
                f"was not saved and the worklog could not be deleted ({exc.code}: {exc.message})"
            )
            return
        logger.warning(f"Deleted worklog {worklog_id} on {issue_key}: time entry {entry_id} changed during the push")

    async def attach_to_invoice(self, entry_id: str, invoice_id: str) -> TimeEntry:
        """Mark an entry as invoiced on ``invoice_id``."""
        entry = await self.load_entry(entry_id)
        return await self.attach_entry(entry, invoice_id)

    async def attach_entry(self, entry: TimeEntry, invoice_id: str) -> TimeEntry:
        """Attach an already loaded entry, conditional on the version it was read at."""
        version = entry.version
        entry.attach_to_invoice(invoice_id)
        saved = await self.commit(entry, version)
        logger.info(f"Time entry {entry.id} attached to invoice {invoice_id}")
        return saved

    async def detach_from_invoice(self, entry_id: str) -> TimeEntry:
        """Release an entry from its invoice."""
        entry = await self.load_entry(entry_id)
        return await self.detach_entry(entry)

    async def detach_entry(self, entry: TimeEntry) -> TimeEntry:
        """Detach an already loaded entry, conditional on the version it was read at."""
        version = entry.version
        previous_invoice = entry.invoice_id
        entry.detach_from_invoice()
        saved = await self.commit(entry, version)
        logger.info(f"Time entry {entry.id} detached from invoice {previous_invoice}")
        return saved
