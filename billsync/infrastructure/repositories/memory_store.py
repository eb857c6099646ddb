"""
In-memory backing store.
Default store for development and tests; keeps deep copies of entities.
"""

import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Dict, List, Optional

from billsync.domain.models.base import ConcurrencyConflictError, EntityNotFoundError
from billsync.domain.models.invoice import Invoice
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter


class InMemoryBackingStore(BackingStore):
    """
    Dict-backed store with optimistic versions.

    Writes are serialized by a lock. A transaction holds the lock for its
    whole scope and restores the snapshot taken on entry if it fails.
    """

    def __init__(self):
        self._entries: Dict[str, TimeEntry] = {}
        self._invoices: Dict[str, Invoice] = {}
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(f"memory_store_tx_{id(self)}", default=False)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._in_transaction.get():
            yield
            return

        async with self._lock:
            snapshot = (dict(self._entries), dict(self._invoices))
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                self._entries, self._invoices = snapshot
                raise
            finally:
                self._in_transaction.reset(token)

    @asynccontextmanager
    async def _write_scope(self) -> AsyncIterator[None]:
        """Hold the write lock unless the current task already owns it through a transaction."""
        if self._in_transaction.get():
            yield
        else:
            async with self._lock:
                yield

    # Time entries

    async def get_entry(self, entry_id: str) -> Optional[TimeEntry]:
        entry = self._entries.get(entry_id)
        return copy.deepcopy(entry) if entry is not None else None

    async def save_entry(self, entry: TimeEntry, expected_version: Optional[int] = None) -> TimeEntry:
        async with self._write_scope():
            stored = self._prepare(self._entries, "TimeEntry", entry, expected_version)

            if stored.jira_worklog_id:
                for other in self._entries.values():
                    if other.id != stored.id and other.jira_worklog_id == stored.jira_worklog_id:
                        raise ConcurrencyConflictError("TimeEntry", stored.id, expected_version, other.version)

            self._entries[stored.id] = stored
            return copy.deepcopy(stored)

    async def delete_entry(self, entry_id: str) -> bool:
        async with self._write_scope():
            return self._entries.pop(entry_id, None) is not None

    async def list_entries(self, criteria: Optional[TimeEntryFilter] = None) -> List[TimeEntry]:
        criteria = criteria or TimeEntryFilter()
        matches = [entry for entry in self._entries.values() if criteria.matches(entry)]
        matches.sort(key=lambda entry: (entry.date, entry.created_at))
        return [copy.deepcopy(entry) for entry in matches]

    # Invoices

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        invoice = self._invoices.get(invoice_id)
        return copy.deepcopy(invoice) if invoice is not None else None

    async def save_invoice(self, invoice: Invoice, expected_version: Optional[int] = None) -> Invoice:
        async with self._write_scope():
            stored = self._prepare(self._invoices, "Invoice", invoice, expected_version)

            for other in self._invoices.values():
                if other.id != stored.id and other.invoice_number == stored.invoice_number:
                    raise ConcurrencyConflictError("Invoice", stored.id, expected_version, other.version)

            self._invoices[stored.id] = stored
            return copy.deepcopy(stored)

    async def list_invoices(self, user_id: Optional[str] = None) -> List[Invoice]:
        invoices = [
            invoice for invoice in self._invoices.values()
            if user_id is None or invoice.user_id == user_id
        ]
        invoices.sort(key=lambda invoice: invoice.created_at, reverse=True)
        return [copy.deepcopy(invoice) for invoice in invoices]

    async def delete_invoice(self, invoice_id: str) -> bool:
        async with self._write_scope():
            return self._invoices.pop(invoice_id, None) is not None

    def _prepare(self, table: Dict, entity_type: str, entity, expected_version: Optional[int]):
        """Copy an entity for storage, checking and bumping its version."""
        current = table.get(entity.id) if entity.id is not None else None

        if expected_version is None:
            if current is not None:
                raise ConcurrencyConflictError(entity_type, entity.id, None, current.version)
            stored = copy.deepcopy(entity)
            stored.id = entity.id or str(uuid.uuid4())
            stored.version = 1
        else:
            if current is None:
                raise EntityNotFoundError(entity_type, entity.id)
            if current.version != expected_version:
                raise ConcurrencyConflictError(entity_type, entity.id, expected_version, current.version)
            stored = copy.deepcopy(entity)
            stored.version = current.version + 1

        # Events belong to the caller's copy
        stored.pull_events()
        return stored
