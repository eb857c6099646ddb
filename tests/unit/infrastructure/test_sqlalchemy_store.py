"""
Unit tests for SQLAlchemyBackingStore on in-memory SQLite.
"""

import asyncio
import time

import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session, sessionmaker

from billsync.domain.models.base import ConcurrencyConflictError, EntityNotFoundError, OperationTimeoutError
from billsync.domain.models.invoice import Invoice, InvoiceLineItem, InvoiceStatus, ClientContact
from billsync.domain.models.time_entry import TimeEntry, SyncState
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter
from billsync.domain.services.billing_service import InvoiceBuilder
from billsync.domain.services.external_calls import call_with_timeout
from billsync.infrastructure.db.database import create_db_engine, create_session_factory, init_db
from billsync.infrastructure.repositories.invoice_number_sequence import SQLAlchemyInvoiceNumberSequence
from billsync.infrastructure.repositories.sqlalchemy_store import SQLAlchemyBackingStore


CLIENT = ClientContact("Acme Corp", "billing@acme.example.com", "1 Main St")


class SlowSession(Session):
    """Session whose primary-key lookups stall the calling thread."""

    def get(self, *args, **kwargs):
        time.sleep(0.3)
        return super().get(*args, **kwargs)


def new_entry(day: int = 5, **overrides) -> TimeEntry:
    fields = dict(user_id="user-1", description="Work", duration=Decimal("1.25"), date=date(2024, 3, day))
    fields.update(overrides)
    return TimeEntry(**fields)


class TestSQLAlchemyBackingStore:
    """Test cases for SQLAlchemyBackingStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)
        self.session_factory = create_session_factory(self.engine)
        self.store = SQLAlchemyBackingStore(self.session_factory)

    @pytest.mark.asyncio
    async def test_entry_round_trip(self):
        entry = new_entry(billable=True, hourly_rate=Decimal("80"))
        entry.record_sync("PROJ-1", "w1")

        saved = await self.store.save_entry(entry)
        loaded = await self.store.get_entry(saved.id)

        assert loaded.version == 1
        assert loaded.duration == Decimal("1.25")
        assert loaded.hourly_rate == Decimal("80")
        assert loaded.date == date(2024, 3, 5)
        assert loaded.jira_worklog_id == "w1"
        assert loaded.jira_synced_at.tzinfo is not None
        assert loaded.sync_state == SyncState.SYNCED

    @pytest.mark.asyncio
    async def test_get_missing_entry(self):
        assert await self.store.get_entry("missing") is None

    @pytest.mark.asyncio
    async def test_conditional_update(self):
        saved = await self.store.save_entry(new_entry())
        saved.update_info(description="Updated")

        updated = await self.store.save_entry(saved, expected_version=1)

        assert updated.version == 2
        assert updated.description == "Updated"

    @pytest.mark.asyncio
    async def test_stale_update_conflicts(self):
        saved = await self.store.save_entry(new_entry())
        await self.store.save_entry(saved, expected_version=1)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await self.store.save_entry(saved, expected_version=1)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2

    @pytest.mark.asyncio
    async def test_update_missing_entry(self):
        with pytest.raises(EntityNotFoundError):
            await self.store.save_entry(new_entry(id="missing"), expected_version=1)

    @pytest.mark.asyncio
    async def test_duplicate_worklog_id_conflicts(self):
        first = new_entry()
        first.record_sync("PROJ-1", "w1")
        second = new_entry(day=6)
        second.record_sync("PROJ-1", "w1")
        await self.store.save_entry(first)

        with pytest.raises(ConcurrencyConflictError):
            await self.store.save_entry(second)

        assert len(await self.store.list_entries()) == 1

    @pytest.mark.asyncio
    async def test_list_entries_filters(self):
        await self.store.save_entry(new_entry(day=9, billable=True))
        await self.store.save_entry(new_entry(day=2))
        await self.store.save_entry(new_entry(day=5, user_id="user-2"))

        mine = await self.store.list_entries(TimeEntryFilter(user_id="user-1"))
        assert [e.date.day for e in mine] == [2, 9]

        billable = await self.store.list_entries(TimeEntryFilter(user_id="user-1", billable=True))
        assert [e.date.day for e in billable] == [9]

    @pytest.mark.asyncio
    async def test_delete_entry(self):
        saved = await self.store.save_entry(new_entry())

        assert await self.store.delete_entry(saved.id) is True
        assert await self.store.get_entry(saved.id) is None

    @pytest.mark.asyncio
    async def test_invoice_round_trip(self):
        invoice = Invoice(
            user_id="user-1",
            invoice_number="INV-0001",
            client=CLIENT,
            issue_date=date(2024, 3, 31),
            tax_rate=Decimal("0.1"),
            line_items=[
                InvoiceLineItem("Fix (2024-03-05)", Decimal("1"), Decimal("100"), time_entry_id="e1"),
                InvoiceLineItem("Review (2024-03-06)", Decimal("1"), Decimal("75"), time_entry_id="e2"),
            ],
            notes="Thanks"
        )

        saved = await self.store.save_invoice(invoice)
        loaded = await self.store.get_invoice(saved.id)

        assert loaded.invoice_number == "INV-0001"
        assert loaded.client == CLIENT
        assert loaded.total == Decimal("192.50")
        assert loaded.time_entry_ids == ["e1", "e2"]
        assert loaded.notes == "Thanks"

    @pytest.mark.asyncio
    async def test_invoice_status_update(self):
        saved = await self.store.save_invoice(Invoice(
            user_id="user-1",
            invoice_number="INV-0001",
            client=CLIENT,
            line_items=[InvoiceLineItem("Work", Decimal("1"), Decimal("50"))]
        ))
        saved.send()

        updated = await self.store.save_invoice(saved, expected_version=1)

        assert updated.status == InvoiceStatus.SENT
        assert updated.sent_at is not None
        assert updated.version == 2
        assert len(updated.line_items) == 1

    @pytest.mark.asyncio
    async def test_builder_on_sql_store(self):
        """Test invoice creation and entry attachment commit together."""
        builder = InvoiceBuilder(self.store, SQLAlchemyInvoiceNumberSequence(self.session_factory))
        first = await self.store.save_entry(new_entry(billable=True, duration=Decimal("2")))
        second = await self.store.save_entry(new_entry(billable=True, duration=Decimal("1.5")))

        invoice = await builder.build([first, second], Decimal("0.1"), CLIENT)

        assert invoice.invoice_number == "INV-0001"
        assert invoice.total == Decimal("192.50")
        attached = await self.store.list_entries(TimeEntryFilter(invoice_id=invoice.id))
        assert {e.id for e in attached} == {first.id, second.id}

        detached = await builder.delete(invoice.id)
        assert len(detached) == 2
        assert await self.store.list_invoices() == []

    @pytest.mark.asyncio
    async def test_builder_rolls_back_on_conflict(self):
        builder = InvoiceBuilder(self.store, SQLAlchemyInvoiceNumberSequence(self.session_factory))
        fresh = await self.store.save_entry(new_entry(billable=True))
        stale = await self.store.save_entry(new_entry(billable=True, day=6))
        await self.store.save_entry(stale, expected_version=1)

        with pytest.raises(ConcurrencyConflictError):
            await builder.build([fresh, stale], Decimal("0"), CLIENT)

        assert await self.store.list_invoices() == []
        assert (await self.store.get_entry(fresh.id)).invoiced is False

    @pytest.mark.asyncio
    async def test_sequence_numbers(self):
        sequence = SQLAlchemyInvoiceNumberSequence(self.session_factory, prefix="ACME")

        assert await sequence.next_invoice_number() == "ACME-0001"
        assert await sequence.next_invoice_number() == "ACME-0002"

    @pytest.mark.asyncio
    async def test_transaction_commits_on_exit(self):
        async with self.store.transaction():
            saved = await self.store.save_entry(new_entry())
            await self.store.save_entry(saved, expected_version=1)

        assert (await self.store.get_entry(saved.id)).version == 2

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self):
        with pytest.raises(RuntimeError):
            async with self.store.transaction():
                await self.store.save_entry(new_entry(description="Discarded"))
                raise RuntimeError("boom")

        assert await self.store.list_entries() == []

    @pytest.mark.asyncio
    async def test_slow_query_times_out_without_blocking_loop(self):
        saved = await self.store.save_entry(new_entry())
        slow_store = SQLAlchemyBackingStore(sessionmaker(bind=self.engine, class_=SlowSession, expire_on_commit=False))
        ticks = []

        async def tick():
            while True:
                ticks.append(1)
                await asyncio.sleep(0.01)

        ticker = asyncio.ensure_future(tick())
        try:
            with pytest.raises(OperationTimeoutError):
                await call_with_timeout(slow_store.get_entry(saved.id), 0.05, "get_entry")
        finally:
            ticker.cancel()

        assert len(ticks) >= 2
        # let the abandoned lookup finish before the engine goes away
        await asyncio.sleep(0.3)
