"""
Unit tests for InMemoryBackingStore.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from billsync.domain.models.base import ConcurrencyConflictError, EntityNotFoundError
from billsync.domain.models.invoice import Invoice, InvoiceLineItem, ClientContact
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter
from billsync.infrastructure.repositories.memory_store import InMemoryBackingStore


def new_entry(day: int = 5, **overrides) -> TimeEntry:
    fields = dict(user_id="user-1", description="Work", duration=Decimal("1"), date=date(2024, 3, day))
    fields.update(overrides)
    return TimeEntry(**fields)


def new_invoice(number: str = "INV-0001", **overrides) -> Invoice:
    return Invoice(
        user_id="user-1",
        invoice_number=number,
        client=ClientContact("Acme Corp", "billing@acme.example.com"),
        issue_date=date(2024, 3, 31),
        line_items=[InvoiceLineItem("Work", Decimal("1"), Decimal("50"))],
        **overrides
    )


class TestInMemoryBackingStore:
    """Test cases for InMemoryBackingStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryBackingStore()

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_version(self):
        saved = await self.store.save_entry(new_entry())

        assert saved.id is not None
        assert saved.version == 1

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        """Test mutating a returned entry does not change the store."""
        saved = await self.store.save_entry(new_entry())

        saved.description = "Mutated"

        assert (await self.store.get_entry(saved.id)).description == "Work"

    @pytest.mark.asyncio
    async def test_conditional_save(self):
        """Test saves succeed at the current version and bump it."""
        saved = await self.store.save_entry(new_entry())
        saved.update_info(duration="2")

        updated = await self.store.save_entry(saved, expected_version=1)

        assert updated.version == 2
        assert updated.duration == Decimal("2")

    @pytest.mark.asyncio
    async def test_stale_save_conflicts(self):
        """Test a save at an old version is rejected."""
        saved = await self.store.save_entry(new_entry())
        await self.store.save_entry(saved, expected_version=1)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await self.store.save_entry(saved, expected_version=1)

        assert exc_info.value.actual_version == 2
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_conditional_save_of_missing_entry(self):
        entry = new_entry(id="missing")

        with pytest.raises(EntityNotFoundError):
            await self.store.save_entry(entry, expected_version=1)

    @pytest.mark.asyncio
    async def test_duplicate_worklog_id_conflicts(self):
        first = new_entry()
        first.record_sync("PROJ-1", "w1")
        second = new_entry()
        second.record_sync("PROJ-1", "w1")
        await self.store.save_entry(first)

        with pytest.raises(ConcurrencyConflictError):
            await self.store.save_entry(second)

    @pytest.mark.asyncio
    async def test_list_filters_and_order(self):
        await self.store.save_entry(new_entry(day=9, billable=True))
        await self.store.save_entry(new_entry(day=2))
        await self.store.save_entry(new_entry(day=5, user_id="user-2"))

        entries = await self.store.list_entries(TimeEntryFilter(user_id="user-1"))
        assert [e.date.day for e in entries] == [2, 9]

        billable = await self.store.list_entries(TimeEntryFilter(billable=True))
        assert [e.date.day for e in billable] == [9]

        ranged = await self.store.list_entries(TimeEntryFilter(start_date=date(2024, 3, 3), end_date=date(2024, 3, 8)))
        assert [e.user_id for e in ranged] == ["user-2"]

    @pytest.mark.asyncio
    async def test_find_by_worklog_id(self):
        entry = new_entry()
        entry.record_sync("PROJ-1", "w1")
        saved = await self.store.save_entry(entry)

        assert (await self.store.find_by_worklog_id("w1")).id == saved.id
        assert await self.store.find_by_worklog_id("w2") is None

    @pytest.mark.asyncio
    async def test_delete_entry(self):
        saved = await self.store.save_entry(new_entry())

        assert await self.store.delete_entry(saved.id) is True
        assert await self.store.delete_entry(saved.id) is False

    @pytest.mark.asyncio
    async def test_invoice_number_unique(self):
        await self.store.save_invoice(new_invoice("INV-0001"))

        with pytest.raises(ConcurrencyConflictError):
            await self.store.save_invoice(new_invoice("INV-0001"))

    @pytest.mark.asyncio
    async def test_list_invoices_newest_first(self):
        first = await self.store.save_invoice(
            new_invoice("INV-0001", created_at=datetime(2024, 3, 1, tzinfo=timezone.utc))
        )
        second = await self.store.save_invoice(
            new_invoice("INV-0002", created_at=datetime(2024, 4, 1, tzinfo=timezone.utc))
        )

        invoices = await self.store.list_invoices("user-1")

        assert [i.id for i in invoices] == [second.id, first.id]
        assert await self.store.list_invoices("user-2") == []

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self):
        """Test a failing transaction leaves no writes behind."""
        kept = await self.store.save_entry(new_entry())

        with pytest.raises(RuntimeError):
            async with self.store.transaction():
                await self.store.save_invoice(new_invoice())
                kept.update_info(description="Changed")
                await self.store.save_entry(kept, expected_version=1)
                raise RuntimeError("boom")

        assert await self.store.list_invoices() == []
        stored = await self.store.get_entry(kept.id)
        assert stored.description == "Work"
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_transaction_commits(self):
        async with self.store.transaction():
            invoice = await self.store.save_invoice(new_invoice())
            # Nested scopes join the outer transaction
            async with self.store.transaction():
                await self.store.save_entry(new_entry())

        assert (await self.store.get_invoice(invoice.id)).invoice_number == "INV-0001"
        assert len(await self.store.list_entries()) == 1
