"""
Unit tests for invoice use cases.
"""

import pytest
from datetime import date
from decimal import Decimal

from billsync.application.dto.base_dto import IdRequestDTO
from billsync.application.dto.invoice_dto import (
    CreateInvoiceRequestDTO,
    UpdateInvoiceRequestDTO,
    UpdateInvoiceStatusRequestDTO
)
from billsync.application.use_cases.invoice_use_cases import (
    CreateInvoiceUseCase,
    GetInvoiceUseCase,
    ListInvoicesUseCase,
    SendInvoiceUseCase,
    UpdateInvoiceStatusUseCase,
    DeleteInvoiceUseCase,
    UpdateInvoiceUseCase,
    GenerateInvoicePDFUseCase
)
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.services.billing_service import InvoiceBuilder
from billsync.domain.services.numbering_service import InMemoryInvoiceNumberSequence
from billsync.infrastructure.pagination import PaginationParams
from billsync.infrastructure.repositories.memory_store import InMemoryBackingStore


class StubPDFService:
    """Returns fixed bytes, or fails when asked to."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def generate_invoice_pdf(self, invoice, time_entries=()):
        if self.error:
            raise self.error
        self.calls.append((invoice.invoice_number, len(time_entries)))
        return b"%PDF-1.7"

    @staticmethod
    def filename_for(invoice):
        return f"invoice-{invoice.invoice_number}.pdf"


class TestInvoiceUseCases:
    """Test cases for invoice use cases."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryBackingStore()
        self.builder = InvoiceBuilder(self.store, InMemoryInvoiceNumberSequence())

    async def billable_entry(self, hours="1", user_id="user-1", rate=None):
        return await self.store.save_entry(TimeEntry(
            user_id=user_id,
            description="Work",
            duration=Decimal(hours),
            date=date(2024, 3, 5),
            billable=True,
            hourly_rate=Decimal(rate) if rate else None
        ))

    async def create_invoice(self, entry_ids, user_id="user-1", **overrides):
        fields = {
            "time_entry_ids": entry_ids,
            "client_name": "Acme Corp",
            "client_email": "billing@acme.example.com",
        }
        fields.update(overrides)
        use_case = CreateInvoiceUseCase(self.builder, default_tax_rate=Decimal("0.1")).set_current_user(user_id)
        return await use_case.execute(CreateInvoiceRequestDTO(**fields))

    @pytest.mark.asyncio
    async def test_create_invoice(self):
        first = await self.billable_entry("2", rate="50")
        second = await self.billable_entry("1.5", rate="50")

        result = await self.create_invoice([first.id, second.id])

        assert result.success is True, result.error
        assert result.data.subtotal == 175.0
        assert result.data.tax_rate == 0.1
        assert result.data.total == 192.5
        assert result.data.client_name == "Acme Corp"

    @pytest.mark.asyncio
    async def test_create_uses_explicit_tax_rate(self):
        entry = await self.billable_entry("1", rate="100")

        result = await self.create_invoice([entry.id], tax_rate="0")

        assert result.data.total == 100.0

    @pytest.mark.asyncio
    async def test_create_with_other_users_entry(self):
        entry = await self.billable_entry(user_id="user-2")

        result = await self.create_invoice([entry.id])

        assert result.error_code == "NOT_FOUND"
        assert (await self.store.get_entry(entry.id)).invoiced is False

    @pytest.mark.asyncio
    async def test_create_with_bad_client_email(self):
        entry = await self.billable_entry()

        result = await self.create_invoice([entry.id], client_email="not-an-email")

        assert result.error_code == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_get_and_list(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data

        fetched = await GetInvoiceUseCase(self.store).set_current_user("user-1").execute(IdRequestDTO(id=created.id))
        hidden = await GetInvoiceUseCase(self.store).set_current_user("user-2").execute(IdRequestDTO(id=created.id))
        listed = await ListInvoicesUseCase(self.store).set_current_user("user-1").execute(None)

        assert fetched.data.invoice_number == created.invoice_number
        assert hidden.error_code == "NOT_FOUND"
        assert [invoice.id for invoice in listed.data] == [created.id]

    @pytest.mark.asyncio
    async def test_send_and_pay(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data

        sent = await SendInvoiceUseCase(self.store).set_current_user("user-1").execute(IdRequestDTO(id=created.id))
        paid = await UpdateInvoiceStatusUseCase(self.store).set_current_user("user-1").execute(
            UpdateInvoiceStatusRequestDTO(id=created.id, status="paid")
        )

        assert sent.data.status == "sent"
        assert paid.data.status == "paid"
        assert paid.data.version == 3

    @pytest.mark.asyncio
    async def test_status_requires_id(self):
        result = await UpdateInvoiceStatusUseCase(self.store).set_current_user("user-1").execute(
            UpdateInvoiceStatusRequestDTO(status="paid")
        )

        assert result.error_code == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_delete_invoice(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data

        result = await DeleteInvoiceUseCase(self.builder).set_current_user("user-1").execute(IdRequestDTO(id=created.id))

        assert result.data.id == created.id
        assert result.data.detached_time_entry_ids == [entry.id]
        assert await self.store.get_invoice(created.id) is None

    @pytest.mark.asyncio
    async def test_delete_other_users_invoice(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data

        result = await DeleteInvoiceUseCase(self.builder).set_current_user("user-2").execute(IdRequestDTO(id=created.id))

        assert result.error_code == "NOT_FOUND"
        assert await self.store.get_invoice(created.id) is not None

    @pytest.mark.asyncio
    async def test_list_one_page(self):
        for _ in range(3):
            entry = await self.billable_entry()
            await self.create_invoice([entry.id])

        use_case = ListInvoicesUseCase(self.store).set_current_user("user-1")
        first = await use_case.execute(PaginationParams(page=1, limit=2))
        last = await use_case.execute(PaginationParams(page=2, limit=2))

        assert len(first.data) == 2
        assert len(last.data) == 1
        assert {i.id for i in first.data}.isdisjoint(i.id for i in last.data)

    @pytest.mark.asyncio
    async def test_update_draft_invoice(self):
        entry = await self.billable_entry("2", rate="50")
        created = (await self.create_invoice([entry.id])).data

        result = await UpdateInvoiceUseCase(self.store).set_current_user("user-1").execute(
            UpdateInvoiceRequestDTO(
                id=created.id,
                client_email="ap@acme.example.com",
                tax_rate="0",
                issue_date="2024-05-01",
                due_date="2024-05-15"
            )
        )

        assert result.success is True, result.error
        assert result.data.client_name == "Acme Corp"
        assert result.data.client_email == "ap@acme.example.com"
        assert result.data.total == 100.0
        assert result.data.due_date == date(2024, 5, 15)
        assert result.data.version == created.version + 1

    @pytest.mark.asyncio
    async def test_update_sent_invoice_is_rejected(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data
        await SendInvoiceUseCase(self.store).set_current_user("user-1").execute(IdRequestDTO(id=created.id))

        result = await UpdateInvoiceUseCase(self.store).set_current_user("user-1").execute(
            UpdateInvoiceRequestDTO(id=created.id, notes="Late edit")
        )

        assert result.error_code == "INVALID_TRANSITION"
        assert (await self.store.get_invoice(created.id)).notes != "Late edit"

    @pytest.mark.asyncio
    async def test_update_other_users_invoice(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data

        result = await UpdateInvoiceUseCase(self.store).set_current_user("user-2").execute(
            UpdateInvoiceRequestDTO(id=created.id, notes="Mine now")
        )

        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_generate_pdf(self):
        first = await self.billable_entry("2", rate="50")
        second = await self.billable_entry("1", rate="50")
        created = (await self.create_invoice([first.id, second.id])).data
        pdf_service = StubPDFService()

        result = await GenerateInvoicePDFUseCase(self.store, pdf_service).set_current_user("user-1").execute(
            IdRequestDTO(id=created.id)
        )

        assert result.success is True, result.error
        assert result.data.content == b"%PDF-1.7"
        assert result.data.filename == f"invoice-{created.invoice_number}.pdf"
        assert result.data.media_type == "application/pdf"
        assert pdf_service.calls == [(created.invoice_number, 2)]

    @pytest.mark.asyncio
    async def test_generate_pdf_failure(self):
        entry = await self.billable_entry()
        created = (await self.create_invoice([entry.id])).data

        result = await GenerateInvoicePDFUseCase(self.store, StubPDFService(OSError("no fonts"))).set_current_user(
            "user-1"
        ).execute(IdRequestDTO(id=created.id))

        assert result.success is False
        assert result.error_code == "PDF_GENERATION_FAILED"
        assert "no fonts" in result.error
