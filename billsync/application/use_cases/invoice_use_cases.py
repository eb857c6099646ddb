"""
Invoice use cases for the application layer.
Implements invoice building, editing, status changes, PDF rendering and deletion.
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Optional

from billsync.application.use_cases.base_use_case import (
    AuthorizedUseCase, CommandUseCase, QueryUseCase
)
from billsync.application.dto.base_dto import IdRequestDTO
from billsync.application.dto.invoice_dto import (
    CreateInvoiceRequestDTO, UpdateInvoiceRequestDTO, UpdateInvoiceStatusRequestDTO,
    InvoiceResponseDTO, InvoiceDeletedResponseDTO, InvoicePDFResponseDTO
)
from billsync.domain.models.base import DomainException, EntityNotFoundError, ValidationError
from billsync.domain.models.invoice import Invoice, ClientContact
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter
from billsync.domain.services.billing_service import InvoiceBuilder
from billsync.domain.services.external_calls import call_with_timeout
from billsync.infrastructure.pagination import PaginationParams, paginate
from billsync.infrastructure.pdf.pdf_service import InvoicePDFService

logger = logging.getLogger(__name__)


class InvoiceAccessMixin:
    """Loads invoices owned by the current user."""

    store: BackingStore
    store_timeout: Optional[float]
    current_user_id: Optional[str]

    async def _get_owned_invoice(self, invoice_id: str) -> Invoice:
        invoice = await call_with_timeout(self.store.get_invoice(invoice_id), self.store_timeout, "get_invoice")
        if invoice is None or invoice.user_id != self.current_user_id:
            raise EntityNotFoundError("Invoice", invoice_id)
        return invoice


class CreateInvoiceUseCase(AuthorizedUseCase, CommandUseCase[CreateInvoiceRequestDTO, InvoiceResponseDTO]):
    """Use case for building an invoice from billable time entries."""

    def __init__(self, builder: InvoiceBuilder, default_tax_rate: Decimal = Decimal("0")):
        super().__init__()
        self.builder = builder
        self.store = builder.store
        self.store_timeout = builder.store_timeout
        self.default_tax_rate = default_tax_rate

    async def _execute_command_logic(self, request: CreateInvoiceRequestDTO) -> InvoiceResponseDTO:
        client = ClientContact(
            name=request.client_name,
            email=request.client_email,
            address=request.client_address
        )
        entries = await self._load_entries(request.time_entry_ids)
        tax_rate = request.tax_rate if request.tax_rate is not None else self.default_tax_rate

        invoice = await self.builder.build(
            entries,
            tax_rate=tax_rate,
            client=client,
            issue_date=request.issue_date,
            due_date=request.due_date,
            notes=request.notes
        )
        return InvoiceResponseDTO.from_entity(invoice)

    async def _load_entries(self, entry_ids: List[str]) -> List[TimeEntry]:
        entries = []
        for entry_id in entry_ids:
            entry = await call_with_timeout(self.store.get_entry(entry_id), self.store_timeout, "get_entry")
            if entry is None or entry.user_id != self.current_user_id:
                raise EntityNotFoundError("TimeEntry", entry_id)
            entries.append(entry)
        return entries


class GetInvoiceUseCase(InvoiceAccessMixin, AuthorizedUseCase, QueryUseCase[IdRequestDTO, InvoiceResponseDTO]):
    """Use case for getting one invoice."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_business_logic(self, request: IdRequestDTO) -> InvoiceResponseDTO:
        return InvoiceResponseDTO.from_entity(await self._get_owned_invoice(request.id))


class ListInvoicesUseCase(AuthorizedUseCase, QueryUseCase[Optional[PaginationParams], List[InvoiceResponseDTO]]):
    """Use case for listing the current user's invoices, newest first, optionally one page."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_business_logic(self, request: Optional[PaginationParams]) -> List[InvoiceResponseDTO]:
        invoices = await call_with_timeout(
            self.store.list_invoices(self.current_user_id),
            self.store_timeout,
            "list_invoices"
        )
        page, _ = paginate(invoices, request)
        return [InvoiceResponseDTO.from_entity(invoice) for invoice in page]


class UpdateInvoiceUseCase(InvoiceAccessMixin, AuthorizedUseCase, CommandUseCase[UpdateInvoiceRequestDTO, InvoiceResponseDTO]):
    """Use case for editing a draft invoice's client, dates, tax rate and notes."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_command_logic(self, request: UpdateInvoiceRequestDTO) -> InvoiceResponseDTO:
        if not request.id:
            raise ValidationError("Invoice ID is required", "id")

        invoice = await self._get_owned_invoice(request.id)
        version = invoice.version

        client = None
        if request.changes_client:
            client = ClientContact(
                name=request.client_name if request.client_name is not None else invoice.client.name,
                email=request.client_email if request.client_email is not None else invoice.client.email,
                address=request.client_address if request.client_address is not None else invoice.client.address
            )

        invoice.update_details(
            client=client,
            issue_date=request.issue_date,
            due_date=request.due_date,
            tax_rate=request.tax_rate,
            notes=request.notes
        )

        saved = await call_with_timeout(
            self.store.save_invoice(invoice, expected_version=version),
            self.store_timeout,
            "save_invoice"
        )
        return InvoiceResponseDTO.from_entity(saved)


class SendInvoiceUseCase(InvoiceAccessMixin, AuthorizedUseCase, CommandUseCase[IdRequestDTO, InvoiceResponseDTO]):
    """Use case for marking a draft invoice as sent."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_command_logic(self, request: IdRequestDTO) -> InvoiceResponseDTO:
        invoice = await self._get_owned_invoice(request.id)
        version = invoice.version
        invoice.send()

        saved = await call_with_timeout(
            self.store.save_invoice(invoice, expected_version=version),
            self.store_timeout,
            "save_invoice"
        )
        return InvoiceResponseDTO.from_entity(saved)


class UpdateInvoiceStatusUseCase(InvoiceAccessMixin, AuthorizedUseCase, CommandUseCase[UpdateInvoiceStatusRequestDTO, InvoiceResponseDTO]):
    """Use case for accepting an externally driven status (paid, overdue, cancelled)."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_command_logic(self, request: UpdateInvoiceStatusRequestDTO) -> InvoiceResponseDTO:
        if not request.id:
            raise ValidationError("Invoice ID is required", "id")

        invoice = await self._get_owned_invoice(request.id)
        version = invoice.version
        invoice.update_status(request.status)

        saved = await call_with_timeout(
            self.store.save_invoice(invoice, expected_version=version),
            self.store_timeout,
            "save_invoice"
        )
        return InvoiceResponseDTO.from_entity(saved)


class DeleteInvoiceUseCase(InvoiceAccessMixin, AuthorizedUseCase, CommandUseCase[IdRequestDTO, InvoiceDeletedResponseDTO]):
    """Use case for deleting an invoice; its entries are detached, never deleted."""

    def __init__(self, builder: InvoiceBuilder):
        super().__init__()
        self.builder = builder
        self.store = builder.store
        self.store_timeout = builder.store_timeout

    async def _execute_command_logic(self, request: IdRequestDTO) -> InvoiceDeletedResponseDTO:
        invoice = await self._get_owned_invoice(request.id)
        detached = await self.builder.delete(invoice.id)
        return InvoiceDeletedResponseDTO(
            id=invoice.id,
            detached_time_entry_ids=[entry.id for entry in detached]
        )


class GenerateInvoicePDFUseCase(InvoiceAccessMixin, AuthorizedUseCase, QueryUseCase[IdRequestDTO, InvoicePDFResponseDTO]):
    """Use case for rendering an invoice, with its time detail, to PDF."""

    def __init__(self, store: BackingStore, pdf_service: InvoicePDFService, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.pdf_service = pdf_service
        self.store_timeout = store_timeout

    async def _execute_business_logic(self, request: IdRequestDTO) -> InvoicePDFResponseDTO:
        invoice = await self._get_owned_invoice(request.id)
        entries = await call_with_timeout(
            self.store.list_entries(TimeEntryFilter(user_id=self.current_user_id, invoice_id=invoice.id)),
            self.store_timeout,
            "list_entries"
        )

        try:
            content = await asyncio.to_thread(self.pdf_service.generate_invoice_pdf, invoice, entries)
        except Exception as e:
            raise DomainException(
                f"Failed to generate PDF for invoice {invoice.invoice_number}: {e}",
                "PDF_GENERATION_FAILED"
            ) from e

        logger.info(f"Rendered invoice {invoice.invoice_number} to PDF ({len(content)} bytes)")
        return InvoicePDFResponseDTO(
            id=invoice.id,
            filename=self.pdf_service.filename_for(invoice),
            content=content
        )
