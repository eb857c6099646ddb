"""
Invoice router.
Builds invoices from billable entries, edits drafts, renders PDFs and manages status.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from billsync.application.dto.base_dto import IdRequestDTO
from billsync.application.dto.invoice_dto import (
    CreateInvoiceRequestDTO,
    UpdateInvoiceRequestDTO,
    UpdateInvoiceStatusRequestDTO,
    InvoiceResponseDTO,
    InvoiceDeletedResponseDTO
)
from billsync.application.use_cases.invoice_use_cases import (
    CreateInvoiceUseCase,
    GetInvoiceUseCase,
    ListInvoicesUseCase,
    UpdateInvoiceUseCase,
    GenerateInvoicePDFUseCase,
    SendInvoiceUseCase,
    UpdateInvoiceStatusUseCase,
    DeleteInvoiceUseCase
)
from billsync.config import Settings
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.services.billing_service import InvoiceBuilder
from billsync.infrastructure.pagination import PaginationParams
from billsync.infrastructure.pdf.pdf_service import InvoicePDFService
from billsync.infrastructure.web.dependencies import (
    get_app_settings,
    get_current_user_id,
    get_invoice_builder,
    get_pdf_service,
    get_store
)
from billsync.infrastructure.web.middleware.error_handler import unwrap_result


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=InvoiceResponseDTO)
async def create_invoice(
    request: CreateInvoiceRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    builder: Annotated[InvoiceBuilder, Depends(get_invoice_builder)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """
    Build a draft invoice from billable time entries.

    Every entry must belong to the caller, be billable and not yet invoiced.
    The entries are attached to the new invoice in the same transaction.
    """
    use_case = CreateInvoiceUseCase(builder, settings.default_tax_rate).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request))


@router.get("", response_model=List[InvoiceResponseDTO])
async def list_invoices(
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    page: Optional[int] = Query(None, ge=1, description="Page number"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Items per page")
):
    """List the user's invoices, newest first. Pass **page** and/or **limit** for one page."""
    use_case = ListInvoicesUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(PaginationParams(page=page, limit=limit)))


@router.get("/{invoice_id}", response_model=InvoiceResponseDTO)
async def get_invoice(
    invoice_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """Get a specific invoice by ID."""
    use_case = GetInvoiceUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(IdRequestDTO(id=invoice_id)))


@router.put("/{invoice_id}", response_model=InvoiceResponseDTO)
async def update_invoice(
    invoice_id: str,
    request: UpdateInvoiceRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """
    Edit a draft invoice.

    Client details, dates, tax rate and notes can change; line items
    always come from the invoice's time entries.
    """
    use_case = UpdateInvoiceUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request.model_copy(update={"id": invoice_id})))


@router.get("/{invoice_id}/pdf", response_class=Response)
async def get_invoice_pdf(
    invoice_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    pdf_service: Annotated[InvoicePDFService, Depends(get_pdf_service)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """Download the invoice as a PDF."""
    use_case = GenerateInvoicePDFUseCase(store, pdf_service, settings.store_timeout_seconds).set_current_user(user_id)
    document = unwrap_result(await use_case.execute(IdRequestDTO(id=invoice_id)))
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'}
    )


@router.post("/{invoice_id}/send", response_model=InvoiceResponseDTO)
async def send_invoice(
    invoice_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """Mark a draft invoice as sent."""
    use_case = SendInvoiceUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(IdRequestDTO(id=invoice_id)))


@router.patch("/{invoice_id}/status", response_model=InvoiceResponseDTO)
async def update_invoice_status(
    invoice_id: str,
    request: UpdateInvoiceStatusRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """Set a status decided outside the app: paid, overdue or cancelled."""
    use_case = UpdateInvoiceStatusUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request.model_copy(update={"id": invoice_id})))


@router.delete("/{invoice_id}", response_model=InvoiceDeletedResponseDTO)
async def delete_invoice(
    invoice_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    builder: Annotated[InvoiceBuilder, Depends(get_invoice_builder)]
):
    """
    Delete a draft or cancelled invoice.

    Its time entries are detached and become billable again.
    """
    use_case = DeleteInvoiceUseCase(builder).set_current_user(user_id)
    return unwrap_result(await use_case.execute(IdRequestDTO(id=invoice_id)))
