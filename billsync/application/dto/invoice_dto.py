"""
Invoice DTOs for the application layer.
Data Transfer Objects for invoice operations.
"""

from typing import Optional, List
import datetime as dt
from decimal import Decimal
from pydantic import Field, field_validator, model_validator

from billsync.domain.models.invoice import Invoice, InvoiceLineItem, InvoiceStatus

from .base_dto import RequestDTO, ResponseDTO, calendar_date


# Request DTOs
class CreateInvoiceRequestDTO(RequestDTO):
    """DTO for building an invoice from time entries."""

    time_entry_ids: List[str] = Field(description="Time entries to bill, in line order")
    client_name: str = Field(min_length=1, max_length=255, description="Client name")
    client_email: str = Field(max_length=255, description="Client email")
    client_address: Optional[str] = Field(default=None, max_length=1000, description="Client address")
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=1, description="Tax rate as a fraction, e.g. 0.1")
    issue_date: Optional[dt.date] = Field(default=None, description="Issue date (defaults to today)")
    due_date: Optional[dt.date] = Field(default=None, description="Due date (defaults to payment terms)")
    notes: Optional[str] = Field(default=None, max_length=2000, description="Invoice notes")

    @field_validator("issue_date", "due_date", mode="before")
    @classmethod
    def validate_dates(cls, v):
        return calendar_date(v)

    @model_validator(mode="after")
    def validate_due_date(self):
        """Validate due date is not before issue date."""
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        return self


class UpdateInvoiceRequestDTO(RequestDTO):
    """DTO for editing a draft invoice. Only provided fields are changed."""

    id: Optional[str] = Field(default=None, description="Invoice ID, set from the path")
    client_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_email: Optional[str] = Field(default=None, max_length=255)
    client_address: Optional[str] = Field(default=None, max_length=1000)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    issue_date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("issue_date", "due_date", mode="before")
    @classmethod
    def validate_dates(cls, v):
        return calendar_date(v)

    @property
    def changes_client(self) -> bool:
        return any(v is not None for v in (self.client_name, self.client_email, self.client_address))


class UpdateInvoiceStatusRequestDTO(RequestDTO):
    """DTO for externally driven status changes."""

    id: Optional[str] = Field(default=None, description="Invoice ID, set from the path")
    status: InvoiceStatus = Field(description="New status: paid, overdue or cancelled")


# Response DTOs
class InvoiceLineItemResponseDTO(ResponseDTO):
    """DTO for invoice line items."""

    description: str
    quantity: float
    rate: float
    amount: float
    time_entry_id: Optional[str] = None

    @classmethod
    def from_line_item(cls, item: InvoiceLineItem) -> "InvoiceLineItemResponseDTO":
        return cls(
            description=item.description,
            quantity=float(item.quantity),
            rate=float(item.rate),
            amount=float(item.amount),
            time_entry_id=item.time_entry_id
        )


class InvoiceResponseDTO(ResponseDTO):
    """DTO for invoice responses."""

    user_id: str
    invoice_number: str
    client_name: str
    client_email: str
    client_address: Optional[str] = None
    issue_date: dt.date
    due_date: dt.date
    status: str
    line_items: List[InvoiceLineItemResponseDTO]
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    notes: Optional[str] = None
    time_entry_ids: List[str]
    sent_at: Optional[dt.datetime] = None

    @classmethod
    def from_entity(cls, invoice: Invoice) -> "InvoiceResponseDTO":
        return cls(
            id=invoice.id,
            user_id=invoice.user_id,
            invoice_number=invoice.invoice_number,
            client_name=invoice.client.name,
            client_email=invoice.client.email,
            client_address=invoice.client.address,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            status=invoice.status.value,
            line_items=[InvoiceLineItemResponseDTO.from_line_item(item) for item in invoice.line_items],
            subtotal=float(invoice.subtotal),
            tax_rate=float(invoice.tax_rate),
            tax_amount=float(invoice.tax_amount),
            total=float(invoice.total),
            notes=invoice.notes,
            time_entry_ids=invoice.time_entry_ids,
            sent_at=invoice.sent_at,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
            version=invoice.version
        )


class InvoiceDeletedResponseDTO(ResponseDTO):
    """DTO returned after deleting an invoice."""

    detached_time_entry_ids: List[str]


class InvoicePDFResponseDTO(ResponseDTO):
    """A rendered invoice document."""

    filename: str
    content: bytes
    media_type: str = "application/pdf"
