"""
Invoice domain model.
Represents invoices generated from billable time entries.
"""

from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any
from enum import Enum

from billsync.domain.models.base import (
    BaseEntity,
    DomainEvent,
    ValidationError,
    BusinessRuleViolation,
    InvalidStateTransition,
    utcnow
)
from billsync.domain.models.value_objects import Email, round_money, to_decimal


class InvoiceStatus(str, Enum):
    """Invoice status."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Statuses that are driven from outside this system
EXTERNAL_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED)


# Domain Events

class InvoiceCreatedEvent(DomainEvent):
    """Event raised when an invoice is created."""

    def __init__(self, invoice_id: Optional[str], invoice_number: str, total_amount: Decimal):
        super().__init__()
        self.invoice_id = invoice_id
        self.invoice_number = invoice_number
        self.total_amount = total_amount

    @property
    def event_name(self) -> str:
        return "invoice.created"


class InvoiceSentEvent(DomainEvent):
    """Event raised when an invoice is sent to client."""

    def __init__(self, invoice_id: Optional[str], sent_to_email: str):
        super().__init__()
        self.invoice_id = invoice_id
        self.sent_to_email = sent_to_email

    @property
    def event_name(self) -> str:
        return "invoice.sent"


@dataclass(frozen=True)
class ClientContact:
    """Who the invoice is addressed to."""

    name: str
    email: str
    address: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Client name is required", "client_name")
        # Raises ValidationError on malformed addresses
        Email(self.email)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_name": self.name,
            "client_email": self.email,
            "client_address": self.address
        }


@dataclass
class InvoiceLineItem:
    """Individual line item in an invoice."""

    description: str
    quantity: Decimal
    rate: Decimal
    amount: Optional[Decimal] = None

    # Time tracking reference
    time_entry_id: Optional[str] = None

    def __post_init__(self):
        """Normalize numbers and auto-calculate amount if not provided."""
        self.quantity = to_decimal(self.quantity, "quantity")
        self.rate = round_money(self.rate)
        if self.amount is None:
            self.amount = round_money(self.quantity * self.rate)
        else:
            self.amount = round_money(self.amount)

    def validate(self) -> None:
        """Validate line item."""
        if not self.description:
            raise ValidationError("Description is required", "description")

        if self.quantity < 0:
            raise ValidationError("Quantity cannot be negative", "quantity")

        if self.rate < 0:
            raise ValidationError("Rate cannot be negative", "rate")

        if self.amount != round_money(self.quantity * self.rate):
            raise ValidationError("Amount must equal quantity * rate", "amount")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "description": self.description,
            "quantity": float(self.quantity),
            "rate": float(self.rate),
            "amount": float(self.amount),
            "time_entry_id": self.time_entry_id
        }


class Invoice(BaseEntity):
    """
    Invoice aggregate.
    Totals are always recomputed from the line items, never set directly.
    """

    def __init__(
        self,
        user_id: str,
        invoice_number: str,
        client: ClientContact,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        tax_rate: Decimal = Decimal("0"),
        status: InvoiceStatus = InvoiceStatus.DRAFT,
        line_items: Optional[List[InvoiceLineItem]] = None,
        notes: Optional[str] = None,
        sent_at: Optional[datetime] = None,
        **kwargs
    ):
        super().__init__(**kwargs)

        self.user_id = user_id
        self.invoice_number = invoice_number
        self.client = client

        # Dates
        self.issue_date = issue_date or date.today()
        self.due_date = due_date or (self.issue_date + timedelta(days=30))
        self.sent_at = sent_at

        self.status = InvoiceStatus(status)
        self.notes = notes

        # Financial information
        self.tax_rate = to_decimal(tax_rate, "tax_rate")
        self.line_items: List[InvoiceLineItem] = list(line_items or [])

        # Calculated amounts
        self.subtotal = Decimal("0.00")
        self.tax_amount = Decimal("0.00")
        self.total = Decimal("0.00")

        self.recalculate_totals()
        self.validate()

    def validate(self) -> None:
        """Validate invoice state."""
        if not self.user_id:
            raise ValidationError("User ID is required", "user_id")

        if not self.invoice_number:
            raise ValidationError("Invoice number is required", "invoice_number")

        if self.tax_rate < 0 or self.tax_rate > 1:
            raise ValidationError("Tax rate must be between 0 and 1", "tax_rate")

        if self.due_date < self.issue_date:
            raise ValidationError("Due date cannot be before issue date", "due_date")

        for item in self.line_items:
            item.validate()

        # Totals invariants
        if self.subtotal != round_money(sum((item.amount for item in self.line_items), Decimal("0"))):
            raise ValidationError("Subtotal must equal the sum of line item amounts", "subtotal")

        if self.tax_amount != round_money(self.subtotal * self.tax_rate):
            raise ValidationError("Tax amount must equal subtotal * tax rate", "tax_amount")

        if self.total != self.subtotal + self.tax_amount:
            raise ValidationError("Total must equal subtotal + tax amount", "total")

        if self.status == InvoiceStatus.SENT and not self.sent_at:
            raise ValidationError("Sent timestamp is required for sent invoices", "sent_at")

    @property
    def time_entry_ids(self) -> List[str]:
        """IDs of the time entries billed on this invoice, in line order."""
        return [item.time_entry_id for item in self.line_items if item.time_entry_id]

    def can_be_edited(self) -> bool:
        """Check if invoice can be edited."""
        return self.status == InvoiceStatus.DRAFT

    def add_line_item(
        self,
        description: str,
        quantity: Decimal,
        rate: Decimal,
        time_entry_id: Optional[str] = None
    ) -> InvoiceLineItem:
        """Add a line item to the invoice."""
        if not self.can_be_edited():
            raise BusinessRuleViolation("Cannot edit this invoice")

        item = InvoiceLineItem(
            description=description,
            quantity=quantity,
            rate=rate,
            time_entry_id=time_entry_id
        )

        item.validate()
        self.line_items.append(item)

        self.recalculate_totals()
        self.mark_as_updated()
        return item

    def update_details(
        self,
        client: Optional[ClientContact] = None,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        tax_rate: Optional[Decimal] = None,
        notes: Optional[str] = None
    ) -> None:
        """
        Edit a draft invoice's header fields.
        Line items stay as built from the time entries; totals follow the tax rate.
        """
        if not self.can_be_edited():
            raise InvalidStateTransition(f"Only draft invoices can be edited (status is {self.status.value})")

        if client is not None:
            self.client = client

        if issue_date is not None:
            self.issue_date = issue_date

        if due_date is not None:
            self.due_date = due_date

        if tax_rate is not None:
            self.tax_rate = to_decimal(tax_rate, "tax_rate")

        if notes is not None:
            self.notes = notes

        self.recalculate_totals()
        self.validate()
        self.mark_as_updated()

    def recalculate_totals(self) -> None:
        """Recalculate all totals."""
        self.subtotal = round_money(sum((item.amount for item in self.line_items), Decimal("0")))
        self.tax_amount = round_money(self.subtotal * self.tax_rate)
        self.total = self.subtotal + self.tax_amount

    def send(self) -> None:
        """Mark invoice as sent to client."""
        if self.status == InvoiceStatus.CANCELLED:
            raise InvalidStateTransition("Cannot send cancelled invoice")

        if self.status != InvoiceStatus.DRAFT:
            raise InvalidStateTransition(f"Only draft invoices can be sent (status is {self.status.value})")

        if not self.line_items:
            raise BusinessRuleViolation("Cannot send empty invoice")

        self.status = InvoiceStatus.SENT
        self.sent_at = utcnow()
        self.mark_as_updated()

        self.add_event(InvoiceSentEvent(
            invoice_id=self.id,
            sent_to_email=self.client.email
        ))

    def update_status(self, status: InvoiceStatus) -> None:
        """Accept an externally driven status (paid, overdue, cancelled)."""
        status = InvoiceStatus(status)
        if status not in EXTERNAL_STATUSES:
            raise InvalidStateTransition(
                f"Status '{status.value}' cannot be set directly; use send for 'sent'"
            )

        self.status = status
        self.mark_as_updated()

    def can_be_deleted(self) -> bool:
        """Check if invoice can be deleted."""
        return self.status in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "invoice_number": self.invoice_number,
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "line_items": [item.to_dict() for item in self.line_items],
            "subtotal": float(self.subtotal),
            "tax_rate": float(self.tax_rate),
            "tax_amount": float(self.tax_amount),
            "total": float(self.total),
            "notes": self.notes,
            "time_entry_ids": self.time_entry_ids,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version
        }
        data.update(self.client.to_dict())
        return data
