"""
Invoice mapper for converting between domain entities and database models.
"""

from typing import Any, Dict, List

from billsync.domain.models.invoice import Invoice, InvoiceLineItem, InvoiceStatus, ClientContact
from billsync.infrastructure.db.models import InvoiceModel, InvoiceLineItemModel
from billsync.infrastructure.mappers.time_entry_mapper import as_utc


class InvoiceMapper:
    """Maps between Invoice aggregate and InvoiceModel with its line items."""

    def domain_to_values(self, invoice: Invoice) -> Dict[str, Any]:
        """Column values for an invoice row, without id and version."""
        return {
            "owner_id": invoice.user_id,
            "invoice_number": invoice.invoice_number,
            "status": invoice.status.value,
            "client_name": invoice.client.name,
            "client_email": invoice.client.email,
            "client_address": invoice.client.address,
            "subtotal": invoice.subtotal,
            "tax_rate": invoice.tax_rate,
            "tax_amount": invoice.tax_amount,
            "total_amount": invoice.total,
            "issue_date": invoice.issue_date,
            "due_date": invoice.due_date,
            "sent_date": invoice.sent_at,
            "notes": invoice.notes,
            "created_at": invoice.created_at,
            "updated_at": invoice.updated_at,
        }

    def line_items_to_models(self, invoice_id: str, invoice: Invoice) -> List[InvoiceLineItemModel]:
        """Convert line items, keeping their order."""
        return [
            InvoiceLineItemModel(
                invoice_id=invoice_id,
                position=position,
                description=item.description,
                quantity=item.quantity,
                rate=item.rate,
                amount=item.amount,
                time_entry_id=item.time_entry_id
            )
            for position, item in enumerate(invoice.line_items)
        ]

    def model_to_domain(self, model: InvoiceModel) -> Invoice:
        """Convert InvoiceModel to Invoice aggregate."""
        line_items = [
            InvoiceLineItem(
                description=item.description,
                quantity=item.quantity,
                rate=item.rate,
                amount=item.amount,
                time_entry_id=item.time_entry_id
            )
            for item in sorted(model.line_items, key=lambda row: row.position)
        ]

        return Invoice(
            id=model.id,
            user_id=model.owner_id,
            invoice_number=model.invoice_number,
            client=ClientContact(
                name=model.client_name,
                email=model.client_email,
                address=model.client_address
            ),
            issue_date=model.issue_date,
            due_date=model.due_date,
            tax_rate=model.tax_rate,
            status=InvoiceStatus(model.status),
            line_items=line_items,
            notes=model.notes,
            sent_at=as_utc(model.sent_date),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
            version=model.version or 1
        )
