"""Billing service for building invoices from time entries.
Handles line item pricing, tax computation and the invoicing transaction.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from billsync.domain.models.base import (
    ValidationError,
    NotBillableError,
    AlreadyInvoicedError,
    EmptyEntrySetError,
    BusinessRuleViolation,
    EntityNotFoundError
)
from billsync.domain.models.invoice import Invoice, InvoiceLineItem, ClientContact, InvoiceCreatedEvent
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.models.value_objects import round_money, to_decimal
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter
from billsync.domain.services.external_calls import call_with_timeout
from billsync.domain.services.numbering_service import InvoiceNumberSequence
from billsync.domain.services.sync_service import SyncStateMachine

logger = logging.getLogger(__name__)


class InvoiceBuilder:
    """
    Domain service turning billable, uninvoiced entries into a draft invoice.

    The invoice is saved and every entry is flipped to invoiced in a single
    store transaction: either all of it happens or none of it does.
    """

    def __init__(
        self,
        store: BackingStore,
        sequence: InvoiceNumberSequence,
        default_hourly_rate: Decimal = Decimal("50.00"),
        payment_terms_days: int = 30,
        store_timeout: Optional[float] = None,
        state_machine: Optional[SyncStateMachine] = None
    ):
        self.store = store
        self.sequence = sequence
        self.default_hourly_rate = to_decimal(default_hourly_rate, "default_hourly_rate")
        self.payment_terms_days = payment_terms_days
        self.store_timeout = store_timeout
        self.state_machine = state_machine or SyncStateMachine(store, store_timeout=store_timeout)

    def _round_currency(self, amount: Decimal) -> Decimal:
        """Round currency amount to 2 decimal places."""
        return round_money(amount)

    def effective_rate(self, entry: TimeEntry) -> Decimal:
        """Hourly rate for an entry, falling back to the default rate."""
        if entry.hourly_rate is not None:
            return entry.hourly_rate
        return self.default_hourly_rate

    def line_item_for(self, entry: TimeEntry) -> InvoiceLineItem:
        """One line per entry, priced as a single unit of hours x rate."""
        rate = self._round_currency(entry.duration * self.effective_rate(entry))
        return InvoiceLineItem(
            description=f"{entry.description} ({entry.date.isoformat()})",
            quantity=Decimal("1"),
            rate=rate,
            time_entry_id=entry.id
        )

    def check_entries(self, entries: Sequence[TimeEntry]) -> None:
        """Reject sets that cannot be invoiced. Runs before any store call."""
        if not entries:
            raise EmptyEntrySetError()

        seen = set()
        for entry in entries:
            if entry.id is None:
                raise ValidationError("Only stored time entries can be invoiced", "time_entry_ids")
            if entry.id in seen:
                raise ValidationError(f"Time entry {entry.id} is listed more than once", "time_entry_ids")
            seen.add(entry.id)

            if entry.invoiced:
                raise AlreadyInvoicedError(entry.id)
            if not entry.billable:
                raise NotBillableError(entry.id)

        owners = {entry.user_id for entry in entries}
        if len(owners) > 1:
            raise ValidationError("All time entries on an invoice must belong to the same user", "time_entry_ids")

    async def build(
        self,
        entries: Sequence[TimeEntry],
        tax_rate: Decimal,
        client: ClientContact,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None
    ) -> Invoice:
        """
        Create a draft invoice for the entries and mark them invoiced.

        Entries must carry the version they were read at; an entry changed
        since then fails the whole build with ConcurrencyConflictError.
        """
        self.check_entries(entries)

        tax_rate = to_decimal(tax_rate, "tax_rate")
        if tax_rate < 0 or tax_rate > 1:
            raise ValidationError("Tax rate must be between 0 and 1", "tax_rate")

        line_items = [self.line_item_for(entry) for entry in entries]
        issue_date = issue_date or date.today()
        due_date = due_date or issue_date + timedelta(days=self.payment_terms_days)

        invoice_number = await call_with_timeout(
            self.sequence.next_invoice_number(),
            self.store_timeout,
            "next_invoice_number"
        )

        invoice = Invoice(
            user_id=entries[0].user_id,
            invoice_number=invoice_number,
            client=client,
            issue_date=issue_date,
            due_date=due_date,
            tax_rate=tax_rate,
            line_items=line_items,
            notes=notes
        )

        async with self.store.transaction():
            saved = await call_with_timeout(self.store.save_invoice(invoice), self.store_timeout, "save_invoice")
            for entry in entries:
                await self.state_machine.attach_entry(entry, saved.id)

        event = InvoiceCreatedEvent(saved.id, saved.invoice_number, saved.total)
        logger.info(
            f"Invoice {saved.invoice_number} created for {len(entries)} entries: "
            f"subtotal {saved.subtotal}, tax {saved.tax_amount}, total {saved.total}"
        )
        logger.debug(f"Domain event {event.event_name}: {event.to_dict()['data']}")
        return saved

    async def delete(self, invoice_id: str) -> List[TimeEntry]:
        """
        Delete an invoice and detach its entries in one transaction.
        Entries are never deleted. Returns the detached entries.
        """
        async with self.store.transaction():
            invoice = await call_with_timeout(self.store.get_invoice(invoice_id), self.store_timeout, "get_invoice")
            if invoice is None:
                raise EntityNotFoundError("Invoice", invoice_id)

            if not invoice.can_be_deleted():
                raise BusinessRuleViolation(
                    f"Invoice {invoice.invoice_number} is {invoice.status.value}; "
                    "only draft or cancelled invoices can be deleted"
                )

            entries = await call_with_timeout(
                self.store.list_entries(TimeEntryFilter(invoice_id=invoice_id)),
                self.store_timeout,
                "list_entries"
            )
            detached = [await self.state_machine.detach_entry(entry) for entry in entries]

            await call_with_timeout(self.store.delete_invoice(invoice_id), self.store_timeout, "delete_invoice")

        logger.info(f"Invoice {invoice.invoice_number} deleted; {len(detached)} entries detached")
        return detached
