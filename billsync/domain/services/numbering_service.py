"""Numbering service for generating sequential invoice numbers."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from billsync.domain.models.value_objects import InvoiceNumber


class InvoiceNumberSequence(ABC):
    """
    Source of invoice numbers.
    Numbers are unique and monotonic; a number handed out is never reused,
    even if the invoice it was meant for is never created.
    """

    @abstractmethod
    async def next_invoice_number(self) -> str:
        """Return the next invoice number."""
        pass


class InMemoryInvoiceNumberSequence(InvoiceNumberSequence):
    """Process-local sequence: PREFIX-0001, PREFIX-0002, ..."""

    def __init__(self, prefix: str = "INV", start: int = 1, per_year: bool = False):
        self.prefix = prefix
        self.per_year = per_year
        self._next = start

    async def next_invoice_number(self) -> str:
        # No await between read and increment, so concurrent callers never share a number
        sequence = self._next
        self._next += 1
        year: Optional[int] = date.today().year if self.per_year else None
        return str(InvoiceNumber.generate_sequential(self.prefix, sequence, year))
