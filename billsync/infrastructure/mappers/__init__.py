"""Mappers between domain entities and database models."""

from .time_entry_mapper import TimeEntryMapper
from .invoice_mapper import InvoiceMapper

__all__ = [
    "TimeEntryMapper",
    "InvoiceMapper",
]
