"""Invoice PDF rendering."""

from .pdf_service import InvoicePDFService

__all__ = [
    "InvoicePDFService",
]
