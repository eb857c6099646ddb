"""Invoice repository interface.
Defines the contract for invoice data persistence operations.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from billsync.domain.models.invoice import Invoice


class InvoiceRepository(ABC):
    """
    Repository interface for Invoice aggregate.
    Defines all operations needed for invoice data persistence.
    """

    @abstractmethod
    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        """
        Find an invoice by its ID.
        Returns None if not found.
        """
        pass

    @abstractmethod
    async def save_invoice(self, invoice: Invoice, expected_version: Optional[int] = None) -> Invoice:
        """
        Save an invoice entity, with the same version semantics as entries.
        Returns the saved invoice with updated version and timestamps.
        """
        pass

    @abstractmethod
    async def list_invoices(self, user_id: Optional[str] = None) -> List[Invoice]:
        """
        List invoices, newest first, optionally for one user.
        """
        pass

    @abstractmethod
    async def delete_invoice(self, invoice_id: str) -> bool:
        """
        Delete an invoice.
        Returns True if deleted, False if not found.
        """
        pass
