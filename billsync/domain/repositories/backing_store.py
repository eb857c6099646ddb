"""Backing store port.
Combines the repositories with a transaction boundary.
"""

from abc import abstractmethod
from typing import AsyncContextManager

from billsync.domain.repositories.time_entry_repository import TimeEntryRepository
from billsync.domain.repositories.invoice_repository import InvoiceRepository


class BackingStore(TimeEntryRepository, InvoiceRepository):
    """
    Persistent store for entries and invoices.

    Usage::

        async with store.transaction():
            await store.save_invoice(invoice)
            await store.save_entry(entry, expected_version=entry.version)

    Every write inside the block commits together or not at all. Writes
    outside a transaction commit individually.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Open a transaction scope. Nested scopes join the outer one."""
        pass
