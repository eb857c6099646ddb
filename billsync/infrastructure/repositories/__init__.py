"""
Backing store and sequence implementations.
"""

from .memory_store import InMemoryBackingStore
from .sqlalchemy_store import SQLAlchemyBackingStore
from .invoice_number_sequence import SQLAlchemyInvoiceNumberSequence

__all__ = [
    "InMemoryBackingStore",
    "SQLAlchemyBackingStore",
    "SQLAlchemyInvoiceNumberSequence",
]
