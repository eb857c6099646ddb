"""
Repository interfaces for the domain layer.
This module exports all repository interfaces (ports) for dependency injection.
"""

from .time_entry_repository import TimeEntryRepository, TimeEntryFilter
from .invoice_repository import InvoiceRepository
from .backing_store import BackingStore
from .issue_tracker import IssueTrackerClient

__all__ = [
    "TimeEntryRepository",
    "TimeEntryFilter",
    "InvoiceRepository",
    "BackingStore",
    "IssueTrackerClient",
]
