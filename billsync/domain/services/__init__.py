"""
Domain services for the billing sync system.
This module exports all domain services for complex business logic.
"""

from .validation_service import TimeEntryValidator, TimeEntryInput
from .external_calls import call_with_timeout
from .sync_service import SyncStateMachine
from .aggregation_service import WorklogAggregator, BUCKET_STRATEGIES, resolve_bucket_strategy
from .billing_service import InvoiceBuilder
from .numbering_service import InvoiceNumberSequence, InMemoryInvoiceNumberSequence
from .reconciliation_service import ReconciliationCoordinator, PullResult, PullFailure

__all__ = [
    "TimeEntryValidator",
    "TimeEntryInput",
    "call_with_timeout",
    "SyncStateMachine",
    "WorklogAggregator",
    "BUCKET_STRATEGIES",
    "resolve_bucket_strategy",
    "InvoiceBuilder",
    "InvoiceNumberSequence",
    "InMemoryInvoiceNumberSequence",
    "ReconciliationCoordinator",
    "PullResult",
    "PullFailure",
]
