"""
Domain models for the billing sync system.
This module exports all domain entities and value objects.
"""

# Base classes
from .base import (
    BaseEntity,
    DomainEvent,
    DomainException,
    ValidationError,
    BusinessRuleViolation,
    ImmutableEntryError,
    NotBillableError,
    AlreadyInvoicedError,
    DuplicateEpicError,
    EmptyEntrySetError,
    InvalidStateTransition,
    EntityNotFoundError,
    ConcurrencyConflictError,
    OperationTimeoutError,
    PartialFailureError,
    TrackerError,
    utcnow
)

# Value Objects
from .value_objects import (
    DateRange,
    Month,
    InvoiceNumber,
    Email,
    round_money,
    to_decimal,
    parse_calendar_date
)

# Domain entities
from .time_entry import (
    TimeEntry,
    SyncState,
    TimeEntrySyncedEvent,
    TimeEntryInvoicedEvent,
    TimeEntryDetachedEvent
)

from .worklog import (
    WorklogEntry,
    EpicMeta,
    MonthlyInvoiceEpic,
    MonthlyInvoiceDataResponse,
    total_hours,
    bucket_hours,
    grand_total_hours,
    hours_by_author
)

from .invoice import (
    Invoice,
    InvoiceStatus,
    InvoiceLineItem,
    ClientContact,
    InvoiceCreatedEvent,
    InvoiceSentEvent
)

__all__ = [
    # Base classes
    "BaseEntity",
    "DomainEvent",
    "DomainException",
    "ValidationError",
    "BusinessRuleViolation",
    "ImmutableEntryError",
    "NotBillableError",
    "AlreadyInvoicedError",
    "DuplicateEpicError",
    "EmptyEntrySetError",
    "InvalidStateTransition",
    "EntityNotFoundError",
    "ConcurrencyConflictError",
    "OperationTimeoutError",
    "PartialFailureError",
    "TrackerError",
    "utcnow",

    # Value objects
    "DateRange",
    "Month",
    "InvoiceNumber",
    "Email",
    "round_money",
    "to_decimal",
    "parse_calendar_date",

    # TimeEntry
    "TimeEntry",
    "SyncState",
    "TimeEntrySyncedEvent",
    "TimeEntryInvoicedEvent",
    "TimeEntryDetachedEvent",

    # Worklogs
    "WorklogEntry",
    "EpicMeta",
    "MonthlyInvoiceEpic",
    "MonthlyInvoiceDataResponse",
    "total_hours",
    "bucket_hours",
    "grand_total_hours",
    "hours_by_author",

    # Invoice
    "Invoice",
    "InvoiceStatus",
    "InvoiceLineItem",
    "ClientContact",
    "InvoiceCreatedEvent",
    "InvoiceSentEvent",
]
