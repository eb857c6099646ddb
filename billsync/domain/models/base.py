"""
Base entity and exceptions for the domain layer.
This module contains the foundational classes for all domain entities.
"""

from datetime import datetime, timezone
from typing import Optional, Any, Dict, List
from abc import ABC, abstractmethod
import uuid


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class DomainEvent(ABC):
    """Base class for domain events."""

    def __init__(self):
        self.occurred_at = utcnow()
        self.event_id = str(uuid.uuid4())

    @property
    @abstractmethod
    def event_name(self) -> str:
        """Return the name of the event."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        data = {
            key: value for key, value in self.__dict__.items()
            if key not in ("occurred_at", "event_id")
        }
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "occurred_at": self.occurred_at.isoformat(),
            "data": data
        }


class BaseEntity(ABC):
    """
    Base class for all domain entities.
    Provides identity, timestamps and the optimistic-concurrency version.
    The version is owned by the backing store: it is bumped on every
    successful save and compared on every conditional save.
    """

    def __init__(
        self,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        version: int = 0
    ):
        self.id = id
        self.created_at = created_at or utcnow()
        self.updated_at = updated_at or self.created_at
        self.version = version
        self._events: List[DomainEvent] = []

    def __eq__(self, other: Any) -> bool:
        """Entities are equal if they have the same ID and are of the same type."""
        if not isinstance(other, self.__class__):
            return False
        if self.id is None or other.id is None:
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on entity ID."""
        if self.id is None:
            return hash(id(self))
        return hash((self.__class__.__name__, self.id))

    def mark_as_updated(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = utcnow()

    def add_event(self, event: DomainEvent) -> None:
        """Add a domain event."""
        self._events.append(event)

    def pull_events(self) -> List[DomainEvent]:
        """Get and clear all domain events."""
        events = self._events.copy()
        self._events.clear()
        return events

    def validate(self) -> None:
        """
        Validate the entity's state.
        Should be overridden by subclasses to implement specific validation rules.
        Raises ValidationError if the entity is in an invalid state.
        """
        pass


class DomainException(Exception):
    """Base exception for domain errors."""

    code = "DOMAIN_ERROR"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(DomainException):
    """Raised when caller input or entity state is invalid. Never retried."""

    code = "INVALID_INPUT"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class WorklogParseError(ValidationError):
    """Raised for a tracker worklog payload that could not be parsed."""

    def __init__(self, message: str, worklog_id: Optional[str] = None):
        super().__init__(message, "worklog")
        self.worklog_id = worklog_id


class BusinessRuleViolation(DomainException):
    """Exception raised when a business rule is violated."""

    code = "BUSINESS_RULE_VIOLATION"


class ImmutableEntryError(BusinessRuleViolation):
    """Raised when editing, deleting or re-syncing an invoiced time entry."""

    code = "IMMUTABLE"

    def __init__(self, entry_id: Optional[str], action: str = "modify"):
        super().__init__(f"Cannot {action} time entry {entry_id}: it is referenced by an invoice")
        self.entry_id = entry_id


class NotBillableError(BusinessRuleViolation):
    """Raised when a non-billable entry is put on an invoice."""

    code = "NOT_BILLABLE"

    def __init__(self, entry_id: Optional[str]):
        super().__init__(f"Time entry {entry_id} is not billable")
        self.entry_id = entry_id


class AlreadyInvoicedError(BusinessRuleViolation):
    """Raised when an entry that is already invoiced is invoiced again."""

    code = "ALREADY_INVOICED"

    def __init__(self, entry_id: Optional[str]):
        super().__init__(f"Time entry {entry_id} is already invoiced")
        self.entry_id = entry_id


class DuplicateEpicError(BusinessRuleViolation):
    """Raised when an aggregation request names the same epic twice."""

    code = "DUPLICATE_EPIC"

    def __init__(self, epic_key: str):
        super().__init__(f"Epic '{epic_key}' appears more than once")
        self.epic_key = epic_key


class EmptyEntrySetError(BusinessRuleViolation):
    """Raised when an invoice is requested for no entries."""

    code = "EMPTY_SET"

    def __init__(self, message: str = "Cannot build an invoice from an empty set of time entries"):
        super().__init__(message)


class InvalidStateTransition(BusinessRuleViolation):
    """Raised when a transition is not valid from the current state."""

    code = "INVALID_TRANSITION"


class EntityNotFoundError(DomainException):
    """Exception raised when an entity is not found."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        message = f"{entity_type} with id {entity_id} not found"
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConcurrencyConflictError(DomainException):
    """Raised when a conditional save finds a newer version in the store."""

    code = "CONFLICT"
    retryable = True

    def __init__(self, entity_type: str, entity_id: Any, expected_version: Optional[int], actual_version: Optional[int]):
        message = (
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class OperationTimeoutError(DomainException):
    """Raised when an external call exceeds its timeout."""

    code = "TIMEOUT"
    retryable = True

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class PartialFailureError(DomainException):
    """Raised on request when a pull committed some worklogs and failed others."""

    code = "PARTIAL_FAILURE"
    retryable = True

    def __init__(self, message: str, failures: Optional[List[Any]] = None):
        super().__init__(message)
        self.failures = failures or []


class TrackerError(DomainException):
    """Error reported by the issue tracker."""

    code = "TRACKER_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500
