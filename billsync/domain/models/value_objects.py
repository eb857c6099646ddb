"""
Value Objects for the domain layer.
Immutable objects that represent values and encapsulate business logic.
"""

from typing import Optional, Union, Iterator
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from datetime import date, datetime, timedelta
from dataclasses import dataclass
import calendar
import re

from billsync.domain.models.base import ValidationError


CENTS = Decimal("0.01")

Number = Union[int, float, str, Decimal]


def to_decimal(value: Number, field: Optional[str] = None) -> Decimal:
    """Convert a number to Decimal without binary float artifacts."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid number: {value!r}", field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid number: {value!r}", field)
    if not result.is_finite():
        raise ValidationError(f"Number must be finite: {value!r}", field)
    return result


def round_money(amount: Number) -> Decimal:
    """Round an amount to cents, half-up."""
    return to_decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_calendar_date(value: Union[date, str], field: str = "date") -> date:
    """Parse a calendar date given as a date or a YYYY-MM-DD string."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"Invalid calendar date: {value!r}", field)
    raise ValidationError(f"Invalid calendar date: {value!r}", field)


@dataclass(frozen=True)
class DateRange:
    """Value object representing an inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self):
        """Validate the range after initialization."""
        if self.end < self.start:
            raise ValidationError("End date cannot be before start date", "end_date")

    def contains(self, day: date) -> bool:
        """Check if a day falls within this range."""
        return self.start <= day <= self.end

    def days(self) -> Iterator[date]:
        """Iterate over every day in the range."""
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class Month:
    """Value object representing a calendar month, serialized as YYYY-MM."""

    year: int
    month: int

    _PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

    def __post_init__(self):
        """Validate month bounds."""
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Invalid month: {self.month}", "month")
        if not 1 <= self.year <= 9999:
            raise ValidationError(f"Invalid year: {self.year}", "month")

    @classmethod
    def parse(cls, value: Union[str, "Month"]) -> "Month":
        """Parse a YYYY-MM string."""
        if isinstance(value, Month):
            return value
        match = cls._PATTERN.match(value.strip()) if isinstance(value, str) else None
        if not match:
            raise ValidationError(f"Month must be formatted as YYYY-MM, got {value!r}", "month")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def of(cls, day: date) -> "Month":
        """Month containing the given day."""
        return cls(day.year, day.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def to_range(self) -> DateRange:
        """Date range covering the whole month."""
        return DateRange(self.first_day, self.last_day)

    def contains(self, day: date) -> bool:
        """Check if a day falls within this month."""
        return day.year == self.year and day.month == self.month

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class InvoiceNumber:
    """Value object representing an invoice number with format validation."""

    value: str

    def __post_init__(self):
        """Validate the invoice number format."""
        if not self.value:
            raise ValidationError("Invoice number cannot be empty", "invoice_number")

        if len(self.value) > 50:
            raise ValidationError("Invoice number cannot exceed 50 characters", "invoice_number")

        # Allow alphanumeric characters, hyphens, and underscores
        if not re.match(r'^[A-Za-z0-9\-_]+$', self.value):
            raise ValidationError(
                "Invoice number can only contain letters, numbers, hyphens, and underscores",
                "invoice_number"
            )

    @classmethod
    def generate_sequential(cls, prefix: str, sequence: int, year: Optional[int] = None) -> "InvoiceNumber":
        """Generate a sequential invoice number."""
        if sequence <= 0:
            raise ValidationError("Invoice sequence must be positive", "invoice_number")
        if year:
            value = f"{prefix}-{year}-{sequence:04d}"
        else:
            value = f"{prefix}-{sequence:04d}"
        return cls(value)

    def get_sequence(self) -> Optional[int]:
        """Extract sequence number from invoice number."""
        # Try to find the last numeric part
        parts = self.value.split('-')
        for part in reversed(parts):
            if part.isdigit():
                return int(part)
        return None

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"InvoiceNumber('{self.value}')"


@dataclass(frozen=True)
class Email:
    """Value object representing a validated email address."""

    address: str

    def __post_init__(self):
        """Validate the email address using basic regex."""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, self.address):
            raise ValidationError(f"Invalid email address: {self.address}", "email")

    @classmethod
    def from_string(cls, email_str: str) -> "Email":
        """Create Email from string."""
        return cls(email_str.strip().lower())

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"Email('{self.address}')"
