"""
SQLAlchemy models for the database.
Maps domain entities to database tables.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean,
    Numeric, Date, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import relationship

from billsync.infrastructure.db.database import Base


class TimeEntryModel(Base):
    """Time entry table"""
    __tablename__ = 'time_entries'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False)

    description = Column(Text, nullable=False)
    duration_hours = Column(Numeric(10, 4), nullable=False)
    entry_date = Column(Date, nullable=False)

    # Billing
    billable = Column(Boolean, nullable=False, default=False)
    hourly_rate = Column(Numeric(10, 2))

    # Tracker references
    jira_issue_key = Column(String(64))
    jira_worklog_id = Column(String(64), unique=True)
    jira_synced_at = Column(DateTime(timezone=True))

    # Invoicing
    invoiced = Column(Boolean, nullable=False, default=False)
    invoice_id = Column(String(36), ForeignKey('invoices.id'))

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    invoice = relationship("InvoiceModel", back_populates="time_entries")

    # Constraints and indexes
    __table_args__ = (
        Index('idx_time_entries_user_date', 'user_id', 'entry_date'),
        Index('idx_time_entries_invoice', 'invoice_id'),
        CheckConstraint('duration_hours >= 0', name='time_entry_non_negative_duration'),
        CheckConstraint('NOT invoiced OR billable', name='time_entry_invoiced_is_billable'),
    )


class InvoiceModel(Base):
    """Invoice table"""
    __tablename__ = 'invoices'

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(64), nullable=False)

    # Invoice details
    invoice_number = Column(String(50), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="draft")

    # Client
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_address = Column(Text)

    # Amounts
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)

    # Dates
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    sent_date = Column(DateTime(timezone=True))

    # Content
    notes = Column(Text)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    line_items = relationship(
        "InvoiceLineItemModel",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItemModel.position"
    )
    time_entries = relationship("TimeEntryModel", back_populates="invoice")

    # Indexes
    __table_args__ = (
        Index('idx_invoices_owner', 'owner_id'),
        Index('idx_invoices_status', 'status'),
    )


class InvoiceLineItemModel(Base):
    """Invoice line item table"""
    __tablename__ = 'invoice_line_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(String(36), ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    position = Column(Integer, nullable=False)

    description = Column(Text, nullable=False)
    quantity = Column(Numeric(10, 4), nullable=False)
    rate = Column(Numeric(12, 2), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    time_entry_id = Column(String(36))

    invoice = relationship("InvoiceModel", back_populates="line_items")


class InvoiceSequenceModel(Base):
    """Counters for invoice numbering"""
    __tablename__ = 'invoice_sequences'

    name = Column(String(50), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
