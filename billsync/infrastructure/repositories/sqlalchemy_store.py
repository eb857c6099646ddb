"""
Backing store implementation using SQLAlchemy.
"""

import asyncio
import threading
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, List, Optional, TypeVar

from sqlalchemy import update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker, selectinload

from billsync.domain.models.base import ConcurrencyConflictError, EntityNotFoundError
from billsync.domain.models.invoice import Invoice
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter
from billsync.infrastructure.db.models import TimeEntryModel, InvoiceModel, InvoiceLineItemModel
from billsync.infrastructure.mappers.time_entry_mapper import TimeEntryMapper
from billsync.infrastructure.mappers.invoice_mapper import InvoiceMapper

R = TypeVar('R')


@dataclass
class _OpenTransaction:
    session: Session
    # Held inside worker threads; a cancelled call may still be running
    lock: threading.Lock = field(default_factory=threading.Lock)


class SQLAlchemyBackingStore(BackingStore):
    """
    SQLAlchemy implementation of the backing store.

    Conditional writes are ``UPDATE ... WHERE version = :expected``; zero
    affected rows means another writer got there first. Outside a
    transaction each call runs in its own session and commits on return.

    Session work is blocking, so it runs in a worker thread and callers can
    bound it with ``asyncio.wait_for``. A call abandoned on timeout finishes
    in its thread; outside a transaction its write may still commit.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.entry_mapper = TimeEntryMapper()
        self.invoice_mapper = InvoiceMapper()
        self._current: ContextVar[Optional[_OpenTransaction]] = ContextVar(
            f"sqlalchemy_store_session_{id(self)}", default=None
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return

        current = _OpenTransaction(self.session_factory())
        token = self._current.set(current)
        try:
            yield
            await asyncio.to_thread(self._finish, current, Session.commit)
        except BaseException:
            await asyncio.shield(asyncio.to_thread(self._finish, current, Session.rollback))
            raise
        finally:
            self._current.reset(token)

    @staticmethod
    def _finish(current: _OpenTransaction, end: Callable[[Session], None]) -> None:
        with current.lock:
            try:
                end(current.session)
            finally:
                current.session.close()

    async def _run(self, operation: Callable[..., R], *args: Any) -> R:
        """Run ``operation(session, *args)`` in a worker thread, joining the current transaction if any."""
        current = self._current.get()
        if current is not None:
            return await asyncio.to_thread(self._run_in_transaction, current, operation, *args)
        return await asyncio.to_thread(self._run_in_own_session, operation, *args)

    @staticmethod
    def _run_in_transaction(current: _OpenTransaction, operation: Callable[..., R], *args: Any) -> R:
        with current.lock:
            return operation(current.session, *args)

    def _run_in_own_session(self, operation: Callable[..., R], *args: Any) -> R:
        session = self.session_factory()
        try:
            result = operation(session, *args)
            session.commit()
            return result
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    # Time entries

    async def get_entry(self, entry_id: str) -> Optional[TimeEntry]:
        return await self._run(self._get_entry, entry_id)

    async def save_entry(self, entry: TimeEntry, expected_version: Optional[int] = None) -> TimeEntry:
        return await self._run(self._save_entry, entry, expected_version)

    async def delete_entry(self, entry_id: str) -> bool:
        return await self._run(self._delete_entry, entry_id)

    async def list_entries(self, criteria: Optional[TimeEntryFilter] = None) -> List[TimeEntry]:
        return await self._run(self._list_entries, criteria or TimeEntryFilter())

    def _get_entry(self, session: Session, entry_id: str) -> Optional[TimeEntry]:
        model = session.get(TimeEntryModel, entry_id, populate_existing=True)
        if not model:
            return None
        return self.entry_mapper.model_to_domain(model)

    def _save_entry(self, session: Session, entry: TimeEntry, expected_version: Optional[int]) -> TimeEntry:
        if expected_version is None:
            model = self.entry_mapper.domain_to_model(entry)
            model.id = entry.id or str(uuid.uuid4())
            model.version = 1
            session.add(model)
            self._flush(session, "TimeEntry", model.id)
            entry_id = model.id
        else:
            result = self._execute_update(
                session,
                "TimeEntry",
                entry.id,
                update(TimeEntryModel)
                .where(TimeEntryModel.id == entry.id, TimeEntryModel.version == expected_version)
                .values(version=expected_version + 1, **self.entry_mapper.domain_to_values(entry))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self._raise_version_error(session, TimeEntryModel, "TimeEntry", entry.id, expected_version)
            self._flush(session, "TimeEntry", entry.id)
            entry_id = entry.id

        model = session.get(TimeEntryModel, entry_id, populate_existing=True)
        return self.entry_mapper.model_to_domain(model)

    def _delete_entry(self, session: Session, entry_id: str) -> bool:
        result = session.execute(delete(TimeEntryModel).where(TimeEntryModel.id == entry_id))
        return result.rowcount > 0

    def _list_entries(self, session: Session, criteria: TimeEntryFilter) -> List[TimeEntry]:
        query = session.query(TimeEntryModel)

        if criteria.user_id is not None:
            query = query.filter(TimeEntryModel.user_id == criteria.user_id)
        if criteria.start_date is not None:
            query = query.filter(TimeEntryModel.entry_date >= criteria.start_date)
        if criteria.end_date is not None:
            query = query.filter(TimeEntryModel.entry_date <= criteria.end_date)
        if criteria.billable is not None:
            query = query.filter(TimeEntryModel.billable == criteria.billable)
        if criteria.invoiced is not None:
            query = query.filter(TimeEntryModel.invoiced == criteria.invoiced)
        if criteria.invoice_id is not None:
            query = query.filter(TimeEntryModel.invoice_id == criteria.invoice_id)
        if criteria.jira_worklog_id is not None:
            query = query.filter(TimeEntryModel.jira_worklog_id == criteria.jira_worklog_id)
        if criteria.jira_issue_key is not None:
            query = query.filter(TimeEntryModel.jira_issue_key == criteria.jira_issue_key)

        models = query.order_by(TimeEntryModel.entry_date, TimeEntryModel.created_at).all()
        return [self.entry_mapper.model_to_domain(model) for model in models]

    # Invoices

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return await self._run(self._get_invoice, invoice_id)

    async def save_invoice(self, invoice: Invoice, expected_version: Optional[int] = None) -> Invoice:
        return await self._run(self._save_invoice, invoice, expected_version)

    async def list_invoices(self, user_id: Optional[str] = None) -> List[Invoice]:
        return await self._run(self._list_invoices, user_id)

    async def delete_invoice(self, invoice_id: str) -> bool:
        return await self._run(self._delete_invoice, invoice_id)

    def _get_invoice(self, session: Session, invoice_id: str) -> Optional[Invoice]:
        model = self._load_invoice(session, invoice_id)
        if not model:
            return None
        return self.invoice_mapper.model_to_domain(model)

    def _save_invoice(self, session: Session, invoice: Invoice, expected_version: Optional[int]) -> Invoice:
        if expected_version is None:
            invoice_id = invoice.id or str(uuid.uuid4())
            model = InvoiceModel(
                id=invoice_id,
                version=1,
                **self.invoice_mapper.domain_to_values(invoice)
            )
            model.line_items = self.invoice_mapper.line_items_to_models(invoice_id, invoice)
            session.add(model)
            self._flush(session, "Invoice", invoice_id)
        else:
            invoice_id = invoice.id
            result = self._execute_update(
                session,
                "Invoice",
                invoice_id,
                update(InvoiceModel)
                .where(InvoiceModel.id == invoice_id, InvoiceModel.version == expected_version)
                .values(version=expected_version + 1, **self.invoice_mapper.domain_to_values(invoice))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self._raise_version_error(session, InvoiceModel, "Invoice", invoice_id, expected_version)

            session.execute(delete(InvoiceLineItemModel).where(InvoiceLineItemModel.invoice_id == invoice_id))
            session.add_all(self.invoice_mapper.line_items_to_models(invoice_id, invoice))
            self._flush(session, "Invoice", invoice_id)

        model = self._load_invoice(session, invoice_id)
        return self.invoice_mapper.model_to_domain(model)

    def _list_invoices(self, session: Session, user_id: Optional[str]) -> List[Invoice]:
        query = session.query(InvoiceModel).options(selectinload(InvoiceModel.line_items))
        if user_id is not None:
            query = query.filter(InvoiceModel.owner_id == user_id)
        models = query.order_by(InvoiceModel.created_at.desc()).all()
        return [self.invoice_mapper.model_to_domain(model) for model in models]

    def _delete_invoice(self, session: Session, invoice_id: str) -> bool:
        session.execute(delete(InvoiceLineItemModel).where(InvoiceLineItemModel.invoice_id == invoice_id))
        result = session.execute(delete(InvoiceModel).where(InvoiceModel.id == invoice_id))
        return result.rowcount > 0

    # Helpers

    def _load_invoice(self, session: Session, invoice_id: str) -> Optional[InvoiceModel]:
        return (
            session.query(InvoiceModel)
            .options(selectinload(InvoiceModel.line_items))
            .populate_existing()
            .filter(InvoiceModel.id == invoice_id)
            .first()
        )

    def _flush(self, session: Session, entity_type: str, entity_id: str) -> None:
        """Flush, reporting unique-key collisions as conflicts."""
        try:
            session.flush()
        except IntegrityError as e:
            raise ConcurrencyConflictError(entity_type, entity_id, None, None) from e

    def _raise_version_error(self, session: Session, model_class, entity_type: str, entity_id: str, expected_version: int):
        current = session.get(model_class, entity_id, populate_existing=True)
        if current is None:
            raise EntityNotFoundError(entity_type, entity_id)
        raise ConcurrencyConflictError(entity_type, entity_id, expected_version, current.version)

    def _execute_update(self, session: Session, entity_type: str, entity_id: str, statement):
        try:
            return session.execute(statement)
        except IntegrityError as e:
            raise ConcurrencyConflictError(entity_type, entity_id, None, None) from e
