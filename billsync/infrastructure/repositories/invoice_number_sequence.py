"""
Store-backed invoice number sequence.
"""

import asyncio
from datetime import date

from sqlalchemy.orm import sessionmaker

from billsync.domain.models.value_objects import InvoiceNumber
from billsync.domain.services.numbering_service import InvoiceNumberSequence
from billsync.infrastructure.db.models import InvoiceSequenceModel


class SQLAlchemyInvoiceNumberSequence(InvoiceNumberSequence):
    """
    Counter row per prefix, incremented under a row lock in its own
    transaction so numbers stay unique across processes.
    """

    def __init__(self, session_factory: sessionmaker, prefix: str = "INV", per_year: bool = False):
        self.session_factory = session_factory
        self.prefix = prefix
        self.per_year = per_year

    async def next_invoice_number(self) -> str:
        year = date.today().year if self.per_year else None
        sequence = await asyncio.to_thread(self._increment, f"{self.prefix}-{year}" if year else self.prefix)
        return str(InvoiceNumber.generate_sequential(self.prefix, sequence, year))

    def _increment(self, name: str) -> int:
        session = self.session_factory()
        try:
            row = (
                session.query(InvoiceSequenceModel)
                .filter(InvoiceSequenceModel.name == name)
                .with_for_update()
                .first()
            )
            if row is None:
                row = InvoiceSequenceModel(name=name, last_value=0)
                session.add(row)

            row.last_value += 1
            sequence = row.last_value
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        return sequence
