"""
InvoiceSequenceAllocator -- gap-free invoice numbering via locked counter rows.

Responsibility:
    Hands out the next invoice sequence number for an (owner, year) pair and
    renders it as ``<prefix>-<n>/<year>``.  Uses a dedicated counter table
    with row-level locking (``SELECT ... FOR UPDATE``) so that concurrent
    writers in different processes never observe the same number.

Architecture position:
    Engine > Services -- imperative shell infrastructure.
    Called by InvoiceService inside the transaction that persists the
    invoice, or standalone through allocation_retry.allocate_number().

Invariants enforced:
    - Uniqueness: the locked counter row is the sole source of truth for the
      next value.  The aggregate-max-plus-one anti-pattern over the invoices
      table is FORBIDDEN: two readers would both see the same maximum.
    - Gap-free: the increment is only visible after the caller's transaction
      commits.  A rollback returns the number.
    - Never reused: nothing decrements the counter; deleting an invoice
      leaves its number permanently consumed.

Failure modes:
    - IntegrityError: two transactions create the first counter row for a
      key at the same time (handled via savepoint rollback and re-read).
    - OperationalError: lock wait timeout / serialization failure, retried
      by allocation_retry.run_allocation_unit().

Audit relevance:
    Every allocation is logged with owner_id, year and sequence_number.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoice_engine.domain.formatting import DEFAULT_PREFIX, format_invoice_number
from invoice_engine.logging_config import get_logger
from invoice_engine.models.sequence_counter import InvoiceSequenceCounter

logger = get_logger("services.sequence")


@dataclass(frozen=True, slots=True)
class AllocatedNumber:
    """An invoice number: year, sequence number and rendered form."""

    year: int
    sequence_number: int
    number: str


class InvoiceSequenceAllocator:
    """
    Service for allocating invoice sequence numbers.

    Contract:
        Accepts an owner and a calendar year and returns the next
        strictly-monotonic number for that pair, starting at 1.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry on conflicts -- see allocation_retry.

    Usage:
        with session.begin():
            allocated = InvoiceSequenceAllocator(session).allocate(owner_id, 2026)
            # persist the invoice with allocated.number ...
            # If the transaction rolls back, the number is not consumed
    """

    def __init__(self, session: Session, prefix: str = DEFAULT_PREFIX):
        self._session = session
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def allocate(self, owner_id: UUID, year: int) -> AllocatedNumber:
        """
        Allocate the next invoice number for ``(owner_id, year)``.

        1. Locks the counter row (or creates it if this is the first
           invoice of the year for the owner)
        2. Increments it
        3. Returns the new value, rendered

        Postconditions:
            - sequence_number > 0 and strictly greater than any number
              previously committed for the same key.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._lock_counter(owner_id, year)

        if counter is None:
            # First allocation for this key.  Another transaction may be
            # creating the same row right now; the savepoint keeps a losing
            # insert from rolling back the caller's other work.
            savepoint = self._session.begin_nested()
            try:
                counter = InvoiceSequenceCounter(owner_id=owner_id, year=year, last_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                return self._allocated(owner_id, year, 1)
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"owner_id": str(owner_id), "year": year},
                )
                savepoint.rollback()
                counter = self._lock_counter(owner_id, year)
                if counter is None:
                    raise

        counter.last_value += 1
        self._session.flush()
        return self._allocated(owner_id, year, counter.last_value)

    def peek(self, owner_id: UUID, year: int) -> AllocatedNumber:
        """
        The number the next allocation would return, without consuming it.

        Informational only (e.g. pre-filling a form); a concurrent writer may
        take this number before the caller does.
        """
        last = self.current_value(owner_id, year) or 0
        sequence_number = last + 1
        return AllocatedNumber(
            year=year,
            sequence_number=sequence_number,
            number=format_invoice_number(sequence_number, year, self._prefix),
        )

    def current_value(self, owner_id: UUID, year: int) -> int | None:
        """Last allocated value, or None if nothing was allocated yet."""
        counter = self._session.execute(
            select(InvoiceSequenceCounter).where(
                InvoiceSequenceCounter.owner_id == owner_id,
                InvoiceSequenceCounter.year == year,
            )
        ).scalar_one_or_none()
        return counter.last_value if counter else None

    def _lock_counter(self, owner_id: UUID, year: int) -> InvoiceSequenceCounter | None:
        return self._session.execute(
            select(InvoiceSequenceCounter)
            .where(
                InvoiceSequenceCounter.owner_id == owner_id,
                InvoiceSequenceCounter.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _allocated(self, owner_id: UUID, year: int, value: int) -> AllocatedNumber:
        assert value > 0, "sequence value must be strictly positive"
        number = format_invoice_number(value, year, self._prefix)
        logger.debug(
            "sequence_allocated",
            extra={
                "owner_id": str(owner_id),
                "year": year,
                "sequence_number": value,
                "number": number,
            },
        )
        return AllocatedNumber(year=year, sequence_number=value, number=number)
