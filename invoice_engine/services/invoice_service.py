"""
InvoiceService -- the thin persistence collaborator around the engine.

Responsibility:
    Creates, edits, deletes, duplicates and re-statuses invoices by calling
    the calculator, the sequence allocator and the lifecycle state machine,
    and persisting their outputs.

Architecture position:
    Engine > Services -- imperative shell.

Invariants enforced:
    - Totals always come from ``calculate()``; the tax snapshot given at
      creation (or DRAFT edit) is frozen onto the row.
    - The invoice number is allocated in the same transaction that persists
      the invoice, so a rollback leaves no gap.
    - Only DRAFT invoices are edited or deleted; deletion never returns a
      number to the counter.
    - Every status change, including the overdue sweep, goes through
      ``transition()``.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries
      (or use ``issue_invoice`` for a self-contained, retried unit).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_engine.domain.calculator import LineItem, TaxOptions, calculate
from invoice_engine.domain.clock import Clock, SystemClock
from invoice_engine.domain.formatting import DEFAULT_PREFIX
from invoice_engine.domain.lifecycle import (
    INITIAL_STATUS,
    InvoiceStatus,
    assert_deletable,
    assert_editable,
    transition,
)
from invoice_engine.exceptions import InvalidInvoiceDraftError, InvoiceNotFoundError
from invoice_engine.logging_config import LogContext, get_logger
from invoice_engine.models.invoice import Invoice, InvoiceLine
from invoice_engine.services.allocation_retry import RetryPolicy, run_allocation_unit
from invoice_engine.services.sequence_service import AllocatedNumber, InvoiceSequenceAllocator

logger = get_logger("services.invoice")

DEFAULT_PAYMENT_DAYS = 30


@dataclass(frozen=True, slots=True)
class DraftLine:
    """A line as entered by the user: description plus calculator inputs."""

    description: str
    quantity: Decimal
    unit_price_cents: int

    def to_line_item(self) -> LineItem:
        return LineItem(quantity=self.quantity, unit_price_cents=self.unit_price_cents)


@dataclass(frozen=True, slots=True)
class InvoiceDraft:
    """
    Everything needed to create or rewrite a DRAFT invoice.

    Tax options must be fully resolved (see invoice_config.TaxDefaults).
    """

    issue_date: date
    due_date: date
    lines: tuple[DraftLine, ...]
    tax_options: TaxOptions
    client_id: UUID | None = None
    notes: str | None = None
    payment_terms: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        if not self.lines:
            raise InvalidInvoiceDraftError("at least one line is required")
        for index, line in enumerate(self.lines):
            if not line.description or not line.description.strip():
                raise InvalidInvoiceDraftError(f"line {index} has no description")
        if self.due_date < self.issue_date:
            raise InvalidInvoiceDraftError("due date precedes issue date")


@dataclass(frozen=True)
class StatusChange:
    """Result of a successful status change."""

    invoice: Invoice
    previous_status: InvoiceStatus
    new_status: InvoiceStatus = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "new_status", self.invoice.status_enum)


class InvoiceService:
    """
    Invoice write operations for one owner at a time.

    Usage:
        with session_scope() as session:
            service = InvoiceService(session, prefix="FT")
            invoice = service.create_invoice(owner_id, draft)
    """

    def __init__(
        self,
        session: Session,
        prefix: str = DEFAULT_PREFIX,
        clock: Clock | None = None,
        payment_days: int = DEFAULT_PAYMENT_DAYS,
    ):
        self._session = session
        self._allocator = InvoiceSequenceAllocator(session, prefix)
        self._clock = clock or SystemClock()
        self._payment_days = payment_days

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_invoice(self, owner_id: UUID, invoice_id: UUID) -> Invoice:
        """
        Raises:
            InvoiceNotFoundError: If no such invoice belongs to ``owner_id``.
        """
        invoice = self._session.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.owner_id == owner_id)
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def next_invoice_number(self, owner_id: UUID, year: int | None = None) -> AllocatedNumber:
        """Preview the next number without consuming it."""
        return self._allocator.peek(owner_id, year or self._clock.today().year)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_invoice(self, owner_id: UUID, draft: InvoiceDraft) -> Invoice:
        """Calculate, number and persist a new DRAFT invoice."""
        calc = calculate([line.to_line_item() for line in draft.lines], draft.tax_options)
        allocated = self._allocator.allocate(owner_id, draft.issue_date.year)

        invoice = Invoice(
            owner_id=owner_id,
            client_id=draft.client_id,
            number=allocated.number,
            year=allocated.year,
            sequence_number=allocated.sequence_number,
            status=INITIAL_STATUS.value,
            issue_date=draft.issue_date,
            due_date=draft.due_date,
            notes=draft.notes or None,
            payment_terms=draft.payment_terms or None,
        )
        invoice.apply_tax_options(draft.tax_options)
        invoice.apply_calculation(calc)
        invoice.lines = self._build_lines(draft.lines)

        self._session.add(invoice)
        self._session.flush()

        logger.info(
            "invoice_created",
            extra={
                "owner_id": str(owner_id),
                "invoice_id": str(invoice.id),
                "number": invoice.number,
                "gross_total": calc.gross_total,
                "net_payable": calc.net_payable,
            },
        )
        return invoice

    def update_invoice(self, owner_id: UUID, invoice_id: UUID, draft: InvoiceDraft) -> Invoice:
        """
        Rewrite a DRAFT invoice's lines, dates and tax snapshot.

        The number, year and sequence number are kept.

        Raises:
            InvoiceNotFoundError, InvoiceNotEditableError
        """
        with LogContext.bind(owner_id=owner_id, invoice_id=invoice_id):
            invoice = self.get_invoice(owner_id, invoice_id)
            assert_editable(invoice.status_enum)

            calc = calculate([line.to_line_item() for line in draft.lines], draft.tax_options)

            invoice.client_id = draft.client_id
            invoice.issue_date = draft.issue_date
            invoice.due_date = draft.due_date
            invoice.notes = draft.notes or None
            invoice.payment_terms = draft.payment_terms or None
            invoice.apply_tax_options(draft.tax_options)
            invoice.apply_calculation(calc)
            invoice.lines = self._build_lines(draft.lines)
            self._session.flush()

            logger.info("invoice_updated", extra={"gross_total": calc.gross_total})
            return invoice

    def delete_invoice(self, owner_id: UUID, invoice_id: UUID) -> None:
        """
        Delete a DRAFT invoice.  Its number stays consumed.

        Raises:
            InvoiceNotFoundError, InvoiceNotEditableError
        """
        with LogContext.bind(owner_id=owner_id, invoice_id=invoice_id):
            invoice = self.get_invoice(owner_id, invoice_id)
            assert_deletable(invoice.status_enum)

            number = invoice.number
            self._session.delete(invoice)
            self._session.flush()

            logger.info("invoice_deleted", extra={"number": number})

    def change_status(
        self,
        owner_id: UUID,
        invoice_id: UUID,
        new_status: InvoiceStatus | str,
    ) -> StatusChange:
        """
        Move an invoice to ``new_status`` if the transition table allows it.

        Raises:
            InvoiceNotFoundError, InvalidTransitionError
        """
        with LogContext.bind(owner_id=owner_id, invoice_id=invoice_id):
            invoice = self.get_invoice(owner_id, invoice_id)
            previous = invoice.status_enum
            invoice.status = transition(previous, new_status).value
            self._session.flush()

            logger.info(
                "invoice_status_changed",
                extra={"from_status": previous.value, "to_status": invoice.status},
            )
            return StatusChange(invoice=invoice, previous_status=previous)

    def duplicate_invoice(self, owner_id: UUID, invoice_id: UUID) -> Invoice:
        """
        Copy an invoice into a new DRAFT numbered in the current year.

        Issue date is today, due date today + payment days.  Lines, the
        frozen tax snapshot and the stored amounts are copied as-is.
        """
        original = self.get_invoice(owner_id, invoice_id)

        today = self._clock.today()
        allocated = self._allocator.allocate(owner_id, today.year)

        copy = Invoice(
            owner_id=owner_id,
            client_id=original.client_id,
            number=allocated.number,
            year=allocated.year,
            sequence_number=allocated.sequence_number,
            status=InvoiceStatus.DRAFT.value,
            issue_date=today,
            due_date=today + timedelta(days=self._payment_days),
            notes=original.notes,
            payment_terms=original.payment_terms,
        )
        copy.apply_tax_options(original.tax_options)
        copy.apply_calculation(original.calculation)
        copy.lines = [
            InvoiceLine(
                description=line.description,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                amount=line.amount,
                sort_order=line.sort_order,
            )
            for line in original.lines
        ]
        self._session.add(copy)
        self._session.flush()

        logger.info(
            "invoice_created",
            extra={
                "owner_id": str(owner_id),
                "invoice_id": str(copy.id),
                "number": copy.number,
                "duplicated_from": original.number,
            },
        )
        return copy

    def mark_overdue_invoices(self, owner_id: UUID | None = None) -> int:
        """
        Scheduled sweep: SENT invoices past their due date become OVERDUE.

        Each row goes through ``transition(SENT, OVERDUE)``; the sweep has
        no privileged path around the table.

        Returns:
            Number of invoices moved to OVERDUE.
        """
        today = self._clock.today()
        query = (
            select(Invoice)
            .where(
                Invoice.status == InvoiceStatus.SENT.value,
                Invoice.due_date < today,
            )
            .with_for_update()
        )
        if owner_id is not None:
            query = query.where(Invoice.owner_id == owner_id)

        count = 0
        for invoice in self._session.execute(query).scalars():
            invoice.status = transition(invoice.status_enum, InvoiceStatus.OVERDUE).value
            count += 1
        self._session.flush()

        logger.info(
            "overdue_sweep_completed",
            extra={
                "owner_id": str(owner_id) if owner_id else None,
                "as_of": today,
                "count": count,
            },
        )
        return count

    @staticmethod
    def _build_lines(lines: tuple[DraftLine, ...]) -> list[InvoiceLine]:
        built = []
        for index, line in enumerate(lines):
            item = line.to_line_item()
            built.append(
                InvoiceLine(
                    description=line.description,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    amount=item.amount,
                    sort_order=index,
                )
            )
        return built


def issue_invoice(
    session_factory: Callable[[], Session],
    owner_id: UUID,
    draft: InvoiceDraft,
    prefix: str = DEFAULT_PREFIX,
    policy: RetryPolicy | None = None,
    clock: Clock | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Invoice:
    """
    Create an invoice in its own transaction, retrying allocation conflicts.

    Raises:
        AllocationConflictError: If the retry budget is exhausted.
    """
    with LogContext.bind(owner_id=owner_id):
        return run_allocation_unit(
            session_factory,
            lambda session: InvoiceService(session, prefix, clock).create_invoice(owner_id, draft),
            policy=policy,
            sleep=sleep,
        )
