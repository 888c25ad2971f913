"""
Tests for InvoiceService.

Verifies:
- Creation calculates totals, allocates a number and freezes tax options
- Only DRAFT invoices are edited or deleted
- Deleted numbers are never reused
- Status changes go through the transition table
- Duplication numbers the copy in the current year
- The overdue sweep only moves SENT invoices past their due date
- issue_invoice commits in its own transaction
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from invoice_engine.domain.calculator import LineItem, TaxOptions
from invoice_engine.domain.lifecycle import InvoiceStatus
from invoice_engine.exceptions import (
    InvalidInvoiceDraftError,
    InvalidLineItemError,
    InvalidTransitionError,
    InvoiceNotEditableError,
    InvoiceNotFoundError,
)
from invoice_engine.logging_config import LogContext
from invoice_engine.models.invoice import Invoice
from invoice_engine.services.invoice_service import (
    DraftLine,
    InvoiceDraft,
    InvoiceService,
    issue_invoice,
)


@pytest.fixture
def service(session, clock):
    return InvoiceService(session, clock=clock)


def _send(service, owner_id, invoice):
    return service.change_status(owner_id, invoice.id, InvoiceStatus.SENT).invoice


class TestInvoiceDraft:
    def test_requires_lines(self, default_tax_options):
        with pytest.raises(InvalidInvoiceDraftError, match="at least one line"):
            InvoiceDraft(
                issue_date=date(2026, 1, 15),
                due_date=date(2026, 2, 14),
                lines=(),
                tax_options=default_tax_options,
            )

    def test_blank_description_rejected(self, make_draft):
        with pytest.raises(InvalidInvoiceDraftError, match="line 0"):
            make_draft(lines=(DraftLine("  ", Decimal("1"), 100),))

    def test_due_date_before_issue_date_rejected(self, make_draft):
        with pytest.raises(InvalidInvoiceDraftError, match="due date"):
            make_draft(issue_date=date(2026, 3, 1), due_date=date(2026, 2, 1))

    def test_lines_become_a_tuple(self, make_draft):
        draft = make_draft(lines=[DraftLine("Design", Decimal("1"), 100)])
        assert isinstance(draft.lines, tuple)


class TestCreateInvoice:
    def test_creates_numbered_draft_with_totals(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())

        assert invoice.number == "FT-1/2026"
        assert invoice.year == 2026
        assert invoice.sequence_number == 1
        assert invoice.status_enum is InvoiceStatus.DRAFT
        assert invoice.subtotal == 10000
        assert invoice.iva_amount == 2200
        assert invoice.gross_total == 12200
        assert invoice.net_payable == 12200

    def test_lines_are_persisted_in_order(self, service, owner_id, make_draft):
        draft = make_draft(
            lines=(
                DraftLine("Analysis", Decimal("2"), 5000),
                DraftLine("Development", Decimal("1.5"), 4000),
            )
        )

        invoice = service.create_invoice(owner_id, draft)

        assert [line.description for line in invoice.lines] == ["Analysis", "Development"]
        assert [line.amount for line in invoice.lines] == [10000, 6000]
        assert [line.sort_order for line in invoice.lines] == [0, 1]
        assert invoice.subtotal == 16000

    def test_stored_line_recomputes_to_stored_amount(
        self, session_factory, clock, owner_id, make_draft
    ):
        draft = make_draft(lines=(DraftLine("Hosting", Decimal("1.123456789"), 100000),))
        with session_factory() as sess:
            with sess.begin():
                invoice_id = InvoiceService(sess, clock=clock).create_invoice(owner_id, draft).id

        with session_factory() as sess:
            (line,) = sess.get(Invoice, invoice_id).lines

        assert line.quantity == Decimal("1.123456789")
        assert LineItem(line.quantity, line.unit_price_cents).amount == line.amount == 112346

    def test_quantity_beyond_stored_scale_rejected(self, service, owner_id, make_draft):
        draft = make_draft(lines=(DraftLine("Hosting", Decimal("1.1234567891"), 100000),))

        with pytest.raises(InvalidLineItemError):
            service.create_invoice(owner_id, draft)

    def test_year_comes_from_issue_date(self, service, owner_id, make_draft):
        invoice = service.create_invoice(
            owner_id, make_draft(issue_date=date(2025, 12, 31), due_date=date(2026, 1, 30))
        )
        assert invoice.number == "FT-1/2025"

    def test_tax_options_are_frozen_on_the_invoice(self, service, owner_id, make_draft):
        options = TaxOptions(
            iva_rate=Decimal("22"),
            apply_ritenuta=True,
            ritenuta_rate=Decimal("20"),
            apply_cassa=True,
            cassa_rate=Decimal("4"),
            apply_bollo=False,
        )

        invoice = service.create_invoice(owner_id, make_draft(tax_options=options))

        assert invoice.tax_options == options
        assert invoice.cassa_amount == 400
        assert invoice.ritenuta_amount == 2080
        assert invoice.net_payable == 12688 - 2080

    def test_consecutive_numbers(self, service, owner_id, make_draft):
        numbers = [service.create_invoice(owner_id, make_draft()).number for _ in range(3)]
        assert numbers == ["FT-1/2026", "FT-2/2026", "FT-3/2026"]

    def test_custom_prefix(self, session, clock, owner_id, make_draft):
        invoice = InvoiceService(session, prefix="PA", clock=clock).create_invoice(
            owner_id, make_draft()
        )
        assert invoice.number == "PA-1/2026"

    def test_creation_is_logged(self, service, owner_id, make_draft, captured_logs):
        invoice = service.create_invoice(owner_id, make_draft())

        records = [r for r in captured_logs() if r["message"] == "invoice_created"]
        assert len(records) == 1
        assert records[0]["number"] == invoice.number
        assert records[0]["gross_total"] == 12200


class TestReads:
    def test_get_invoice(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())
        assert service.get_invoice(owner_id, invoice.id) is invoice

    def test_get_invoice_of_another_owner(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())

        with pytest.raises(InvoiceNotFoundError):
            service.get_invoice(uuid4(), invoice.id)

    def test_get_missing_invoice(self, service, owner_id):
        with pytest.raises(InvoiceNotFoundError) as exc_info:
            service.get_invoice(owner_id, uuid4())
        assert exc_info.value.http_status == 404

    def test_next_invoice_number_uses_clock_year(self, service, owner_id, make_draft):
        assert service.next_invoice_number(owner_id).number == "FT-1/2026"

        service.create_invoice(owner_id, make_draft())

        assert service.next_invoice_number(owner_id).number == "FT-2/2026"
        assert service.next_invoice_number(owner_id, 2027).number == "FT-1/2027"


class TestUpdateInvoice:
    def test_draft_is_recalculated(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())

        updated = service.update_invoice(
            owner_id,
            invoice.id,
            make_draft(lines=(DraftLine("Training", Decimal("3"), 20000),), notes="Q1"),
        )

        assert updated.number == "FT-1/2026"
        assert updated.subtotal == 60000
        assert updated.iva_amount == 13200
        assert updated.notes == "Q1"
        assert [line.description for line in updated.lines] == ["Training"]

    def test_sent_invoice_cannot_be_edited(self, service, owner_id, make_draft):
        invoice = _send(service, owner_id, service.create_invoice(owner_id, make_draft()))

        with pytest.raises(InvoiceNotEditableError) as exc_info:
            service.update_invoice(owner_id, invoice.id, make_draft())
        assert exc_info.value.code == "INVALID_STATUS"

    def test_update_is_logged_with_invoice_context(
        self, service, owner_id, make_draft, captured_logs
    ):
        invoice = service.create_invoice(owner_id, make_draft())
        service.update_invoice(owner_id, invoice.id, make_draft())

        records = [r for r in captured_logs() if r["message"] == "invoice_updated"]
        assert records[-1]["invoice_id"] == str(invoice.id)
        assert records[-1]["owner_id"] == str(owner_id)
        assert records[-1]["gross_total"] == 12200


class TestDeleteInvoice:
    def test_deleted_number_is_not_reused(self, session, service, owner_id, make_draft):
        first = service.create_invoice(owner_id, make_draft())
        first_id = first.id

        service.delete_invoice(owner_id, first_id)
        second = service.create_invoice(owner_id, make_draft())

        assert session.get(Invoice, first_id) is None
        assert second.number == "FT-2/2026"

    def test_only_drafts_are_deleted(self, service, owner_id, make_draft):
        invoice = _send(service, owner_id, service.create_invoice(owner_id, make_draft()))

        with pytest.raises(InvoiceNotEditableError, match="deleted"):
            service.delete_invoice(owner_id, invoice.id)

    def test_delete_is_logged(self, service, owner_id, make_draft, captured_logs):
        invoice = service.create_invoice(owner_id, make_draft())
        service.delete_invoice(owner_id, invoice.id)

        assert any(
            r["message"] == "invoice_deleted" and r["number"] == "FT-1/2026"
            and r["invoice_id"] == str(invoice.id)
            for r in captured_logs()
        )


class TestChangeStatus:
    def test_happy_path_to_paid(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())

        sent = service.change_status(owner_id, invoice.id, InvoiceStatus.SENT)
        paid = service.change_status(owner_id, invoice.id, "PAID")

        assert sent.previous_status is InvoiceStatus.DRAFT
        assert sent.new_status is InvoiceStatus.SENT
        assert paid.previous_status is InvoiceStatus.SENT
        assert paid.invoice.status == "PAID"

    def test_illegal_transition_leaves_status(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())

        with pytest.raises(InvalidTransitionError):
            service.change_status(owner_id, invoice.id, InvoiceStatus.PAID)

        assert service.get_invoice(owner_id, invoice.id).status == "DRAFT"

    def test_cancelled_invoice_returns_to_draft_and_keeps_number(
        self, service, owner_id, make_draft
    ):
        invoice = service.create_invoice(owner_id, make_draft())
        service.change_status(owner_id, invoice.id, InvoiceStatus.CANCELLED)

        change = service.change_status(owner_id, invoice.id, InvoiceStatus.DRAFT)

        assert change.new_status is InvoiceStatus.DRAFT
        assert change.invoice.number == "FT-1/2026"

    def test_status_change_is_logged(self, service, owner_id, make_draft, captured_logs):
        invoice = service.create_invoice(owner_id, make_draft())
        service.change_status(owner_id, invoice.id, InvoiceStatus.SENT)

        records = [r for r in captured_logs() if r["message"] == "invoice_status_changed"]
        assert records[-1]["from_status"] == "DRAFT"
        assert records[-1]["to_status"] == "SENT"
        assert records[-1]["invoice_id"] == str(invoice.id)
        assert records[-1]["owner_id"] == str(owner_id)

    def test_invoice_context_is_bound_only_for_the_call(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())
        service.change_status(owner_id, invoice.id, InvoiceStatus.SENT)

        assert LogContext.get_all() == {}

    def test_context_is_restored_after_failed_transition(self, service, owner_id, make_draft):
        invoice = service.create_invoice(owner_id, make_draft())
        with pytest.raises(InvalidTransitionError):
            service.change_status(owner_id, invoice.id, InvoiceStatus.PAID)

        assert LogContext.get_all() == {}


class TestDuplicateInvoice:
    def test_copy_is_a_new_draft_in_current_year(self, service, owner_id, make_draft, clock):
        original = service.create_invoice(
            owner_id,
            make_draft(
                issue_date=date(2025, 11, 3),
                due_date=date(2025, 12, 3),
                lines=(DraftLine("Hosting", Decimal("12"), 1500),),
                notes="Annual",
            ),
        )
        _send(service, owner_id, original)

        copy = service.duplicate_invoice(owner_id, original.id)

        assert copy.id != original.id
        assert copy.number == "FT-1/2026"
        assert copy.status_enum is InvoiceStatus.DRAFT
        assert copy.issue_date == clock.today()
        assert copy.due_date == date(2026, 2, 14)
        assert copy.notes == "Annual"
        assert copy.subtotal == original.subtotal == 18000
        assert copy.gross_total == original.gross_total
        assert [(line.description, line.amount) for line in copy.lines] == [("Hosting", 18000)]

    def test_payment_days_drive_due_date(self, session, clock, owner_id, make_draft):
        service = InvoiceService(session, clock=clock, payment_days=60)
        original = service.create_invoice(owner_id, make_draft())

        copy = service.duplicate_invoice(owner_id, original.id)

        assert copy.due_date == date(2026, 3, 16)
        assert copy.number == "FT-2/2026"


class TestMarkOverdueInvoices:
    def test_only_sent_past_due_invoices_move(self, service, owner_id, make_draft, clock):
        past_due = dict(issue_date=date(2026, 1, 1), due_date=date(2026, 1, 10))
        sent_late = _send(service, owner_id, service.create_invoice(owner_id, make_draft(**past_due)))
        draft_late = service.create_invoice(owner_id, make_draft(**past_due))
        sent_on_time = _send(
            service,
            owner_id,
            service.create_invoice(
                owner_id, make_draft(issue_date=date(2026, 1, 1), due_date=clock.today())
            ),
        )
        paid_late = _send(service, owner_id, service.create_invoice(owner_id, make_draft(**past_due)))
        service.change_status(owner_id, paid_late.id, InvoiceStatus.PAID)

        moved = service.mark_overdue_invoices()

        assert moved == 1
        assert service.get_invoice(owner_id, sent_late.id).status == "OVERDUE"
        assert service.get_invoice(owner_id, draft_late.id).status == "DRAFT"
        assert service.get_invoice(owner_id, sent_on_time.id).status == "SENT"
        assert service.get_invoice(owner_id, paid_late.id).status == "PAID"

    def test_sweep_is_idempotent(self, service, owner_id, make_draft):
        invoice = service.create_invoice(
            owner_id, make_draft(issue_date=date(2026, 1, 1), due_date=date(2026, 1, 2))
        )
        _send(service, owner_id, invoice)

        assert service.mark_overdue_invoices() == 1
        assert service.mark_overdue_invoices() == 0

    def test_sweep_can_be_scoped_to_owner(self, service, owner_id, make_draft, captured_logs):
        other_owner = uuid4()
        past_due = dict(issue_date=date(2026, 1, 1), due_date=date(2026, 1, 2))
        mine = _send(service, owner_id, service.create_invoice(owner_id, make_draft(**past_due)))
        theirs = _send(
            service, other_owner, service.create_invoice(other_owner, make_draft(**past_due))
        )

        assert service.mark_overdue_invoices(owner_id) == 1

        assert service.get_invoice(owner_id, mine.id).status == "OVERDUE"
        assert service.get_invoice(other_owner, theirs.id).status == "SENT"
        summary = [r for r in captured_logs() if r["message"] == "overdue_sweep_completed"]
        assert summary[-1]["count"] == 1

    def test_overdue_invoice_can_still_be_paid(self, service, owner_id, make_draft):
        invoice = service.create_invoice(
            owner_id, make_draft(issue_date=date(2026, 1, 1), due_date=date(2026, 1, 2))
        )
        _send(service, owner_id, invoice)
        service.mark_overdue_invoices()

        change = service.change_status(owner_id, invoice.id, InvoiceStatus.PAID)

        assert change.previous_status is InvoiceStatus.OVERDUE


class TestIssueInvoice:
    def test_commits_in_own_transaction(self, session_factory, owner_id, make_draft, clock):
        invoice = issue_invoice(session_factory, owner_id, make_draft(), clock=clock)

        with session_factory() as sess:
            stored = InvoiceService(sess, clock=clock).get_invoice(owner_id, invoice.id)
            assert stored.number == "FT-1/2026"
            assert stored.gross_total == 12200
            assert len(stored.lines) == 1

    def test_numbers_follow_each_other(self, session_factory, owner_id, make_draft):
        numbers = [
            issue_invoice(session_factory, owner_id, make_draft(), prefix="FT").number
            for _ in range(3)
        ]
        assert numbers == ["FT-1/2026", "FT-2/2026", "FT-3/2026"]
