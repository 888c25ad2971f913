"""
Lifecycle -- Invoice status state machine.

Responsibility:
    Defines the invoice statuses, the table of legal transitions, and the
    DRAFT-only editing guard. Every status change, user-triggered or the
    scheduled overdue sweep, goes through ``transition()``.

Architecture position:
    Engine > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - New invoices start in DRAFT.
    - Only pairs listed in VALID_TRANSITIONS are legal; self-transitions are
      not.
    - PAID is the only terminal status. CANCELLED is recoverable through
      CANCELLED -> DRAFT.
    - Only DRAFT invoices may have lines/tax options edited or be deleted.

Failure modes:
    - InvalidTransitionError: pair not in the table, or unknown status.
    - InvoiceNotEditableError: edit/delete requested on a non-DRAFT invoice.
"""

from __future__ import annotations

from enum import Enum, unique

from invoice_engine.exceptions import InvalidTransitionError, InvoiceNotEditableError


@unique
class InvoiceStatus(str, Enum):
    """Status of an invoice."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


INITIAL_STATUS = InvoiceStatus.DRAFT

# Allowed status transitions (from -> set of valid targets)
VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    # Terminal
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset({InvoiceStatus.DRAFT}),
}


def _coerce(status: InvoiceStatus | str) -> InvoiceStatus | None:
    if isinstance(status, InvoiceStatus):
        return status
    try:
        return InvoiceStatus(status)
    except ValueError:
        return None


def _label(status: InvoiceStatus | str) -> str:
    return status.value if isinstance(status, InvoiceStatus) else str(status)


def allowed_transitions(status: InvoiceStatus | str) -> frozenset[InvoiceStatus]:
    """Targets reachable from ``status`` (empty for unknown statuses)."""
    current = _coerce(status)
    if current is None:
        return frozenset()
    return VALID_TRANSITIONS[current]


def can_transition(current: InvoiceStatus | str, requested: InvoiceStatus | str) -> bool:
    """Check if a status transition is valid."""
    target = _coerce(requested)
    return target is not None and target in allowed_transitions(current)


def transition(
    current: InvoiceStatus | str,
    requested: InvoiceStatus | str,
) -> InvoiceStatus:
    """
    Validate a status change and return the new status.

    The caller persists the returned status; nothing is mutated here.

    Raises:
        InvalidTransitionError: If ``current -> requested`` is not legal.
    """
    if not can_transition(current, requested):
        raise InvalidTransitionError(_label(current), _label(requested))
    return InvoiceStatus(requested)


def is_terminal(status: InvoiceStatus | str) -> bool:
    current = _coerce(status)
    return current is not None and not VALID_TRANSITIONS[current]


def is_editable(status: InvoiceStatus | str) -> bool:
    return _coerce(status) is InvoiceStatus.DRAFT


def assert_editable(status: InvoiceStatus | str) -> None:
    if not is_editable(status):
        raise InvoiceNotEditableError(_label(status), "edited")


def assert_deletable(status: InvoiceStatus | str) -> None:
    if not is_editable(status):
        raise InvoiceNotEditableError(_label(status), "deleted")
