"""
Invoice engine domain -- pure functional core.

Nothing in this package performs I/O or imports SQLAlchemy.
"""

from invoice_engine.domain.calculator import (
    BOLLO_AMOUNT_CENTS,
    BOLLO_THRESHOLD_CENTS,
    QUANTITY_MAX_PLACES,
    InvoiceCalculation,
    LineItem,
    TaxOptions,
    calculate,
    requires_bollo,
    round_cents,
)
from invoice_engine.domain.clock import Clock, DeterministicClock, SystemClock
from invoice_engine.domain.fiscal_ids import validate_tax_code, validate_vat_number
from invoice_engine.domain.formatting import (
    DEFAULT_PREFIX,
    SUPPORTED_LOCALES,
    format_currency,
    format_invoice_number,
)
from invoice_engine.domain.lifecycle import (
    INITIAL_STATUS,
    VALID_TRANSITIONS,
    InvoiceStatus,
    allowed_transitions,
    assert_deletable,
    assert_editable,
    can_transition,
    is_editable,
    is_terminal,
    transition,
)

__all__ = [
    "BOLLO_AMOUNT_CENTS",
    "BOLLO_THRESHOLD_CENTS",
    "DEFAULT_PREFIX",
    "INITIAL_STATUS",
    "QUANTITY_MAX_PLACES",
    "SUPPORTED_LOCALES",
    "VALID_TRANSITIONS",
    "Clock",
    "DeterministicClock",
    "InvoiceCalculation",
    "InvoiceStatus",
    "LineItem",
    "SystemClock",
    "TaxOptions",
    "allowed_transitions",
    "assert_deletable",
    "assert_editable",
    "calculate",
    "can_transition",
    "format_currency",
    "format_invoice_number",
    "is_editable",
    "is_terminal",
    "requires_bollo",
    "round_cents",
    "transition",
    "validate_tax_code",
    "validate_vat_number",
]
