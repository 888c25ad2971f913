"""ORM models for the invoice engine."""

from invoice_engine.models.invoice import Invoice, InvoiceLine
from invoice_engine.models.sequence_counter import InvoiceSequenceCounter

__all__ = [
    "Invoice",
    "InvoiceLine",
    "InvoiceSequenceCounter",
]
