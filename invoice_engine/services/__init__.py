"""Services -- stateful operations that touch the database."""

from invoice_engine.services.allocation_retry import (
    RetryPolicy,
    allocate_number,
    is_transient_db_error,
    run_allocation_unit,
)
from invoice_engine.services.invoice_service import (
    DraftLine,
    InvoiceDraft,
    InvoiceService,
    StatusChange,
    issue_invoice,
)
from invoice_engine.services.sequence_service import AllocatedNumber, InvoiceSequenceAllocator

__all__ = [
    "AllocatedNumber",
    "DraftLine",
    "InvoiceDraft",
    "InvoiceSequenceAllocator",
    "InvoiceService",
    "RetryPolicy",
    "StatusChange",
    "allocate_number",
    "is_transient_db_error",
    "issue_invoice",
    "run_allocation_unit",
]
