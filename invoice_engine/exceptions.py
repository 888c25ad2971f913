"""
Typed Exception Hierarchy for the Invoice Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Invoice numbers and totals are audited by tax authorities and accountants.
Callers (the invoice API, the client service, the overdue scheduler) must be
able to react to failures without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception declares an HTTP_STATUS class (4xx = reject the request,
     5xx = transient infrastructure failure, invite a retry)
  4. Exceptions carry structured DATA (not just a message string)

Fiscal identifier validation is NOT part of this hierarchy: the validators
are total functions returning ``bool``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InvoiceEngineError (base)
    |
    +-- InputValidationError
    |   +-- InvalidLineItemError
    |   +-- InvalidTaxOptionsError
    |   +-- InvalidInvoiceDraftError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- InvoiceNotEditableError
    |
    +-- InvoiceNotFoundError
    |
    +-- SequenceError
        +-- AllocationConflictError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                    | HTTP | When Raised
-------------|-------------------------|------|-------------------------------------
Input        | INVALID_LINE_ITEM       | 400  | Negative quantity / price
             | INVALID_TAX_OPTIONS     | 400  | Rate outside 0..100
             | INVALID_INVOICE_DRAFT   | 400  | No lines, blank description, dates
-------------|-------------------------|------|-------------------------------------
Lifecycle    | INVALID_TRANSITION      | 400  | Pair not in the transition table
             | INVALID_STATUS          | 400  | Edit/delete of a non-DRAFT invoice
-------------|-------------------------|------|-------------------------------------
Lookup       | NOT_FOUND               | 404  | Invoice not found for owner
-------------|-------------------------|------|-------------------------------------
Sequence     | ALLOCATION_CONFLICT     | 503  | Retries exhausted on contention

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        invoice = issue_invoice(session_factory, owner_id, draft)
    except AllocationConflictError as e:
        # Transient: surface a retryable failure, never fabricate a number
        return api_error(e.http_status, e.code, str(e))
    except InputValidationError as e:
        return api_error(e.http_status, e.code, str(e))
"""


class InvoiceEngineError(Exception):
    """
    Base exception for all invoice engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICE_ENGINE_ERROR"
    http_status: int = 500
    retryable: bool = False


# Input validation


class InputValidationError(InvoiceEngineError):
    """Base exception for malformed engine inputs."""

    code: str = "INPUT_VALIDATION_ERROR"
    http_status: int = 400


class InvalidLineItemError(InputValidationError):
    """Line item quantity or unit price is not acceptable."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid line item {field}={value!r}: {reason}")


class InvalidTaxOptionsError(InputValidationError):
    """A tax rate is outside the 0..100 range or not numeric."""

    code: str = "INVALID_TAX_OPTIONS"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid tax option {field}={value!r}: {reason}")


class InvalidInvoiceDraftError(InputValidationError):
    """The invoice draft cannot be persisted as given."""

    code: str = "INVALID_INVOICE_DRAFT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid invoice draft: {reason}")


# Lifecycle


class LifecycleError(InvoiceEngineError):
    """Base exception for invoice status errors."""

    code: str = "LIFECYCLE_ERROR"
    http_status: int = 400


class InvalidTransitionError(LifecycleError):
    """Requested status change is not in the transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot transition from {from_status} to {to_status}")


class InvoiceNotEditableError(LifecycleError):
    """Only DRAFT invoices may be edited or deleted."""

    code: str = "INVALID_STATUS"

    def __init__(self, status: str, action: str):
        self.status = status
        self.action = action
        super().__init__(
            f"Only draft invoices can be {action}; invoice is {status}"
        )


# Lookup


class InvoiceNotFoundError(InvoiceEngineError):
    """Invoice does not exist or belongs to another owner."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


# Sequence allocation


class SequenceError(InvoiceEngineError):
    """Base exception for invoice numbering errors."""

    code: str = "SEQUENCE_ERROR"


class AllocationConflictError(SequenceError):
    """
    Allocation kept conflicting with concurrent writers until the retry
    budget ran out.

    Transient: the caller may retry the whole request. No number was
    consumed by the failed attempts.
    """

    code: str = "ALLOCATION_CONFLICT"
    http_status: int = 503
    retryable: bool = True

    def __init__(self, attempts: int, last_error: str):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Invoice number allocation failed after {attempts} attempt(s): "
            f"{last_error}"
        )
