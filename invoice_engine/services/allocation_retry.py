"""
Allocation retry -- bounded retry of the read-compute-write numbering unit.

Responsibility:
    Runs a unit of work that allocates an invoice number (and usually
    persists the invoice) in its own transaction, retrying the WHOLE unit
    when the database reports a transient conflict with a concurrent writer.

Architecture position:
    Engine > Services -- imperative shell.  Wraps InvoiceSequenceAllocator
    and InvoiceService for callers that own no transaction of their own
    (API handlers, the scheduler).

Invariants enforced:
    - A failed attempt is rolled back in full, so it never consumes a number.
    - Only transient errors are retried: serialization failures (40001),
      deadlocks (40P01), lock timeouts (55P03) and SQLite "database is
      locked".  Anything else propagates on the first attempt.
    - The retry budget is finite (RetryPolicy.max_attempts).

Failure modes:
    - AllocationConflictError (retryable, HTTP 503) once the budget is
      exhausted.  Never a duplicate or skipped number.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from invoice_engine.domain.formatting import DEFAULT_PREFIX
from invoice_engine.exceptions import AllocationConflictError
from invoice_engine.logging_config import get_logger
from invoice_engine.services.sequence_service import AllocatedNumber, InvoiceSequenceAllocator

logger = get_logger("services.allocation_retry")

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_TRANSIENT_PGCODES = frozenset({"40001", "40P01", "55P03"})

_TRANSIENT_MESSAGES = (
    "database is locked",
    "deadlock detected",
    "could not serialize access",
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff for allocation conflicts."""

    max_attempts: int = 5
    initial_backoff_seconds: float = 0.05
    max_backoff_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_backoff_seconds < 0 or self.max_backoff_seconds < 0:
            raise ValueError("backoff must be non-negative")

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
        return min(
            self.max_backoff_seconds,
            self.initial_backoff_seconds * (2 ** (attempt - 1)),
        )


def is_transient_db_error(exc: BaseException) -> bool:
    """True if ``exc`` is a conflict that a fresh transaction may not hit."""
    if not isinstance(exc, DBAPIError):
        return False
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _TRANSIENT_PGCODES:
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in _TRANSIENT_MESSAGES)
    return False


def run_allocation_unit(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``work(session)`` in a fresh transaction, retrying on conflicts.

    ``work`` must be safe to run more than once: each attempt starts from a
    clean session and everything it did in a failed attempt is rolled back.

    Returns:
        Whatever ``work`` returns from the committed attempt.

    Raises:
        AllocationConflictError: If every attempt hit a transient conflict.
    """
    policy = policy or RetryPolicy()
    last_error: DBAPIError | None = None

    for attempt in range(1, policy.max_attempts + 1):
        session = session_factory()
        try:
            with session.begin():
                return work(session)
        except DBAPIError as exc:
            if not is_transient_db_error(exc):
                raise
            last_error = exc
            if attempt < policy.max_attempts:
                delay = policy.backoff(attempt)
                logger.warning(
                    "allocation_conflict_retry",
                    extra={
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "backoff_seconds": delay,
                        "error": str(exc.orig),
                    },
                )
                sleep(delay)
        finally:
            session.close()

    logger.error(
        "allocation_retries_exhausted",
        extra={"attempts": policy.max_attempts, "error": str(last_error.orig)},
    )
    raise AllocationConflictError(policy.max_attempts, str(last_error.orig)) from last_error


def allocate_number(
    session_factory: Callable[[], Session],
    owner_id: UUID,
    year: int,
    prefix: str = DEFAULT_PREFIX,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AllocatedNumber:
    """Allocate one number in its own committed transaction."""
    return run_allocation_unit(
        session_factory,
        lambda session: InvoiceSequenceAllocator(session, prefix).allocate(owner_id, year),
        policy=policy,
        sleep=sleep,
    )
