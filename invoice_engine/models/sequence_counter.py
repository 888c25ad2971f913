"""
InvoiceSequenceCounter -- one locked counter row per owner per year.

Invariants enforced:
    - One row per (owner_id, year): UNIQUE constraint.
    - last_value only ever increases, and only through
      InvoiceSequenceAllocator.  Deleting an invoice never touches it.
"""

from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invoice_engine.db.base import Base, UUIDString


class InvoiceSequenceCounter(Base):
    """
    Sequence counter table.

    Each row holds the last invoice sequence number handed out to an owner
    for a calendar year.  Row-level locking serializes allocations.
    """

    __tablename__ = "invoice_sequence_counters"

    __table_args__ = (
        UniqueConstraint("owner_id", "year", name="uq_sequence_owner_year"),
        CheckConstraint("last_value >= 0", name="ck_sequence_non_negative"),
    )

    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Last allocated sequence number (0 = none allocated yet)
    last_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
