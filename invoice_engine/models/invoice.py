"""
Invoice and InvoiceLine ORM models.

The invoice row carries a frozen snapshot of the tax options in force when it
was created and the eight calculated amounts.  Amounts are never recomputed
from live defaults; they change only when a DRAFT invoice is edited.

Invariants enforced:
    - (owner_id, year, sequence_number) is UNIQUE: a number is never issued
      twice, even if the counter were tampered with.
    - status holds an InvoiceStatus value; transitions go through
      invoice_engine.domain.lifecycle.transition().
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_engine.db.base import Base, UUIDString
from invoice_engine.domain.calculator import InvoiceCalculation, TaxOptions
from invoice_engine.domain.lifecycle import InvoiceStatus


class Invoice(Base):
    """An issued (or draft) invoice with its numbering and totals."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "year", "sequence_number", name="uq_invoice_owner_year_seq"
        ),
        Index("idx_invoice_owner_status", "owner_id", "status"),
        Index("idx_invoice_status_due", "status", "due_date"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Numbering
    number: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.DRAFT.value,
    )

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Frozen tax snapshot
    iva_rate: Mapped[Decimal] = mapped_column(nullable=False)
    apply_ritenuta: Mapped[bool] = mapped_column(Boolean, nullable=False)
    ritenuta_rate: Mapped[Decimal] = mapped_column(nullable=False)
    apply_cassa: Mapped[bool] = mapped_column(Boolean, nullable=False)
    cassa_rate: Mapped[Decimal] = mapped_column(nullable=False)
    apply_bollo: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Calculated amounts (cents)
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cassa_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    taxable_base: Mapped[int] = mapped_column(BigInteger, nullable=False)
    iva_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bollo_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gross_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ritenuta_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_payable: Mapped[int] = mapped_column(BigInteger, nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.sort_order",
    )

    @property
    def status_enum(self) -> InvoiceStatus:
        """Return status as InvoiceStatus (normalizes raw DB strings)."""
        return InvoiceStatus(self.status)

    @property
    def tax_options(self) -> TaxOptions:
        """The frozen tax snapshot as a TaxOptions value."""
        return TaxOptions(
            iva_rate=self.iva_rate,
            apply_ritenuta=self.apply_ritenuta,
            ritenuta_rate=self.ritenuta_rate,
            apply_cassa=self.apply_cassa,
            cassa_rate=self.cassa_rate,
            apply_bollo=self.apply_bollo,
        )

    @property
    def calculation(self) -> InvoiceCalculation:
        return InvoiceCalculation(
            subtotal=self.subtotal,
            cassa_amount=self.cassa_amount,
            taxable_base=self.taxable_base,
            iva_amount=self.iva_amount,
            bollo_amount=self.bollo_amount,
            gross_total=self.gross_total,
            ritenuta_amount=self.ritenuta_amount,
            net_payable=self.net_payable,
        )

    def apply_tax_options(self, options: TaxOptions) -> None:
        self.iva_rate = options.iva_rate
        self.apply_ritenuta = options.apply_ritenuta
        self.ritenuta_rate = options.ritenuta_rate
        self.apply_cassa = options.apply_cassa
        self.cassa_rate = options.cassa_rate
        self.apply_bollo = options.apply_bollo

    def apply_calculation(self, calc: InvoiceCalculation) -> None:
        self.subtotal = calc.subtotal
        self.cassa_amount = calc.cassa_amount
        self.taxable_base = calc.taxable_base
        self.iva_amount = calc.iva_amount
        self.bollo_amount = calc.bollo_amount
        self.gross_total = calc.gross_total
        self.ritenuta_amount = calc.ritenuta_amount
        self.net_payable = calc.net_payable

    def __repr__(self) -> str:
        return f"<Invoice {self.number} {self.status}>"


class InvoiceLine(Base):
    """One line of an invoice; amount is stored as calculated."""

    __tablename__ = "invoice_lines"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped[Invoice] = relationship(back_populates="lines")
