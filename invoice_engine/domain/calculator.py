"""
Calculator -- Invoice totals in integer cents.

Responsibility:
    Computes every monetary field of an invoice (subtotal, cassa
    previdenziale, taxable base, IVA, bollo, gross total, ritenuta d'acconto,
    net payable) from its line items and a frozen snapshot of tax options.

Architecture position:
    Engine > Domain -- pure functional core, zero I/O.
    Called by InvoiceService on create/update; safe from any thread.

Invariants enforced:
    - Money is an ``int`` number of cents. No float is ever involved: inputs
      are coerced to ``Decimal`` and every product is exact.
    - Each derived field is rounded ONCE from its own formula with
      round-half-away-from-zero (``ROUND_HALF_UP`` on Decimal).
    - taxable_base = subtotal + cassa_amount
    - gross_total  = taxable_base + iva_amount + bollo_amount
    - net_payable  = gross_total - ritenuta_amount
    - Ritenuta is computed on the taxable base (subtotal + cassa), never on
      the gross total: withholding excludes IVA.

Failure modes:
    - InvalidLineItemError at LineItem construction (negative quantity,
      negative or fractional unit price, too many quantity decimals).
    - InvalidTaxOptionsError at TaxOptions construction (rate outside 0..100).
    ``calculate`` itself never raises for constructed inputs.

Audit relevance:
    Totals must be bit-exact reproducible from the stored line items and
    tax snapshot. Identical inputs always produce identical outputs.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from invoice_engine.exceptions import InvalidLineItemError, InvalidTaxOptionsError

# Bollo virtuale: flat EUR 2.00 stamp duty
BOLLO_AMOUNT_CENTS = 200

# Stamp duty is due on IVA-exempt invoices above EUR 77.47
BOLLO_THRESHOLD_CENTS = 7747

# Quantities are stored as NUMERIC(38, 9)
QUANTITY_MAX_PLACES = 9

_HUNDRED = Decimal(100)


def round_cents(value: Decimal) -> int:
    """Round a Decimal to whole cents, ties away from zero."""
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def _percent_of(amount: int, rate: Decimal) -> int:
    return round_cents(Decimal(amount) * rate / _HUNDRED)


def _to_decimal(value: Decimal | int | str | float) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"boolean is not a number: {value!r}")
    # str() first so a float such as 1.5 becomes Decimal("1.5"), not its binary expansion
    return Decimal(str(value))


def _decimal_places(value: Decimal) -> int:
    """Significant digits after the point; trailing zeros do not count."""
    if value.is_zero():
        return 0
    _, digits, exponent = value.as_tuple()
    trailing_zeros = len(digits) - len("".join(map(str, digits)).rstrip("0"))
    return max(-exponent - trailing_zeros, 0)


@dataclass(frozen=True, slots=True)
class LineItem:
    """
    One invoice line as seen by the calculator.

    Guarantees:
        - quantity is a finite Decimal >= 0 (fractional hours allowed) with
          at most QUANTITY_MAX_PLACES decimal places
        - unit_price_cents is an int >= 0
    """

    quantity: Decimal
    unit_price_cents: int

    def __post_init__(self) -> None:
        try:
            quantity = _to_decimal(self.quantity)
        except (InvalidOperation, ValueError) as e:
            raise InvalidLineItemError("quantity", self.quantity, "not a number") from e
        if not quantity.is_finite():
            raise InvalidLineItemError("quantity", self.quantity, "must be finite")
        if quantity < 0:
            raise InvalidLineItemError("quantity", self.quantity, "must be >= 0")
        if _decimal_places(quantity) > QUANTITY_MAX_PLACES:
            raise InvalidLineItemError(
                "quantity", self.quantity, f"at most {QUANTITY_MAX_PLACES} decimal places"
            )
        object.__setattr__(self, "quantity", quantity)

        price = self.unit_price_cents
        if isinstance(price, bool) or not isinstance(price, int):
            raise InvalidLineItemError(
                "unit_price_cents", price, "must be an integer number of cents"
            )
        if price < 0:
            raise InvalidLineItemError("unit_price_cents", price, "must be >= 0")

    @property
    def amount(self) -> int:
        """Line amount in cents: round(quantity * unit_price_cents)."""
        return round_cents(self.quantity * self.unit_price_cents)


@dataclass(frozen=True, slots=True)
class TaxOptions:
    """
    Fiscal choices frozen onto an invoice at creation time.

    Rates are percentages in 0..100 (22 means 22%). There is no "IVA
    disabled" flag: an exempt invoice has ``iva_rate == 0``.
    """

    iva_rate: Decimal
    apply_ritenuta: bool
    ritenuta_rate: Decimal
    apply_cassa: bool
    cassa_rate: Decimal
    apply_bollo: bool

    def __post_init__(self) -> None:
        for name in ("iva_rate", "ritenuta_rate", "cassa_rate"):
            raw = getattr(self, name)
            try:
                rate = _to_decimal(raw)
            except (InvalidOperation, ValueError) as e:
                raise InvalidTaxOptionsError(name, raw, "not a number") from e
            if not rate.is_finite() or rate < 0 or rate > _HUNDRED:
                raise InvalidTaxOptionsError(name, raw, "must be between 0 and 100")
            object.__setattr__(self, name, rate)
        for name in ("apply_ritenuta", "apply_cassa", "apply_bollo"):
            if not isinstance(getattr(self, name), bool):
                raise InvalidTaxOptionsError(name, getattr(self, name), "must be a boolean")


@dataclass(frozen=True, slots=True)
class InvoiceCalculation:
    """All monetary fields of an invoice, in cents."""

    subtotal: int
    cassa_amount: int
    taxable_base: int
    iva_amount: int
    bollo_amount: int
    gross_total: int
    ritenuta_amount: int
    net_payable: int

    @classmethod
    def zero(cls) -> InvoiceCalculation:
        return cls(0, 0, 0, 0, 0, 0, 0, 0)


def calculate(items: Iterable[LineItem], options: TaxOptions) -> InvoiceCalculation:
    """
    Compute invoice totals.

    Each step rounds immediately to cents; later steps build on the rounded
    values, never on unrounded intermediates.

    Args:
        items: Line items (may be empty).
        options: Fully resolved tax options.

    Returns:
        InvoiceCalculation with all fields as ints.
    """
    subtotal = sum((item.amount for item in items), 0)

    cassa_amount = _percent_of(subtotal, options.cassa_rate) if options.apply_cassa else 0
    taxable_base = subtotal + cassa_amount

    iva_amount = _percent_of(taxable_base, options.iva_rate)
    bollo_amount = BOLLO_AMOUNT_CENTS if options.apply_bollo else 0
    gross_total = taxable_base + iva_amount + bollo_amount

    ritenuta_amount = (
        _percent_of(taxable_base, options.ritenuta_rate) if options.apply_ritenuta else 0
    )
    net_payable = gross_total - ritenuta_amount

    return InvoiceCalculation(
        subtotal=subtotal,
        cassa_amount=cassa_amount,
        taxable_base=taxable_base,
        iva_amount=iva_amount,
        bollo_amount=bollo_amount,
        gross_total=gross_total,
        ritenuta_amount=ritenuta_amount,
        net_payable=net_payable,
    )


def requires_bollo(taxable_base: int, iva_rate: Decimal | int | str) -> bool:
    """
    Whether the flat stamp duty is due: IVA-exempt and above EUR 77.47.

    Advisory only; ``calculate`` applies bollo strictly from ``apply_bollo``.
    """
    return _to_decimal(iva_rate) == 0 and taxable_base > BOLLO_THRESHOLD_CENTS
