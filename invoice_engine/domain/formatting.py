"""
Formatting -- invoice numbers and EUR display strings.

Both renderings are consumed downstream (PDF, CSV, UI) and must stay stable:
the number format is part of the legal record, and currency display always
starts from the integer cent value.
"""

from __future__ import annotations

DEFAULT_PREFIX = "FT"

_NBSP = " "

# locale -> (group separator, decimal separator)
_SEPARATORS: dict[str, tuple[str, str]] = {
    "it": (".", ","),
    "en": (",", "."),
}

SUPPORTED_LOCALES = tuple(_SEPARATORS)


def format_invoice_number(sequence_number: int, year: int, prefix: str = DEFAULT_PREFIX) -> str:
    """Render ``<prefix>-<sequence_number>/<year>``, e.g. ``FT-3/2026``."""
    return f"{prefix}-{sequence_number}/{year}"


def format_currency(cents: int, locale: str = "it") -> str:
    """
    Format an amount in cents as EUR with exactly two decimals.

    ``it`` renders ``1.234,50 €``; ``en`` renders ``€1,234.50``.

    Raises:
        ValueError: If the locale is not supported.
    """
    try:
        group, decimal = _SEPARATORS[locale]
    except KeyError:
        raise ValueError(f"Unsupported locale: {locale!r}") from None

    sign = "-" if cents < 0 else ""
    units, fraction = divmod(abs(cents), 100)
    digits = f"{units:,}".replace(",", group)
    amount = f"{digits}{decimal}{fraction:02d}"

    if locale == "it":
        return f"{sign}{amount}{_NBSP}€"
    return f"{sign}€{amount}"
