"""
Fiscal identifiers -- Partita IVA and Codice Fiscale validation.

Responsibility:
    Total predicates over strings used whenever a client or business profile
    is created or edited.

Architecture position:
    Engine > Domain -- pure functional core, zero I/O, no dependencies.

Invariants enforced:
    - Validators never raise: any input, including non-strings, yields a bool.
    - Company tax codes (11 digits) share the Partita IVA checksum.

Failure modes:
    None. Malformed input returns False.

Audit relevance:
    Personal tax codes are validated for FORMAT ONLY. The official control
    character (16th position) is not recomputed; this matches the behaviour
    of the system of record so both agree on what is accepted.
"""

from __future__ import annotations

import re

_VAT_PATTERN = re.compile(r"\d{11}", re.ASCII)

# 6 letters (surname+name), 2 digits (year), month letter, 2 digits (day),
# cadastral code (letter + 3 digits), control letter.
_PERSONAL_TAX_CODE_PATTERN = re.compile(
    r"[A-Z]{6}\d{2}[ABCDEHLMPRST]\d{2}[A-Z]\d{3}[A-Z]",
    re.ASCII | re.IGNORECASE,
)


def validate_vat_number(value: object) -> bool:
    """
    Validate an Italian Partita IVA (11 digits, Luhn-style checksum).

    Digits at even (0-based) positions are added as-is; digits at odd
    positions are doubled, minus 9 when the double exceeds 9. The number is
    valid when the sum is a multiple of 10, so ``"00000000000"`` passes.
    """
    if not isinstance(value, str) or not _VAT_PATTERN.fullmatch(value):
        return False

    total = 0
    for position, char in enumerate(value):
        digit = int(char)
        if position % 2 == 0:
            total += digit
        else:
            doubled = digit * 2
            total += doubled - 9 if doubled > 9 else doubled
    return total % 10 == 0


def validate_tax_code(value: object) -> bool:
    """
    Validate an Italian Codice Fiscale, case-insensitively.

    An 11-digit code is a company code and uses the Partita IVA checksum.
    Anything else must match the 16-character personal format.
    """
    if not isinstance(value, str):
        return False
    if _VAT_PATTERN.fullmatch(value):
        return validate_vat_number(value)
    return _PERSONAL_TAX_CODE_PATTERN.fullmatch(value) is not None
