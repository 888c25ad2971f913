"""
EngineConfig schema.

Typed, frozen view of the YAML configuration file.  The loader parses the
raw mapping into these types; ``get_active_config()`` returns the root.
Each section validates itself on construction and raises ``ValueError``
with the offending key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from invoice_engine.domain.calculator import TaxOptions
from invoice_engine.domain.formatting import SUPPORTED_LOCALES
from invoice_engine.exceptions import InvalidTaxOptionsError
from invoice_engine.services.allocation_retry import RetryPolicy

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///invoice_engine.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    busy_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"database.max_overflow must be >= 0, got {self.max_overflow}")
        if self.busy_timeout_seconds < 0:
            raise ValueError("database.busy_timeout_seconds must be >= 0")


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumberingConfig:
    prefix: str = "FT"

    def __post_init__(self) -> None:
        if not 1 <= len(self.prefix) <= 10:
            raise ValueError(f"numbering.prefix must be 1..10 characters, got {self.prefix!r}")


# ---------------------------------------------------------------------------
# Tax defaults
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxDefaults:
    """
    Owner-level tax defaults.

    Only used to pre-fill a new invoice; the invoice freezes its own copy
    as TaxOptions at creation.
    """

    iva_rate: Decimal = Decimal("22")
    apply_ritenuta: bool = False
    ritenuta_rate: Decimal = Decimal("20")
    apply_cassa: bool = False
    cassa_rate: Decimal = Decimal("4")
    apply_bollo: bool = False

    def __post_init__(self) -> None:
        # Full range and type checks live in TaxOptions.
        try:
            self.to_tax_options()
        except InvalidTaxOptionsError as e:
            raise ValueError(f"tax_defaults.{e.field}: {e.reason}") from e

    def to_tax_options(self) -> TaxOptions:
        return TaxOptions(
            iva_rate=self.iva_rate,
            apply_ritenuta=self.apply_ritenuta,
            ritenuta_rate=self.ritenuta_rate,
            apply_cassa=self.apply_cassa,
            cassa_rate=self.cassa_rate,
            apply_bollo=self.apply_bollo,
        )


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 5
    initial_backoff_seconds: float = 0.05
    max_backoff_seconds: float = 1.0

    def __post_init__(self) -> None:
        self.to_policy()

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_backoff_seconds=self.initial_backoff_seconds,
            max_backoff_seconds=self.max_backoff_seconds,
        )


# ---------------------------------------------------------------------------
# Invoice defaults
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceDefaults:
    payment_days: int = 30
    locale: str = "it"

    def __post_init__(self) -> None:
        if self.payment_days < 0:
            raise ValueError(f"invoices.payment_days must be >= 0, got {self.payment_days}")
        if self.locale not in SUPPORTED_LOCALES:
            raise ValueError(f"invoices.locale must be one of {SUPPORTED_LOCALES}, got {self.locale!r}")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """The complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    tax_defaults: TaxDefaults = field(default_factory=TaxDefaults)
    retry: RetryConfig = field(default_factory=RetryConfig)
    invoices: InvoiceDefaults = field(default_factory=InvoiceDefaults)
    checksum: str = ""
