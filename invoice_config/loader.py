"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Reads the YAML configuration file and parses it into the frozen
``invoice_config.schema`` dataclasses.  Callers should go through
``invoice_config.get_active_config()``, which also applies environment
overrides and emits the audit trace.

Invariants enforced
-------------------
* Unknown top-level sections and unknown keys inside a section raise
  ``ValueError``; a typo never silently falls back to a default.
* ``compute_checksum`` is deterministic for equal mappings.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema constructors.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import (
    DatabaseConfig,
    EngineConfig,
    InvoiceDefaults,
    NumberingConfig,
    RetryConfig,
    TaxDefaults,
)

_SECTIONS = {
    "database": DatabaseConfig,
    "numbering": NumberingConfig,
    "tax_defaults": TaxDefaults,
    "retry": RetryConfig,
    "invoices": InvoiceDefaults,
}

_DECIMAL_FIELDS = frozenset({"iva_rate", "ritenuta_rate", "cassa_rate"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping in {path}")
    return data


def _parse_section(name: str, data: Any) -> Any:
    section_type = _SECTIONS[name]
    if data is None:
        return section_type()
    if not isinstance(data, dict):
        raise ValueError(f"Configuration section {name!r} must be a mapping")

    known = section_type.__dataclass_fields__.keys()
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown keys in {name!r}: {', '.join(unknown)}")

    kwargs = {
        key: Decimal(str(value)) if key in _DECIMAL_FIELDS else value
        for key, value in data.items()
    }
    return section_type(**kwargs)


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """Parse an EngineConfig from a raw mapping; missing sections use defaults."""
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")

    sections = {name: _parse_section(name, data.get(name)) for name in _SECTIONS}
    return EngineConfig(**sections, checksum=compute_checksum(data))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
