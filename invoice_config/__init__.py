"""
invoice_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``EngineConfig``: database
    settings, the invoice number prefix, owner tax defaults, the allocation
    retry policy and invoice presentation defaults.

Architecture position:
    Configuration -- sits above ``invoice_engine``.  The engine never
    imports from ``invoice_config``; callers pass the resolved values
    (prefix, TaxOptions, RetryPolicy) into engine services.

Environment overrides:
    - ``INVOICE_ENGINE_CONFIG`` -- path of the YAML file to load.
    - ``DATABASE_URL`` -- replaces ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``INVOICE_CONFIG_TRACE`` log entry carrying the source path and the
    checksum of the effective configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from invoice_config.loader import compute_checksum, load_yaml_file, parse_engine_config
from invoice_config.schema import (
    DatabaseConfig,
    EngineConfig,
    InvoiceDefaults,
    NumberingConfig,
    RetryConfig,
    TaxDefaults,
)

_logger = logging.getLogger("invoice_engine.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "INVOICE_ENGINE_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path`` argument, then
    ``$INVOICE_ENGINE_CONFIG``, then the packaged ``defaults.yaml``.
    ``$DATABASE_URL`` always wins over ``database.url``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    data = load_yaml_file(path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        database = dict(data.get("database") or {})
        database["url"] = database_url
        data = {**data, "database": database}

    config = parse_engine_config(data)

    _logger.info(
        "INVOICE_CONFIG_TRACE",
        extra={
            "trace_type": "INVOICE_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "numbering_prefix": config.numbering.prefix,
            "database_override": bool(database_url),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "compute_checksum",
    "DatabaseConfig",
    "EngineConfig",
    "InvoiceDefaults",
    "NumberingConfig",
    "RetryConfig",
    "TaxDefaults",
]
