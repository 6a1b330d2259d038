"""
stock_ledger_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``LedgerConfig``.

Architecture position:
    Configuration -- YAML file, parsed into frozen dataclasses.
    This package sits above ``stock_ledger``.  The kernel MUST NEVER import
    from ``stock_ledger_config``; ``bridges`` translates a config into a
    wired ``LedgerEngine``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic parsing: the same YAML content always produces the same
      ``LedgerConfig`` checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- a value has the wrong type or a key is unknown.
    - ``yaml.YAMLError`` -- the file is not valid YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_LEDGER_CONFIG_TRACE`` log entry with the config id, checksum and
    the ledger options in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_ledger_config.loader import load_yaml_file, parse_config
from stock_ledger_config.schema import (
    DatabaseSettings,
    LedgerConfig,
    LedgerSettings,
    LoggingSettings,
)

_logger = logging.getLogger("stock_ledger.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to
            stock_ledger_config/sets/default.yaml.

    Returns:
        LedgerConfig -- frozen, with checksum.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the configuration is invalid.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path), config_id=path.stem)

    _logger.info(
        "STOCK_LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "checksum": config.checksum,
            "source": str(path),
            "strict_products": config.ledger.strict_products,
            "lock_timeout_seconds": config.ledger.lock_timeout_seconds,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "LedgerConfig",
    "LedgerSettings",
    "LoggingSettings",
    "get_active_config",
]
