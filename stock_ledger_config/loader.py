"""
Configuration Loader (``stock_ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``stock_ledger_config.schema``.  Runtime callers go through
``stock_ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* A missing section or key falls back to the dataclass default; a present
  value of the wrong type raises ``ValueError``.  Unknown keys raise
  ``ValueError`` so typos are not silently ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value type or unknown key  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

import yaml

from stock_ledger_config.schema import (
    DatabaseSettings,
    LedgerConfig,
    LedgerSettings,
    LoggingSettings,
)

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _check_keys(section: str, data: dict[str, Any], cls: type) -> None:
    unknown = set(data) - {f.name for f in fields(cls)}
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {sorted(unknown)}")


def _expect(section: str, key: str, value: Any, *types: type) -> Any:
    # bool is an int subclass; never accept it for a numeric setting.
    if isinstance(value, bool) and bool not in types:
        raise ValueError(f"{section}.{key} must be {types[0].__name__}, got bool")
    if not isinstance(value, types):
        raise ValueError(
            f"{section}.{key} must be {types[0].__name__}, got {type(value).__name__}"
        )
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse DatabaseSettings from a dict."""
    _check_keys("database", data, DatabaseSettings)
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=_expect("database", "url", data.get("url", defaults.url), str),
        echo=_expect("database", "echo", data.get("echo", defaults.echo), bool),
        pool_size=_expect("database", "pool_size", data.get("pool_size", defaults.pool_size), int),
        max_overflow=_expect(
            "database", "max_overflow", data.get("max_overflow", defaults.max_overflow), int
        ),
        pool_timeout=_expect(
            "database", "pool_timeout", data.get("pool_timeout", defaults.pool_timeout), int
        ),
        create_tables=_expect(
            "database", "create_tables", data.get("create_tables", defaults.create_tables), bool
        ),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    """Parse LedgerSettings from a dict."""
    _check_keys("ledger", data, LedgerSettings)
    defaults = LedgerSettings()
    timeout = _expect(
        "ledger",
        "lock_timeout_seconds",
        data.get("lock_timeout_seconds", defaults.lock_timeout_seconds),
        float,
        int,
    )
    if timeout <= 0:
        raise ValueError(f"ledger.lock_timeout_seconds must be positive, got {timeout}")
    return LedgerSettings(
        strict_products=_expect(
            "ledger", "strict_products", data.get("strict_products", defaults.strict_products), bool
        ),
        lock_timeout_seconds=float(timeout),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    """Parse LoggingSettings from a dict."""
    _check_keys("logging", data, LoggingSettings)
    level = _expect("logging", "level", data.get("level", LoggingSettings().level), str).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingSettings(level=level)


def parse_config(data: dict[str, Any], config_id: str = "default") -> LedgerConfig:
    """
    Parse a complete LedgerConfig from a dict.

    Postconditions:
        - Returns a frozen LedgerConfig whose ``checksum`` is computed over
          the parsed (defaults-filled) sections.
    """
    unknown = set(data) - {"config_id", "database", "ledger", "logging"}
    if unknown:
        raise ValueError(f"Unknown top-level keys: {sorted(unknown)}")

    config_id = _expect("config", "config_id", data.get("config_id", config_id), str)
    database = parse_database(_section(data, "database"))
    ledger = parse_ledger(_section(data, "ledger"))
    logging_settings = parse_logging(_section(data, "logging"))

    checksum = compute_checksum({
        "config_id": config_id,
        "database": asdict(database),
        "ledger": asdict(ledger),
        "logging": asdict(logging_settings),
    })
    return LedgerConfig(
        config_id=config_id,
        database=database,
        ledger=ledger,
        logging=logging_settings,
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
