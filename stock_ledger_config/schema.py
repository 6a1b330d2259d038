"""
LedgerConfig schema.

Typed, frozen view of a stock ledger configuration file.  YAML documents are
parsed into these types by the loader; the bridges turn them into a wired
LedgerEngine.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to stock_ledger.db.init_engine_from_url."""

    url: str = "sqlite:///stock_ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    create_tables: bool = True


@dataclass(frozen=True)
class LedgerSettings:
    """Behavioral options of the ledger engine."""

    strict_products: bool = False
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Complete stock ledger configuration.

    ``checksum`` identifies the parsed content, not the file bytes: two files
    that differ only in comments or key order share a checksum.
    """

    config_id: str
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
