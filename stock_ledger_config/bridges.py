"""
Config -> Kernel Bridges.

Functions that turn a LedgerConfig into kernel objects.  These live in
stock_ledger_config (the producer) because the kernel must NEVER import
stock_ledger_config.

Usage:
    from stock_ledger_config import get_active_config
    from stock_ledger_config.bridges import build_ledger_engine

    engine = build_ledger_engine(get_active_config())
    engine.current_balance(product_id)
"""

from __future__ import annotations

from stock_ledger.db.engine import create_tables, get_session_factory, init_engine_from_url
from stock_ledger.domain.clock import Clock
from stock_ledger.logging_config import configure_logging
from stock_ledger.services.ledger_engine import LedgerEngine
from stock_ledger.services.product_locks import ProductLockRegistry
from stock_ledger_config.schema import LedgerConfig, LedgerSettings


def build_lock_registry(settings: LedgerSettings) -> ProductLockRegistry:
    """Product lock registry with the configured timeout."""
    return ProductLockRegistry(timeout_seconds=settings.lock_timeout_seconds)


def build_ledger_engine(
    config: LedgerConfig,
    clock: Clock | None = None,
    configure_logs: bool = True,
    create_tables_override: bool | None = None,
) -> LedgerEngine:
    """
    Initialize the database engine (and logging) and return a LedgerEngine.

    Replaces any previously initialized module-level database engine.

    Args:
        config: Active configuration.
        clock: Optional clock override (tests pass a DeterministicClock).
        configure_logs: If True, configure the stock_ledger logger at the
            configured level.  configure_logging is idempotent.
        create_tables_override: If not None, replaces database.create_tables
            (read-only callers pass False).
    """
    if configure_logs:
        configure_logging(level=config.logging.level)

    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        sqlite_timeout=config.ledger.lock_timeout_seconds,
    )
    should_create = db.create_tables if create_tables_override is None else create_tables_override
    if should_create:
        create_tables()

    return LedgerEngine(
        get_session_factory(),
        clock=clock,
        locks=build_lock_registry(config.ledger),
        strict_products=config.ledger.strict_products,
    )
