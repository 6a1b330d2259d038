"""
Pytest fixtures for the stock ledger test suite.

Provides:
- A file-backed SQLite database per test (in-memory SQLite is rejected by
  the engine because threads would not share it)
- A LedgerEngine wired to a DeterministicClock
- Logging fixtures and captured_logs

Environment Variables:
- DATABASE_URL: optional PostgreSQL URL.  When set, tests run against it
  instead of SQLite; tables are dropped and recreated per test.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_ledger.db.engine import create_engine_from_url, create_tables, drop_tables
from stock_ledger.domain.clock import DeterministicClock
from stock_ledger.domain.dtos import NewLedgerEntry
from stock_ledger.domain.movement import MovementType
from stock_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_ledger.models.catalog import Product, Unit
from stock_ledger.services.ledger_engine import LedgerEngine
from stock_ledger.services.product_locks import ProductLockRegistry

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.append(...)
            logs = captured_logs()
            assert any(r["message"] == "ledger_entry_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_ledger")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as deliberately waiting on product locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    """PostgreSQL from DATABASE_URL if set, otherwise a fresh SQLite file."""
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def engine(database_url) -> Generator[Engine, None, None]:
    eng = create_engine_from_url(database_url, pool_size=10)
    drop_tables(eng)
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A plain session for arranging and inspecting rows directly."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(T0)


@pytest.fixture
def lock_registry() -> ProductLockRegistry:
    return ProductLockRegistry(timeout_seconds=5.0)


@pytest.fixture
def ledger(session_factory, deterministic_clock, lock_registry) -> LedgerEngine:
    """LedgerEngine whose clock only moves when a test moves it."""
    return LedgerEngine(
        session_factory,
        clock=deterministic_clock,
        locks=lock_registry,
    )


@pytest.fixture
def catalog(session_factory):
    """
    Insert catalog rows and return their ids.

    Usage::

        product_id, unit_id = catalog("Widget", "pcs")
    """

    def _create(
        product_name: str = "Widget",
        unit_name: str | None = "pcs",
        active: bool = True,
    ) -> tuple[int, int | None]:
        with session_factory() as sess:
            product = Product(name=product_name, is_active=active)
            sess.add(product)
            unit = None
            if unit_name is not None:
                unit = Unit(name=unit_name)
                sess.add(unit)
            sess.commit()
            return product.id, unit.id if unit is not None else None

    return _create


@pytest.fixture
def record(ledger, deterministic_clock):
    """
    Append a movement one clock second after the previous one.

    Usage::

        entry = record(1, "purchase", "100")
    """

    def _record(
        product_id: int,
        movement_type: MovementType | str,
        quantity: Decimal | int | str,
        **kwargs,
    ):
        deterministic_clock.advance(1)
        return ledger.append(
            NewLedgerEntry(
                product_id=product_id,
                movement_type=movement_type,
                quantity=quantity,
                **kwargs,
            )
        )

    return _record
