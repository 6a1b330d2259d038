"""
Module: stock_ledger.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the ledger.
Architecture position: Ledger > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables/drop_tables, which import models so that
    Base.metadata knows every table).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED; the ledger engine adds a
      per-product advisory lock around every mutation.
    - SQLite transactions start with BEGIN IMMEDIATE so that a writer holds
      the database write lock from its first statement (pysqlite's own
      deferred BEGIN is disabled).  Writers then serialize at the database
      instead of failing on lock upgrade.
    - Connection pooling with pre-ping to handle stale connections.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - OperationalError ("database is locked") if a SQLite writer waits longer
      than sqlite_timeout seconds.

Audit relevance:
    All ledger transactions flow through sessions created by this module.
    session_scope() ensures atomic commit-or-rollback semantics.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from stock_ledger.logging_config import get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_begin_immediate(engine: Engine) -> None:
    """Take over transaction start on pysqlite and begin IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_timeout: float = 30.0,
) -> Engine:
    """
    Build a configured Engine without touching module-level state.

    PostgreSQL URLs get a QueuePool at READ COMMITTED.  SQLite URLs get
    BEGIN IMMEDIATE transactions and a busy timeout; in-memory SQLite is
    not supported because every thread would see its own database.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            raise ValueError("In-memory SQLite is not supported; use a file URL")
        engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            connect_args={"check_same_thread": False, "timeout": sqlite_timeout},
        )
        _install_sqlite_begin_immediate(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_timeout: float = 30.0,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Idempotent in effect: a second call replaces (and disposes) the first
    engine.

    Args:
        database_url: PostgreSQL or file-based SQLite URL.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_timeout: Seconds a SQLite writer waits for the database
            write lock before failing with "database is locked".

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = create_engine_from_url(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        sqlite_timeout=sqlite_timeout,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Each thread (and each ledger operation) should use its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    On normal exit, the session is committed and closed.  On exception, the
    session is rolled back and closed, and the exception is re-raised.

    Usage:
        with session_scope() as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = (factory or get_session_factory())()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create all ledger tables.

    Importing the models package registers every table on Base.metadata.
    """
    from stock_ledger.db.base import Base
    import stock_ledger.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from stock_ledger.db.base import Base
    import stock_ledger.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres(engine: Engine | None = None) -> bool:
    """Check whether the given (or current) engine is PostgreSQL."""
    target = engine or _engine
    if target is None:
        return False
    return target.dialect.name == "postgresql"
