"""Database layer - engine, base classes, and column types."""

from stock_ledger.db.base import Base, UTCDateTime
from stock_ledger.db.engine import create_tables, get_engine, get_session, session_scope
from stock_ledger.db.types import Quantity, QuantityType

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "UTCDateTime",
    "Quantity",
    "QuantityType",
]
