"""
Module: stock_ledger.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the integer primary key convention, the type annotation map for consistent
    column types, and the UTC timestamp type.
Architecture position: Ledger > DB.  This is the lowest-level import target
    within the ledger.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Integer primary keys assigned by the database in insertion order.  The
      ledger uses the id as the tie-break of its logical time (created_at, id),
      so ids must be strictly increasing; they are never reused or supplied
      by callers.
    - Decimal precision: Decimal maps to Numeric(38, 9).  NEVER use float for
      quantities.
    - Timestamps are timezone-aware UTC on the way in and on the way out,
      whatever the backend stores.

Failure modes:
    - ValueError from UTCDateTime if a naive datetime is bound.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# SQLite only auto-increments a column declared exactly INTEGER PRIMARY KEY.
IdType = BigInteger().with_variant(Integer(), "sqlite")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Contract:
        Binds only timezone-aware datetimes (converted to UTC).  Loads
        datetimes back as UTC-aware even on backends (SQLite) that drop the
        offset.

    Guarantees:
        - process_bind_param: aware datetime -> UTC datetime.
        - process_result_value: naive or aware datetime -> UTC-aware datetime.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the ledger inherits from Base.  Base provides an
        auto-incrementing integer primary key and a type_annotation_map that
        enforces consistent column types across the schema.

    Guarantees:
        - id is assigned by the database, strictly increasing.
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        int: BigInteger,
    }

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )
