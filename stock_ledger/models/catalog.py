"""
Module: stock_ledger.models.catalog
Responsibility: Minimal product and unit-of-measure registry.  The surrounding
    system owns catalog CRUD; the ledger only reads display names from these
    tables and, in strict mode, checks that a product exists and is active.
Architecture position: Ledger > Models.  May import from db/ only.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import Base


class Product(Base):
    """A product whose stock the ledger tracks."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )


class Unit(Base):
    """A unit of measure (piece, box, kg, ...)."""

    __tablename__ = "units"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
