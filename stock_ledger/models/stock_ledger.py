"""
Module: stock_ledger.models.stock_ledger
Responsibility: ORM persistence for stock ledger entries -- one row per stock
    movement of one product, carrying the running balance after that movement.
Architecture position: Ledger > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - Logical time is (created_at, id).  Every ordered read uses both columns,
      backed by idx_stock_ledger_product_time.
    - movement_type and reference_type are persisted as their enum .value
      (canonical lowercase string).
    - balance is derived: only LedgerEngine writes it, as part of the same
      transaction as the movement that changed it.

Failure modes:
    - IntegrityError on NULL product_id / movement_type / quantity / balance.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import Base, UTCDateTime
from stock_ledger.db.types import QuantityType


class StockLedgerEntry(Base):
    """
    A single stock movement and the product's balance immediately after it.

    Contract:
        For a fixed product_id, ordering rows by (created_at, id), each
        balance equals apply_movement(previous balance or 0, quantity,
        movement_type).  product_id carries no foreign key: the product
        registry is an external collaborator.
    """

    __tablename__ = "stock_ledger_entries"

    __table_args__ = (
        # Query: a product's ledger in logical order (history, sweeps, tail)
        Index("idx_stock_ledger_product_time", "product_id", "created_at", "id"),
        # Query: entries by movement type, newest first
        Index("idx_stock_ledger_movement_type", "movement_type"),
        # Query: entries for a business document
        Index("idx_stock_ledger_reference", "reference_type", "reference_id"),
    )

    product_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Unit of measure; informational only
    unit_id: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )

    movement_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        QuantityType(),
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        QuantityType(),
        nullable=False,
    )

    location: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    reference_type: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    reference_id: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )

    note: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry {self.id} product={self.product_id} "
            f"{self.movement_type} qty={self.quantity} balance={self.balance}>"
        )
