"""
Stock ledger query selector.

Provides read-only access to ledger entries, balances and reports.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session; one query per answer, so a reader racing a
  mutation sees the sweep either entirely or not at all
- Every ordered read sorts by (created_at, id): id breaks timestamp ties in
  insertion order
- current_balance() reads the stored balance of the logically latest entry;
  there is no cache and no repair on read (verify() only reports)
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.sql import Select

from stock_ledger.domain.dtos import (
    BalanceDiscrepancy,
    LedgerEntryDTO,
    StockLedgerReportRow,
)
from stock_ledger.domain.movement import (
    ZERO,
    MovementType,
    ReferenceType,
    apply_movement,
    split_in_out,
)
from stock_ledger.models.stock_ledger import StockLedgerEntry
from stock_ledger.selectors.base import BaseSelector
from stock_ledger.selectors.catalog_selector import CatalogSelector

_ASC = (StockLedgerEntry.created_at.asc(), StockLedgerEntry.id.asc())
_DESC = (StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.desc())


def to_entry_dto(entry: StockLedgerEntry) -> LedgerEntryDTO:
    """Convert ORM model to DTO."""
    return LedgerEntryDTO(
        id=entry.id,
        product_id=entry.product_id,
        unit_id=entry.unit_id,
        movement_type=MovementType(entry.movement_type),
        quantity=entry.quantity,
        balance=entry.balance,
        location=entry.location,
        reference_type=(
            ReferenceType(entry.reference_type)
            if entry.reference_type is not None
            else None
        ),
        reference_id=entry.reference_id,
        note=entry.note,
        created_at=entry.created_at,
    )


class LedgerSelector(BaseSelector[StockLedgerEntry]):
    """
    Selector for stock ledger queries.

    Returns DTOs rather than ORM models for clean separation.
    """

    def _product_query(
        self,
        product_id: int,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> Select:
        stmt = select(StockLedgerEntry).where(
            StockLedgerEntry.product_id == product_id
        )
        if from_time is not None:
            stmt = stmt.where(StockLedgerEntry.created_at >= from_time)
        if to_time is not None:
            stmt = stmt.where(StockLedgerEntry.created_at <= to_time)
        return stmt

    # =========================================================================
    # Entry Queries
    # =========================================================================

    def get_entry(self, entry_id: int) -> LedgerEntryDTO | None:
        """
        Get a ledger entry by ID.

        Returns:
            LedgerEntryDTO if found, None otherwise.
        """
        entry = self.session.execute(
            select(StockLedgerEntry).where(StockLedgerEntry.id == entry_id)
        ).scalar_one_or_none()

        if entry is None:
            return None

        return to_entry_dto(entry)

    def history(
        self,
        product_id: int,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> list[LedgerEntryDTO]:
        """
        Entries of a product in ascending logical order.

        Args:
            product_id: Product whose ledger to read.
            from_time: Optional inclusive lower bound on created_at.
            to_time: Optional inclusive upper bound on created_at.
        """
        entries = self.session.execute(
            self._product_query(product_id, from_time, to_time).order_by(*_ASC)
        ).scalars().all()
        return [to_entry_dto(e) for e in entries]

    def latest(self, product_id: int) -> LedgerEntryDTO | None:
        """The logically last entry of a product, or None."""
        entry = self.session.execute(
            self._product_query(product_id).order_by(*_DESC).limit(1)
        ).scalar_one_or_none()
        return to_entry_dto(entry) if entry is not None else None

    def current_balance(self, product_id: int) -> Decimal:
        """Stored balance of the logically latest entry; zero with no entries."""
        balance = self.session.execute(
            select(StockLedgerEntry.balance)
            .where(StockLedgerEntry.product_id == product_id)
            .order_by(*_DESC)
            .limit(1)
        ).scalar_one_or_none()
        return balance if balance is not None else ZERO

    def by_movement_type(self, movement_type: MovementType) -> list[LedgerEntryDTO]:
        """All entries of one movement type, newest first."""
        entries = self.session.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.movement_type == movement_type.value)
            .order_by(*_DESC)
        ).scalars().all()
        return [to_entry_dto(e) for e in entries]

    def by_reference(
        self,
        reference_type: ReferenceType | None = None,
        reference_id: int | None = None,
    ) -> list[LedgerEntryDTO]:
        """Entries pointing at a business document, newest first.

        Either filter may be omitted.
        """
        stmt = select(StockLedgerEntry)
        if reference_type is not None:
            stmt = stmt.where(StockLedgerEntry.reference_type == reference_type.value)
        if reference_id is not None:
            stmt = stmt.where(StockLedgerEntry.reference_id == reference_id)
        entries = self.session.execute(stmt.order_by(*_DESC)).scalars().all()
        return [to_entry_dto(e) for e in entries]

    # =========================================================================
    # Reports
    # =========================================================================

    def report(
        self,
        product_id: int,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> list[StockLedgerReportRow]:
        """
        Stock ledger report: history with display names and in/out columns.
        """
        entries = self.history(product_id, from_time, to_time)
        catalog = CatalogSelector(self.session)
        product_name = catalog.product_name(product_id)
        unit_names = catalog.unit_names(e.unit_id for e in entries)

        rows = []
        for e in entries:
            in_qty, out_qty = split_in_out(e.quantity, e.movement_type)
            rows.append(
                StockLedgerReportRow(
                    entry_id=e.id,
                    product_id=e.product_id,
                    product_name=product_name,
                    unit_name=unit_names.get(e.unit_id) if e.unit_id is not None else None,
                    created_at=e.created_at,
                    movement_type=e.movement_type,
                    reference_type=e.reference_type,
                    reference_id=e.reference_id,
                    location=e.location,
                    in_qty=in_qty,
                    out_qty=out_qty,
                    balance=e.balance,
                    note=e.note,
                )
            )
        return rows

    def verify(self, product_id: int) -> list[BalanceDiscrepancy]:
        """
        Compare every stored balance with the fold over its predecessors.

        Read-only: discrepancies are reported, never repaired.  The fold
        continues from the expected (not the stored) balance so one bad row
        does not hide later ones.
        """
        discrepancies = []
        expected = ZERO
        for e in self.history(product_id):
            expected = apply_movement(expected, e.quantity, e.movement_type)
            if e.balance != expected:
                discrepancies.append(
                    BalanceDiscrepancy(
                        entry_id=e.id,
                        product_id=product_id,
                        stored_balance=e.balance,
                        expected_balance=expected,
                    )
                )
        return discrepancies
