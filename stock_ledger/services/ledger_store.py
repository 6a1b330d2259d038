"""
LedgerStore -- persistence collaborator for ledger rows.

Responsibility:
    Ordered retrieval of a product's ledger rows (whole ledger, time range,
    everything after a logical position, the balance just before a logical
    position) and the row writes the engine needs: insert, replace, delete.

Architecture position:
    Ledger > Services -- imperative shell infrastructure.
    Used only by LedgerEngine, inside a transaction the engine controls.

Invariants enforced:
    - Logical time is (created_at, id).  "Before" and "after" are strict in
      that order, so an entry is never its own predecessor or successor.
    - Flush only: the engine commits or rolls back the mutation and its
      recomputation sweep together.

Failure modes:
    - sqlalchemy.exc.SQLAlchemyError propagates; LedgerEngine translates it
      to ConcurrencyConflictError (lock wait expired) or
      PersistenceFailureError after rolling back.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, or_, select, text
from sqlalchemy.sql.elements import ColumnElement

from stock_ledger.domain.movement import ZERO
from stock_ledger.logging_config import get_logger
from stock_ledger.models.stock_ledger import StockLedgerEntry
from stock_ledger.services.base import BaseService

logger = get_logger("services.ledger_store")

_ASC = (StockLedgerEntry.created_at.asc(), StockLedgerEntry.id.asc())
_DESC = (StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.desc())


def _before(created_at: datetime, entry_id: int | None) -> ColumnElement[bool]:
    """Rows logically before (created_at, entry_id).

    With no entry_id (a row not yet inserted, whose id will be the largest),
    every row at the same timestamp counts as before.
    """
    if entry_id is None:
        return StockLedgerEntry.created_at <= created_at
    return or_(
        StockLedgerEntry.created_at < created_at,
        and_(
            StockLedgerEntry.created_at == created_at,
            StockLedgerEntry.id < entry_id,
        ),
    )


def _after(created_at: datetime, entry_id: int) -> ColumnElement[bool]:
    """Rows logically after (created_at, entry_id)."""
    return or_(
        StockLedgerEntry.created_at > created_at,
        and_(
            StockLedgerEntry.created_at == created_at,
            StockLedgerEntry.id > entry_id,
        ),
    )


class LedgerStore(BaseService[StockLedgerEntry]):
    """
    Row-level access to the stock ledger for the write path.

    Contract:
        Returns attached ORM rows so the engine can rewrite balances in
        place; all writes are flushed, never committed.
    """

    # =========================================================================
    # Ordered reads
    # =========================================================================

    def fetch_ordered_by_product(self, product_id: int) -> list[StockLedgerEntry]:
        return list(
            self.session.execute(
                select(StockLedgerEntry)
                .where(StockLedgerEntry.product_id == product_id)
                .order_by(*_ASC)
            ).scalars()
        )

    def fetch_ordered_by_product_and_range(
        self,
        product_id: int,
        from_time: datetime,
        to_time: datetime,
    ) -> list[StockLedgerEntry]:
        return list(
            self.session.execute(
                select(StockLedgerEntry)
                .where(
                    StockLedgerEntry.product_id == product_id,
                    StockLedgerEntry.created_at >= from_time,
                    StockLedgerEntry.created_at <= to_time,
                )
                .order_by(*_ASC)
            ).scalars()
        )

    def fetch_after(
        self,
        product_id: int,
        created_at: datetime,
        entry_id: int,
    ) -> list[StockLedgerEntry]:
        """Rows of the product strictly after a logical position, in order."""
        return list(
            self.session.execute(
                select(StockLedgerEntry)
                .where(
                    StockLedgerEntry.product_id == product_id,
                    _after(created_at, entry_id),
                )
                .order_by(*_ASC)
            ).scalars()
        )

    def balance_before(
        self,
        product_id: int,
        created_at: datetime,
        entry_id: int | None = None,
    ) -> Decimal:
        """
        Balance of the nearest row strictly before a logical position.

        Zero when the position is the first of the product's ledger.
        """
        balance = self.session.execute(
            select(StockLedgerEntry.balance)
            .where(
                StockLedgerEntry.product_id == product_id,
                _before(created_at, entry_id),
            )
            .order_by(*_DESC)
            .limit(1)
        ).scalar_one_or_none()
        return balance if balance is not None else ZERO

    def get(self, entry_id: int, for_update: bool = False) -> StockLedgerEntry | None:
        stmt = select(StockLedgerEntry).where(StockLedgerEntry.id == entry_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    # =========================================================================
    # Writes (flush only)
    # =========================================================================

    def insert(self, entry: StockLedgerEntry) -> int:
        """Persist a new row and return its database-assigned id."""
        self.session.add(entry)
        self.session.flush()
        return entry.id

    def replace(self, *entries: StockLedgerEntry) -> None:
        """Write back updated rows in one flush."""
        if not entries:
            return
        self.session.add_all(entries)
        self.session.flush()

    def delete(self, entry_id: int) -> None:
        """Hard-delete a row.  Ledger deletes are never soft."""
        entry = self.session.get(StockLedgerEntry, entry_id)
        if entry is not None:
            self.session.delete(entry)
            self.session.flush()

    def lock_product(self, product_id: int, timeout_seconds: float | None = None) -> None:
        """
        Take the database-level lock on a product's ledger.

        PostgreSQL: transaction-scoped advisory lock keyed on the product id,
        released at commit/rollback.  With timeout_seconds, the wait is
        bounded by a transaction-local lock_timeout; expiry raises
        OperationalError (SQLSTATE 55P03).  Other backends rely on their own
        write serialization (SQLite: BEGIN IMMEDIATE plus busy timeout).
        """
        if self.session.get_bind().dialect.name != "postgresql":
            return
        if timeout_seconds is not None:
            self.session.execute(
                text("SELECT set_config('lock_timeout', :value, true)"),
                {"value": f"{max(1, int(timeout_seconds * 1000))}ms"},
            )
        self.session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": product_id},
        )
        logger.debug("product_advisory_lock_acquired", extra={"product_id": product_id})
