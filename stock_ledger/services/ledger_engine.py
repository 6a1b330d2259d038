"""
LedgerEngine -- append, correct and delete stock movements while keeping
every running balance consistent.

Responsibility:
    The single owner of ledger mutations and balance recomputation, plus the
    balance/history query surface offered to calling business logic (stock
    level service, sales posting, transfers, initial stock on product
    creation).

Architecture position:
    Ledger > Services -- imperative shell.
    Composes the pure movement rules (domain/movement.py), the persistence
    collaborator (LedgerStore), read selectors, and ProductLockRegistry.

Invariants enforced:
    - Balance consistency: for every product, ordering entries by
      (created_at, id), balance[i] = apply_movement(balance[i-1] or 0,
      quantity[i], movement_type[i]).  Every mutation recomputes the entries
      logically after its mutation point (the recomputation sweep).
    - Atomicity: a mutation and its sweep are one transaction.  Any failure
      rolls back both; previously persisted balances stay untouched.
    - Serialization: append/update/remove on one product run one at a time
      (per-product lock, plus an advisory lock on PostgreSQL).  Different
      products never share a lock.
    - Validation before writes: movement type, quantity and (in strict mode)
      product existence are checked before anything is flushed.
    - No self-repair: queries return stored balances as they are.

Failure modes:
    - LedgerEntryNotFoundError: update/remove of an unknown entry id.
    - ProductNotFoundError: strict mode and the catalog lacks the product or
      marks it inactive.
    - InvalidMovementError: unknown movement type, unusable quantity, or a
      resulting balance too large to store.
    - InvalidQueryError: a history/report time bound without a timezone.
    - ConcurrencyConflictError: product lock or database lock not acquired
      in time, or the entry moved to another product between lookup and
      lock.  Retryable.
    - PersistenceFailureError: the database failed a read or the mutation
      transaction.  Surfaced, never retried silently.

Audit relevance:
    Every mutation logs ledger_entry_appended / ledger_entry_updated /
    ledger_entry_removed with product_id, entry_id, movement, quantity,
    resulting balance and the number of entries the sweep rewrote.
"""

from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stock_ledger.db.engine import session_scope
from stock_ledger.db.types import round_quantity
from stock_ledger.domain.clock import Clock, SystemClock
from stock_ledger.domain.dtos import (
    BalanceDiscrepancy,
    LedgerEntryDTO,
    LedgerEntryUpdate,
    NewLedgerEntry,
    StockLedgerReportRow,
    clean_text,
)
from stock_ledger.domain.movement import (
    MovementType,
    ReferenceType,
    apply_movement,
    ensure_in_range,
    validate_movement,
)
from stock_ledger.exceptions import (
    ConcurrencyConflictError,
    InvalidMovementError,
    InvalidQueryError,
    LedgerEntryNotFoundError,
    PersistenceFailureError,
    ProductNotFoundError,
)
from stock_ledger.logging_config import LogContext, get_logger
from stock_ledger.models.stock_ledger import StockLedgerEntry
from stock_ledger.selectors.catalog_selector import CatalogSelector
from stock_ledger.selectors.ledger_selector import LedgerSelector, to_entry_dto
from stock_ledger.services.ledger_store import LedgerStore
from stock_ledger.services.product_locks import ProductLockRegistry

logger = get_logger("services.ledger_engine")

T = TypeVar("T")

# PostgreSQL lock_not_available (lock_timeout expired) and deadlock_detected
_LOCK_CONTENTION_SQLSTATES = frozenset({"55P03", "40P01"})
_SQLITE_BUSY_MESSAGES = ("database is locked", "database table is locked")


def _is_lock_contention(exc: SQLAlchemyError) -> bool:
    """True if the database gave up waiting for a lock held by another writer."""
    if not isinstance(exc, OperationalError):
        return False
    if getattr(exc.orig, "pgcode", None) in _LOCK_CONTENTION_SQLSTATES:
        return True
    message = str(exc.orig)
    return any(busy in message for busy in _SQLITE_BUSY_MESSAGES)


def _normalize_movement(quantity: object, movement_type: MovementType | str) -> tuple[Decimal, MovementType]:
    """Validated movement type and quantity rounded to storage scale."""
    value, parsed = validate_movement(quantity, movement_type)
    return ensure_in_range(round_quantity(value), parsed), parsed


def _next_balance(previous: Decimal, quantity: Decimal, movement_type: MovementType) -> Decimal:
    return ensure_in_range(
        apply_movement(previous, quantity, movement_type), movement_type, "resulting balance"
    )


def _parse_reference_type(value: Any) -> ReferenceType | None:
    if value is None or isinstance(value, ReferenceType):
        return value
    try:
        return ReferenceType(str(value).strip().lower())
    except ValueError:
        raise InvalidMovementError(
            "-", "-", f"unrecognized reference type {value!r}"
        ) from None


def _require_aware(created_at: datetime | None, movement_type: MovementType, quantity: Decimal) -> None:
    if created_at is not None and created_at.tzinfo is None:
        raise InvalidMovementError(
            movement_type.value, quantity, "created_at must be timezone-aware"
        )


def _require_aware_bounds(from_time: datetime | None, to_time: datetime | None) -> None:
    for name, bound in (("from_time", from_time), ("to_time", to_time)):
        if bound is not None and bound.tzinfo is None:
            raise InvalidQueryError(name, bound, "time bounds must be timezone-aware")


class LedgerEngine:
    """
    Stock ledger engine.

    Contract:
        Each public method runs in its own transaction obtained from
        ``session_factory``; mutating methods commit on success and roll
        back on failure.  Returned values are DTOs detached from any
        session.

    Usage:
        engine = LedgerEngine(get_session_factory(), clock=SystemClock())
        entry = engine.append(NewLedgerEntry(
            product_id=7, movement_type=MovementType.PURCHASE, quantity=Decimal("100"),
        ))
        engine.current_balance(7)   # Decimal("100")
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        locks: ProductLockRegistry | None = None,
        strict_products: bool = False,
    ):
        """
        Args:
            session_factory: Creates one session per operation.
            clock: Stamps created_at on appended entries.  Defaults to
                SystemClock.
            locks: Per-product lock registry.  Share one registry between
                engines writing the same database in one process.
            strict_products: If True, append/update reject product ids
                that are unknown to the catalog or inactive, with
                ProductNotFoundError.
        """
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks = locks if locks is not None else ProductLockRegistry()
        self._strict_products = strict_products

    @property
    def locks(self) -> ProductLockRegistry:
        return self._locks

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def _transaction(
        self, operation: str, product_id: int | None = None
    ) -> Generator[Session, None, None]:
        """
        Commit-or-rollback scope that surfaces storage errors as typed errors.

        A database lock wait that expires (PostgreSQL lock_timeout, SQLite
        busy timeout) becomes ConcurrencyConflictError; every other
        SQLAlchemyError becomes PersistenceFailureError.
        """
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            if _is_lock_contention(exc):
                logger.warning(
                    "ledger_database_lock_timeout",
                    extra={"operation": operation, "product_id": product_id},
                )
                raise ConcurrencyConflictError(
                    product_id, self._locks.timeout_seconds
                ) from exc
            logger.error(
                "ledger_persistence_failure",
                extra={"operation": operation, "product_id": product_id},
            )
            raise PersistenceFailureError(operation, product_id, str(exc)) from exc

    def _read(
        self,
        operation: str,
        query: Callable[[LedgerSelector], T],
        product_id: int | None = None,
    ) -> T:
        with self._transaction(operation, product_id) as session:
            return query(LedgerSelector(session))

    def _owner_of(self, operation: str, entry_id: int) -> int:
        """Product id of an entry, looked up before locking."""
        with self._transaction(operation) as session:
            entry = LedgerStore(session).get(entry_id)
            if entry is None:
                raise LedgerEntryNotFoundError(entry_id)
            return entry.product_id

    def _check_product(self, session: Session, product_id: int) -> None:
        if self._strict_products and not CatalogSelector(session).product_exists(product_id):
            raise ProductNotFoundError(product_id)

    # =========================================================================
    # Recomputation
    # =========================================================================

    @staticmethod
    def _sweep(
        store: LedgerStore,
        product_id: int,
        created_at: datetime,
        entry_id: int,
        start_balance: Decimal,
    ) -> int:
        """
        Recompute balances of every entry logically after (created_at, entry_id).

        Chains apply_movement forward from start_balance in logical order.
        Only rows whose balance actually changes are written.  Returns the
        number of rewritten rows.

        Raises:
            InvalidMovementError: a recomputed balance is out of range.  The
                caller's transaction rolls back.
        """
        running = start_balance
        changed: list[StockLedgerEntry] = []
        for row in store.fetch_after(product_id, created_at, entry_id):
            running = _next_balance(running, row.quantity, MovementType(row.movement_type))
            if row.balance != running:
                row.balance = running
                changed.append(row)
        store.replace(*changed)
        logger.debug(
            "ledger_recompute_completed",
            extra={
                "product_id": product_id,
                "after_entry_id": entry_id,
                "rewritten": len(changed),
                "final_balance": running,
            },
        )
        return len(changed)

    # =========================================================================
    # Mutations
    # =========================================================================

    def append(self, new_entry: NewLedgerEntry) -> LedgerEntryDTO:
        """
        Record a stock movement.

        The entry is stamped with the clock's time unless ``created_at`` is
        given.  Its balance is the movement applied to the balance of the
        entry logically before it (zero if none).  Entries logically after
        it -- only present for a back-dated append -- are recomputed in the
        same transaction.

        Raises:
            InvalidMovementError, ProductNotFoundError,
            ConcurrencyConflictError, PersistenceFailureError.
        """
        quantity, movement_type = _normalize_movement(new_entry.quantity, new_entry.movement_type)
        reference_type = _parse_reference_type(new_entry.reference_type)
        _require_aware(new_entry.created_at, movement_type, quantity)
        product_id = new_entry.product_id

        with LogContext.bind(product_id=product_id, operation="append"):
            with self._locks.hold(product_id):
                with self._transaction("append", product_id) as session:
                    self._check_product(session, product_id)
                    store = LedgerStore(session)
                    store.lock_product(product_id, self._locks.timeout_seconds)

                    created_at = new_entry.created_at or self._clock.now()
                    previous = store.balance_before(product_id, created_at)
                    entry = StockLedgerEntry(
                        product_id=product_id,
                        unit_id=new_entry.unit_id,
                        movement_type=movement_type.value,
                        quantity=quantity,
                        balance=_next_balance(previous, quantity, movement_type),
                        location=clean_text(new_entry.location),
                        reference_type=reference_type.value if reference_type else None,
                        reference_id=new_entry.reference_id,
                        note=clean_text(new_entry.note),
                        created_at=created_at,
                    )
                    store.insert(entry)
                    rewritten = self._sweep(
                        store, product_id, entry.created_at, entry.id, entry.balance
                    )
                    result = to_entry_dto(entry)

            logger.info(
                "ledger_entry_appended",
                extra={
                    "entry_id": result.id,
                    "movement_type": result.movement_type.value,
                    "quantity": result.quantity,
                    "balance": result.balance,
                    "rewritten": rewritten,
                },
            )
        return result

    def update(self, entry_id: int, changes: LedgerEntryUpdate) -> LedgerEntryDTO:
        """
        Correct an entry and recompute every balance it affects.

        The entry keeps its logical position.  Its balance is recomputed from
        the balance immediately before it, then every later entry of the same
        product is swept forward.  When ``product_id`` changes, the old
        product's ledger is swept from the gap and the new product's ledger
        from the entry's position; both products are locked.

        Raises:
            LedgerEntryNotFoundError, InvalidMovementError,
            ProductNotFoundError, ConcurrencyConflictError,
            PersistenceFailureError.
        """
        fields = changes.changed_fields()
        if "reference_type" in fields:
            fields["reference_type"] = _parse_reference_type(fields["reference_type"])

        if "product_id" in fields and (
            not isinstance(fields["product_id"], int) or isinstance(fields["product_id"], bool)
        ):
            raise InvalidMovementError(
                "-", "-", f"product_id must be an integer, got {fields['product_id']!r}"
            )

        old_product_id = self._owner_of("update", entry_id)
        new_product_id = fields.get("product_id", old_product_id)

        with LogContext.bind(product_id=old_product_id, entry_id=entry_id, operation="update"):
            with self._locks.hold(old_product_id, new_product_id) as locked:
                with self._transaction("update", old_product_id) as session:
                    store = LedgerStore(session)
                    entry = store.get(entry_id, for_update=True)
                    if entry is None:
                        raise LedgerEntryNotFoundError(entry_id)
                    if entry.product_id != old_product_id:
                        # Moved by a concurrent update after the lookup.
                        raise ConcurrencyConflictError(old_product_id, self._locks.timeout_seconds)

                    quantity, movement_type = _normalize_movement(
                        fields.get("quantity", entry.quantity),
                        fields.get("movement_type", entry.movement_type),
                    )
                    if new_product_id != old_product_id:
                        self._check_product(session, new_product_id)
                    for product_id in locked:
                        store.lock_product(product_id, self._locks.timeout_seconds)

                    created_at, position = entry.created_at, entry.id
                    previous_old = store.balance_before(old_product_id, created_at, position)

                    entry.product_id = new_product_id
                    entry.movement_type = movement_type.value
                    entry.quantity = quantity
                    if "unit_id" in fields:
                        entry.unit_id = fields["unit_id"]
                    if "location" in fields:
                        entry.location = clean_text(fields["location"])
                    if "reference_type" in fields:
                        ref = fields["reference_type"]
                        entry.reference_type = ref.value if ref else None
                    if "reference_id" in fields:
                        entry.reference_id = fields["reference_id"]
                    if "note" in fields:
                        entry.note = clean_text(fields["note"])

                    if new_product_id == old_product_id:
                        previous = previous_old
                    else:
                        previous = store.balance_before(new_product_id, created_at, position)
                    entry.balance = _next_balance(previous, quantity, movement_type)
                    store.replace(entry)

                    rewritten = self._sweep(
                        store, new_product_id, created_at, position, entry.balance
                    )
                    if new_product_id != old_product_id:
                        rewritten += self._sweep(
                            store, old_product_id, created_at, position, previous_old
                        )
                    result = to_entry_dto(entry)

            logger.info(
                "ledger_entry_updated",
                extra={
                    "entry_id": entry_id,
                    "new_product_id": new_product_id,
                    "movement_type": result.movement_type.value,
                    "quantity": result.quantity,
                    "balance": result.balance,
                    "rewritten": rewritten,
                },
            )
        return result

    def remove(self, entry_id: int) -> None:
        """
        Hard-delete an entry and recompute the entries after the gap.

        The sweep starts from the balance of the entry now immediately
        before the gap (zero if none).

        Raises:
            LedgerEntryNotFoundError, ConcurrencyConflictError,
            PersistenceFailureError.
        """
        product_id = self._owner_of("remove", entry_id)

        with LogContext.bind(product_id=product_id, entry_id=entry_id, operation="remove"):
            with self._locks.hold(product_id):
                with self._transaction("remove", product_id) as session:
                    store = LedgerStore(session)
                    entry = store.get(entry_id, for_update=True)
                    if entry is None:
                        raise LedgerEntryNotFoundError(entry_id)
                    if entry.product_id != product_id:
                        raise ConcurrencyConflictError(product_id, self._locks.timeout_seconds)
                    store.lock_product(product_id, self._locks.timeout_seconds)

                    created_at, position = entry.created_at, entry.id
                    previous = store.balance_before(product_id, created_at, position)
                    store.delete(entry_id)
                    rewritten = self._sweep(store, product_id, created_at, position, previous)

            logger.info(
                "ledger_entry_removed",
                extra={"entry_id": entry_id, "rewritten": rewritten},
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def current_balance(self, product_id: int) -> Decimal:
        """Balance of the logically latest entry, zero if the product has none."""
        return self._read(
            "current_balance", lambda s: s.current_balance(product_id), product_id
        )

    def history(
        self,
        product_id: int,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> list[LedgerEntryDTO]:
        """Entries in ascending logical order; bounds are inclusive on created_at."""
        _require_aware_bounds(from_time, to_time)
        return self._read(
            "history", lambda s: s.history(product_id, from_time, to_time), product_id
        )

    def latest(self, product_id: int) -> LedgerEntryDTO | None:
        return self._read("latest", lambda s: s.latest(product_id), product_id)

    def get(self, entry_id: int) -> LedgerEntryDTO | None:
        return self._read("get", lambda s: s.get_entry(entry_id))

    def by_movement_type(self, movement_type: MovementType | str) -> list[LedgerEntryDTO]:
        parsed = MovementType.parse(movement_type)
        return self._read("by_movement_type", lambda s: s.by_movement_type(parsed))

    def by_reference(
        self,
        reference_type: ReferenceType | str | None = None,
        reference_id: int | None = None,
    ) -> list[LedgerEntryDTO]:
        parsed = _parse_reference_type(reference_type)
        return self._read("by_reference", lambda s: s.by_reference(parsed, reference_id))

    def report(
        self,
        product_id: int,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> list[StockLedgerReportRow]:
        _require_aware_bounds(from_time, to_time)
        return self._read(
            "report", lambda s: s.report(product_id, from_time, to_time), product_id
        )

    def verify(self, product_id: int) -> list[BalanceDiscrepancy]:
        """List stored balances that break the fold.  Never repairs."""
        return self._read("verify", lambda s: s.verify(product_id), product_id)
