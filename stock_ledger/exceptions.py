"""
Typed Exception Hierarchy for the Stock Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (sales posting, stock transfers, initial stock on
product creation) must react to failures precisely. Parsing message strings
is fragile, so:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.update(entry_id, LedgerEntryUpdate(quantity=Decimal("50")))
    except LedgerEntryNotFoundError as e:
        log.warning("missing entry", extra={"entry_id": e.entry_id})
    except ConcurrencyConflictError:
        retry_later()  # nothing was written

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- NotFoundError
    |   +-- LedgerEntryNotFoundError
    |   +-- ProductNotFoundError
    |
    +-- InvalidMovementError
    |
    +-- InvalidQueryError
    |
    +-- ConcurrencyConflictError
    |
    +-- PersistenceFailureError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|----------------------------------------------------
LEDGER_ENTRY_NOT_FOUND   | Entry id doesn't exist (update / remove)
PRODUCT_NOT_FOUND        | Product unknown to the catalog or inactive
                         | (strict mode only)
INVALID_MOVEMENT         | Unknown movement type, non-finite, float or
                         | out-of-range quantity or resulting balance,
                         | negative Opening/Closing quantity
INVALID_QUERY            | Query argument unusable (naive time bound)
CONCURRENCY_CONFLICT     | Per-product critical section or database lock not
                         | acquired in time
PERSISTENCE_FAILURE      | Storage read or recompute transaction failed

===============================================================================
PROPAGATION
===============================================================================

- INVALID_MOVEMENT and PRODUCT_NOT_FOUND are raised before anything is
  committed.
- INVALID_QUERY is raised before the database is touched.
- CONCURRENCY_CONFLICT is safe to retry: no partial recomputation is ever
  committed.
- PERSISTENCE_FAILURE is surfaced as-is; the engine never invents a
  fallback balance.
"""


class StockLedgerError(Exception):
    """
    Base exception for all stock ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


# Lookup failures


class NotFoundError(StockLedgerError):
    """Base exception for a referenced record that does not exist."""

    code: str = "NOT_FOUND"


class LedgerEntryNotFoundError(NotFoundError):
    """Ledger entry with given ID was not found."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: int):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class ProductNotFoundError(NotFoundError):
    """Product is not registered in the catalog."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


# Validation failures


class InvalidMovementError(StockLedgerError):
    """
    Movement type or quantity cannot be applied to a running balance.

    Raised before anything is written.
    """

    code: str = "INVALID_MOVEMENT"

    def __init__(self, movement_type: object, quantity: object, reason: str):
        self.movement_type = str(movement_type)
        self.quantity = str(quantity)
        self.reason = reason
        super().__init__(
            f"Invalid movement {movement_type!s} with quantity {quantity!s}: {reason}"
        )


class InvalidQueryError(StockLedgerError):
    """A query argument cannot be used, e.g. a time bound without a timezone."""

    code: str = "INVALID_QUERY"

    def __init__(self, parameter: str, value: object, reason: str):
        self.parameter = parameter
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {parameter} {value!s}: {reason}")


# Concurrency failures


class ConcurrencyConflictError(StockLedgerError):
    """
    The per-product critical section could not be acquired.

    Safe to retry: the failed mutation committed nothing.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, product_id: int | None, timeout_seconds: float):
        self.product_id = product_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not lock ledger of product {product_id} "
            f"within {timeout_seconds}s: another mutation is in progress"
        )


# Storage failures


class PersistenceFailureError(StockLedgerError):
    """The storage layer could not complete a read or a write transaction."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, product_id: int | None, detail: str):
        self.operation = operation
        self.product_id = product_id
        self.detail = detail
        super().__init__(
            f"Ledger {operation} failed"
            + (f" for product {product_id}" if product_id is not None else "")
            + f": {detail}"
        )
