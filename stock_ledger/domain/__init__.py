"""
Pure domain layer.

Movement semantics, DTOs and the clock abstraction, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (except SystemClock)
"""

from stock_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from stock_ledger.domain.dtos import (
    UNSET,
    BalanceDiscrepancy,
    LedgerEntryDTO,
    LedgerEntryUpdate,
    NewLedgerEntry,
    StockLedgerReportRow,
)
from stock_ledger.domain.movement import (
    QUANTITY_LIMIT,
    MovementDirection,
    MovementType,
    ReferenceType,
    apply_movement,
    direction,
    ensure_in_range,
    running_balances,
    split_in_out,
    validate_movement,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "UNSET",
    "BalanceDiscrepancy",
    "LedgerEntryDTO",
    "LedgerEntryUpdate",
    "NewLedgerEntry",
    "StockLedgerReportRow",
    "QUANTITY_LIMIT",
    "MovementDirection",
    "MovementType",
    "ReferenceType",
    "apply_movement",
    "direction",
    "ensure_in_range",
    "running_balances",
    "split_in_out",
    "validate_movement",
]
