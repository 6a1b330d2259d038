"""Services for the stock ledger (write side)."""

from stock_ledger.services.ledger_engine import LedgerEngine
from stock_ledger.services.ledger_store import LedgerStore
from stock_ledger.services.product_locks import (
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    ProductLockRegistry,
)

__all__ = [
    "DEFAULT_LOCK_TIMEOUT_SECONDS",
    "LedgerEngine",
    "LedgerStore",
    "ProductLockRegistry",
]
