"""ORM models for the stock ledger."""

from stock_ledger.models.catalog import Product, Unit
from stock_ledger.models.stock_ledger import StockLedgerEntry

__all__ = [
    "Product",
    "StockLedgerEntry",
    "Unit",
]
