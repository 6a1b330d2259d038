"""Selectors for the stock ledger (read side)."""

from stock_ledger.selectors.catalog_selector import CatalogSelector
from stock_ledger.selectors.ledger_selector import LedgerSelector, to_entry_dto

__all__ = [
    "CatalogSelector",
    "LedgerSelector",
    "to_entry_dto",
]
