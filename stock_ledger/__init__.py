"""
Stock Ledger - inventory movement ledger with running balances.

A per-product, append-style ledger of stock movements with:
- One pure source of truth for movement semantics (apply_movement)
- Running balances kept consistent on out-of-order insert, update and delete
- Atomic mutate-plus-recompute transactions
- Per-product serialization of mutations
"""

__version__ = "0.1.0"
