"""
Catalog query selector.

Read-only access to the product/unit registry: existence checks for strict
mode and display names for reports.  Contributes no ledger logic.
"""

from collections.abc import Iterable

from sqlalchemy import select

from stock_ledger.models.catalog import Product, Unit
from stock_ledger.selectors.base import BaseSelector


class CatalogSelector(BaseSelector[Product]):
    """Selector for product and unit display data."""

    def product_exists(self, product_id: int) -> bool:
        """
        True if the product is registered and active.

        Inactive products accept no new movements in strict mode.
        """
        return self.session.execute(
            select(Product.id).where(Product.id == product_id, Product.is_active.is_(True))
        ).first() is not None

    def product_name(self, product_id: int) -> str | None:
        return self.session.execute(
            select(Product.name).where(Product.id == product_id)
        ).scalar_one_or_none()

    def unit_names(self, unit_ids: Iterable[int | None]) -> dict[int, str]:
        """Map unit id -> name for the given ids (unknown ids are omitted)."""
        wanted = {u for u in unit_ids if u is not None}
        if not wanted:
            return {}
        rows = self.session.execute(
            select(Unit.id, Unit.name).where(Unit.id.in_(wanted))
        ).all()
        return {row.id: row.name for row in rows}
