"""
Data transfer objects for the ledger boundary.

Callers hand the engine ``NewLedgerEntry`` / ``LedgerEntryUpdate`` and get
back ``LedgerEntryDTO``; report and verification queries return
``StockLedgerReportRow`` and ``BalanceDiscrepancy``.  All are frozen
dataclasses with no ORM dependency.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from stock_ledger.domain.movement import MovementType, ReferenceType


class _Unset(Enum):
    """Sentinel type for 'leave this field unchanged'."""

    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET


def clean_text(value: str | None) -> str | None:
    """Strip surrounding whitespace; blank strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class NewLedgerEntry:
    """
    Input for ``LedgerEngine.append``.

    ``created_at`` is normally left None so the engine's clock stamps the
    entry at the tail of the ledger; a past timestamp back-dates it into
    the middle of the sequence.
    """

    product_id: int
    movement_type: MovementType | str
    quantity: Decimal | int | str
    unit_id: int | None = None
    location: str | None = None
    reference_type: ReferenceType | None = None
    reference_id: int | None = None
    note: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class LedgerEntryUpdate:
    """
    Replacement fields for ``LedgerEngine.update``.

    Every field defaults to UNSET, which keeps the stored value.
    ``balance`` and ``created_at`` are not updatable.
    """

    product_id: Any = UNSET
    unit_id: Any = UNSET
    movement_type: Any = UNSET
    quantity: Any = UNSET
    location: Any = UNSET
    reference_type: Any = UNSET
    reference_id: Any = UNSET
    note: Any = UNSET

    def changed_fields(self) -> dict[str, Any]:
        """Return only the fields the caller set."""
        return {
            name: value
            for name, value in vars(self).items()
            if value is not UNSET
        }


@dataclass(frozen=True)
class LedgerEntryDTO:
    """Data transfer object for a ledger entry."""

    id: int
    product_id: int
    unit_id: int | None
    movement_type: MovementType
    quantity: Decimal
    balance: Decimal
    location: str | None
    reference_type: ReferenceType | None
    reference_id: int | None
    note: str | None
    created_at: datetime

    @property
    def logical_key(self) -> tuple[datetime, int]:
        """Position of the entry on the product's logical time axis."""
        return (self.created_at, self.id)


@dataclass(frozen=True)
class StockLedgerReportRow:
    """One line of a stock ledger report: movement with in/out split."""

    entry_id: int
    product_id: int
    product_name: str | None
    unit_name: str | None
    created_at: datetime
    movement_type: MovementType
    reference_type: ReferenceType | None
    reference_id: int | None
    location: str | None
    in_qty: Decimal
    out_qty: Decimal
    balance: Decimal
    note: str | None

    @property
    def ref_no(self) -> str:
        return str(self.reference_id) if self.reference_id is not None else "-"


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """A stored balance that disagrees with the fold over its predecessors."""

    entry_id: int
    product_id: int
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance
