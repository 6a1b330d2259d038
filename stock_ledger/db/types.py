"""
Module: stock_ledger.db.types
Responsibility: Column type and utility functions for stock quantities.
    Centralizes precision and rounding so that every model and service uses
    identical definitions.
Architecture position: Ledger > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  Quantities and balances are Decimal
      with QUANTITY_DECIMAL_PLACES of scale.
    - Exact storage on every backend: PostgreSQL uses NUMERIC(38, 9); SQLite,
      which has no exact decimal type, stores the canonical string form.

Failure modes:
    - decimal.InvalidOperation on a non-numeric string passed to
      quantity_from_str(), or from round_quantity() on a value with more
      than QUANTITY_PRECISION - QUANTITY_DECIMAL_PLACES integer digits.
"""

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

QUANTITY_PRECISION = 38
QUANTITY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)


class QuantityType(TypeDecorator):
    """
    Exact decimal column for quantities and balances.

    Guarantees:
        - Values are rounded to QUANTITY_DECIMAL_PLACES on bind.
        - Values load back as Decimal on every backend.
    """

    impl = Numeric(QUANTITY_PRECISION, QUANTITY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(
            Numeric(QUANTITY_PRECISION, QUANTITY_DECIMAL_PLACES)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = round_quantity(Decimal(value))
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value) if not isinstance(value, Decimal) else value


# Stock quantity or running balance
Quantity = Annotated[Decimal, QuantityType()]


def quantity_from_str(value: str) -> Decimal:
    """
    Create a quantity from its string form.

    Not rounded; callers apply round_quantity() where needed.
    """
    return Decimal(value)


def round_quantity(value: Decimal, decimal_places: int = QUANTITY_DECIMAL_PLACES) -> Decimal:
    """
    Round a quantity to the given number of decimal places.

    This is the ONLY sanctioned rounding function for quantities and
    balances.
    """
    quantum = _QUANTUM if decimal_places == QUANTITY_DECIMAL_PLACES else Decimal(1).scaleb(-decimal_places)
    # A value rounding up to 10**29 needs the 39th digit.
    with localcontext(prec=QUANTITY_PRECISION + 1):
        return value.quantize(quantum, rounding=DEFAULT_ROUNDING)
