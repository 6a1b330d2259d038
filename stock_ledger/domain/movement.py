"""
Movement semantics -- the single source of truth for how a stock movement
changes a running balance.

Responsibility:
    Defines the closed set of movement types, the pure ``apply_movement``
    transition, the fold over an ordered sequence of movements, and input
    normalization for movement type and quantity.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O, no ORM.

Invariants enforced:
    - ``apply_movement`` is total and deterministic over every MovementType.
      It is an exhaustive ``match`` closed by ``assert_never``: adding a
      member to MovementType without handling it here is a type error.
    - Quantities are finite Decimals; floats are rejected.
    - Quantities and balances stay below QUANTITY_LIMIT (the integer part
      of a NUMERIC(38, 9) column).  Balance arithmetic runs at a precision
      wide enough to be exact for any two values in range.

Failure modes:
    - InvalidMovementError from ``MovementType.parse`` and
      ``validate_movement`` (never from ``apply_movement``).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum, unique
from typing import assert_never

from stock_ledger.exceptions import InvalidMovementError

ZERO = Decimal("0")

QUANTITY_INTEGER_DIGITS = 29
QUANTITY_LIMIT = Decimal(1).scaleb(QUANTITY_INTEGER_DIGITS)

# Sum of two in-range values with 9 decimal places needs at most 39 digits.
_ARITHMETIC_PRECISION = 40


@unique
class MovementType(str, Enum):
    """Kind of stock movement recorded by a ledger entry."""

    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    RETURN = "return"
    REPLACE = "replace"
    WASTE = "waste"
    OPENING = "opening"
    CLOSING = "closing"

    @classmethod
    def parse(cls, value: MovementType | str) -> MovementType:
        """
        Normalize caller input to a MovementType.

        Accepts a member, its value (``"transfer_in"``) or its name in any
        casing with or without underscores (``"TransferIn"``).

        Raises:
            InvalidMovementError: if the value names no movement type.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().replace("_", "").replace("-", "").lower()
            for member in cls:
                if member.value.replace("_", "") == key:
                    return member
        raise InvalidMovementError(value, "-", "unrecognized movement type")


@unique
class MovementDirection(str, Enum):
    """How a movement type affects stock, for in/out reporting."""

    IN = "in"
    OUT = "out"
    ADJUST = "adjust"
    NEUTRAL = "neutral"
    RESET = "reset"


@unique
class ReferenceType(str, Enum):
    """Kind of business document a ledger entry points back to."""

    SALE = "sale"
    GRN = "grn"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    EXCHANGE = "exchange"
    RETURN = "return"
    REPLACE = "replace"
    WASTE = "waste"
    OPENING = "opening"
    MANUAL = "manual"


def apply_movement(
    current_balance: Decimal,
    quantity: Decimal,
    movement_type: MovementType,
) -> Decimal:
    """
    Compute the balance after applying one movement.

    Purchase, TransferIn, Return add; Sale, TransferOut, Waste subtract;
    Adjustment adds a signed quantity; Replace leaves the balance unchanged;
    Opening and Closing reset the balance to the quantity.
    """
    with localcontext(prec=_ARITHMETIC_PRECISION):
        match movement_type:
            case MovementType.PURCHASE | MovementType.TRANSFER_IN | MovementType.RETURN:
                return current_balance + quantity
            case MovementType.SALE | MovementType.TRANSFER_OUT | MovementType.WASTE:
                return current_balance - quantity
            case MovementType.ADJUSTMENT:
                return current_balance + quantity
            case MovementType.REPLACE:
                return current_balance
            case MovementType.OPENING | MovementType.CLOSING:
                return quantity
            case _:
                assert_never(movement_type)


def direction(movement_type: MovementType) -> MovementDirection:
    """Classify a movement type for in/out columns of a stock report."""
    match movement_type:
        case MovementType.PURCHASE | MovementType.TRANSFER_IN | MovementType.RETURN:
            return MovementDirection.IN
        case MovementType.SALE | MovementType.TRANSFER_OUT | MovementType.WASTE:
            return MovementDirection.OUT
        case MovementType.ADJUSTMENT:
            return MovementDirection.ADJUST
        case MovementType.REPLACE:
            return MovementDirection.NEUTRAL
        case MovementType.OPENING | MovementType.CLOSING:
            return MovementDirection.RESET
        case _:
            assert_never(movement_type)


def split_in_out(quantity: Decimal, movement_type: MovementType) -> tuple[Decimal, Decimal]:
    """
    Split a movement into (in_qty, out_qty) for reporting.

    Adjustments land on the side of their sign; Opening and Closing count
    as inbound stock; Replace moves nothing.
    """
    kind = direction(movement_type)
    match kind:
        case MovementDirection.IN | MovementDirection.RESET:
            return quantity, ZERO
        case MovementDirection.OUT:
            return ZERO, quantity
        case MovementDirection.ADJUST:
            return (quantity, ZERO) if quantity >= 0 else (ZERO, quantity.copy_negate())
        case MovementDirection.NEUTRAL:
            return ZERO, ZERO
        case _:
            assert_never(kind)


def running_balances(
    movements: Iterable[tuple[Decimal, MovementType]],
    opening: Decimal = ZERO,
) -> list[Decimal]:
    """
    Fold apply_movement over (quantity, movement_type) pairs in logical order.

    Returns the balance after each movement.
    """
    balances: list[Decimal] = []
    balance = opening
    for quantity, movement_type in movements:
        balance = apply_movement(balance, quantity, movement_type)
        balances.append(balance)
    return balances


def ensure_in_range(
    value: Decimal,
    movement_type: MovementType,
    what: str = "quantity",
) -> Decimal:
    """
    Reject a quantity or balance too large for storage.

    Raises:
        InvalidMovementError: |value| >= QUANTITY_LIMIT.
    """
    if value.copy_abs() >= QUANTITY_LIMIT:
        raise InvalidMovementError(
            movement_type.value,
            value,
            f"{what} exceeds {QUANTITY_INTEGER_DIGITS} integer digits",
        )
    return value


def validate_movement(quantity: object, movement_type: MovementType | str) -> tuple[Decimal, MovementType]:
    """
    Normalize and validate a (quantity, movement_type) pair before any write.

    Returns:
        The quantity as a finite Decimal and the parsed MovementType.

    Raises:
        InvalidMovementError: unknown movement type; float, unparsable,
            non-finite or out-of-range quantity; negative quantity for
            Opening/Closing.
    """
    parsed_type = MovementType.parse(movement_type)

    if isinstance(quantity, float):
        raise InvalidMovementError(
            parsed_type.value, quantity, "float quantities are not allowed; use Decimal or str"
        )
    if isinstance(quantity, bool) or quantity is None:
        raise InvalidMovementError(parsed_type.value, quantity, "quantity is not a number")
    try:
        value = quantity if isinstance(quantity, Decimal) else Decimal(quantity)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidMovementError(
            parsed_type.value, quantity, "quantity is not a number"
        ) from None

    if not value.is_finite():
        raise InvalidMovementError(parsed_type.value, quantity, "quantity must be finite")
    ensure_in_range(value, parsed_type)

    if parsed_type in (MovementType.OPENING, MovementType.CLOSING) and value < 0:
        raise InvalidMovementError(
            parsed_type.value, quantity, "opening and closing quantities cannot be negative"
        )

    return value, parsed_type
