"""
Unit tests for movement semantics.

apply_movement is the single rule every stored balance is derived from;
these tests pin its table and the input validation that guards it.
"""

from decimal import Decimal

import pytest

from stock_ledger.domain.movement import (
    QUANTITY_INTEGER_DIGITS,
    QUANTITY_LIMIT,
    ZERO,
    MovementDirection,
    MovementType,
    apply_movement,
    direction,
    ensure_in_range,
    running_balances,
    split_in_out,
    validate_movement,
)
from stock_ledger.exceptions import InvalidMovementError

D = Decimal


class TestApplyMovement:
    """The movement table."""

    @pytest.mark.parametrize(
        "movement_type",
        [MovementType.PURCHASE, MovementType.TRANSFER_IN, MovementType.RETURN],
    )
    def test_inbound_movements_add(self, movement_type):
        assert apply_movement(D("10"), D("4"), movement_type) == D("14")

    @pytest.mark.parametrize(
        "movement_type",
        [MovementType.SALE, MovementType.TRANSFER_OUT, MovementType.WASTE],
    )
    def test_outbound_movements_subtract(self, movement_type):
        assert apply_movement(D("10"), D("4"), movement_type) == D("6")

    def test_adjustment_adds_signed_quantity(self):
        assert apply_movement(D("10"), D("3"), MovementType.ADJUSTMENT) == D("13")
        assert apply_movement(D("10"), D("-3"), MovementType.ADJUSTMENT) == D("7")

    def test_replace_leaves_balance_unchanged(self):
        assert apply_movement(D("10"), D("999"), MovementType.REPLACE) == D("10")

    @pytest.mark.parametrize("movement_type", [MovementType.OPENING, MovementType.CLOSING])
    def test_opening_and_closing_reset_to_quantity(self, movement_type):
        assert apply_movement(D("10"), D("42"), movement_type) == D("42")
        assert apply_movement(D("-5"), D("0"), movement_type) == D("0")

    def test_negative_balance_permitted(self):
        assert apply_movement(D("5"), D("8"), MovementType.SALE) == D("-3")

    def test_every_movement_type_is_handled(self):
        for movement_type in MovementType:
            result = apply_movement(D("1"), D("1"), movement_type)
            assert isinstance(result, Decimal)

    def test_exact_decimal_arithmetic(self):
        balance = ZERO
        for _ in range(10):
            balance = apply_movement(balance, D("0.1"), MovementType.PURCHASE)
        assert balance == D("1.0")

    def test_wide_values_stay_exact(self):
        # Results carry more significant digits than the default 28-digit context.
        balance = D("99999999999999999999.500000000")
        assert apply_movement(balance, D("0.000000001"), MovementType.PURCHASE) == D(
            "99999999999999999999.500000001"
        )
        assert apply_movement(balance, D("1E+28"), MovementType.SALE) == D(
            "-9999999900000000000000000000.5"
        )


class TestRunningBalances:

    def test_scenario_purchase_sale_adjust_replace(self):
        movements = [
            (D("100"), MovementType.PURCHASE),
            (D("30"), MovementType.SALE),
            (D("-5"), MovementType.ADJUSTMENT),
            (D("10"), MovementType.REPLACE),
        ]
        assert running_balances(movements) == [D("100"), D("70"), D("65"), D("65")]

    def test_opening_resets_mid_sequence(self):
        movements = [
            (D("20"), MovementType.PURCHASE),
            (D("50"), MovementType.OPENING),
            (D("5"), MovementType.SALE),
        ]
        assert running_balances(movements) == [D("20"), D("50"), D("45")]

    def test_empty_sequence(self):
        assert running_balances([]) == []

    def test_opening_argument_seeds_fold(self):
        assert running_balances([(D("1"), MovementType.SALE)], opening=D("10")) == [D("9")]


class TestDirection:

    def test_every_type_has_a_direction(self):
        for movement_type in MovementType:
            assert isinstance(direction(movement_type), MovementDirection)

    def test_split_in_out(self):
        assert split_in_out(D("5"), MovementType.PURCHASE) == (D("5"), ZERO)
        assert split_in_out(D("5"), MovementType.WASTE) == (ZERO, D("5"))
        assert split_in_out(D("-2"), MovementType.ADJUSTMENT) == (ZERO, D("2"))
        assert split_in_out(D("2"), MovementType.ADJUSTMENT) == (D("2"), ZERO)
        assert split_in_out(D("7"), MovementType.REPLACE) == (ZERO, ZERO)
        assert split_in_out(D("7"), MovementType.OPENING) == (D("7"), ZERO)


class TestParse:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("purchase", MovementType.PURCHASE),
            ("Purchase", MovementType.PURCHASE),
            ("TransferIn", MovementType.TRANSFER_IN),
            ("transfer_out", MovementType.TRANSFER_OUT),
            ("transfer-out", MovementType.TRANSFER_OUT),
            (" CLOSING ", MovementType.CLOSING),
            (MovementType.WASTE, MovementType.WASTE),
        ],
    )
    def test_accepted_spellings(self, raw, expected):
        assert MovementType.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["", "gift", "transfer", 7, None])
    def test_unknown_movement_type_rejected(self, raw):
        with pytest.raises(InvalidMovementError) as exc_info:
            MovementType.parse(raw)
        assert exc_info.value.code == "INVALID_MOVEMENT"


class TestValidateMovement:

    def test_normalizes_int_and_str(self):
        assert validate_movement(5, "sale") == (D("5"), MovementType.SALE)
        assert validate_movement("2.5", "Purchase") == (D("2.5"), MovementType.PURCHASE)

    def test_float_rejected(self):
        with pytest.raises(InvalidMovementError, match="float"):
            validate_movement(1.5, MovementType.PURCHASE)

    @pytest.mark.parametrize("quantity", ["abc", None, True, [1]])
    def test_not_a_number_rejected(self, quantity):
        with pytest.raises(InvalidMovementError, match="not a number"):
            validate_movement(quantity, MovementType.PURCHASE)

    @pytest.mark.parametrize("quantity", ["NaN", "Infinity", D("-Infinity")])
    def test_non_finite_rejected(self, quantity):
        with pytest.raises(InvalidMovementError, match="finite"):
            validate_movement(quantity, MovementType.PURCHASE)

    @pytest.mark.parametrize("movement_type", [MovementType.OPENING, MovementType.CLOSING])
    def test_negative_reset_rejected(self, movement_type):
        with pytest.raises(InvalidMovementError):
            validate_movement(D("-1"), movement_type)

    def test_negative_adjustment_allowed(self):
        assert validate_movement(D("-3"), MovementType.ADJUSTMENT)[0] == D("-3")

    def test_error_carries_structured_fields(self):
        with pytest.raises(InvalidMovementError) as exc_info:
            validate_movement("x", "sale")
        assert exc_info.value.movement_type == "sale"
        assert exc_info.value.quantity == "x"
        assert exc_info.value.reason == "quantity is not a number"

    def test_limit_matches_storage_column(self):
        from stock_ledger.db.types import QUANTITY_DECIMAL_PLACES, QUANTITY_PRECISION

        assert QUANTITY_INTEGER_DIGITS == QUANTITY_PRECISION - QUANTITY_DECIMAL_PLACES
        assert QUANTITY_LIMIT == D(10) ** QUANTITY_INTEGER_DIGITS

    def test_largest_integer_part_accepted(self):
        largest = D("9" * QUANTITY_INTEGER_DIGITS)
        assert validate_movement(largest, MovementType.PURCHASE)[0] == largest

    @pytest.mark.parametrize("quantity", ["1E+29", "-1E+29", "123456789012345678901234567890"])
    def test_out_of_range_rejected(self, quantity):
        with pytest.raises(InvalidMovementError, match="integer digits"):
            validate_movement(quantity, MovementType.ADJUSTMENT)


class TestEnsureInRange:

    def test_in_range_value_returned(self):
        assert ensure_in_range(D("-5"), MovementType.SALE) == D("-5")

    def test_balance_at_limit_rejected(self):
        with pytest.raises(InvalidMovementError) as exc_info:
            ensure_in_range(QUANTITY_LIMIT, MovementType.PURCHASE, "resulting balance")
        assert exc_info.value.movement_type == "purchase"
        assert exc_info.value.reason == "resulting balance exceeds 29 integer digits"
