"""Domain value objects: update sentinel, text cleaning, clocks."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from stock_ledger.domain.clock import DeterministicClock, SystemClock
from stock_ledger.domain.dtos import (
    UNSET,
    BalanceDiscrepancy,
    LedgerEntryUpdate,
    clean_text,
)


class TestLedgerEntryUpdate:

    def test_nothing_changed_by_default(self):
        assert LedgerEntryUpdate().changed_fields() == {}

    def test_none_is_a_change(self):
        assert LedgerEntryUpdate(note=None, quantity=Decimal("2")).changed_fields() == {
            "note": None,
            "quantity": Decimal("2"),
        }

    def test_frozen(self):
        update = LedgerEntryUpdate()
        with pytest.raises(AttributeError):
            update.note = "x"

    def test_unset_repr(self):
        assert repr(UNSET) == "UNSET"


@pytest.mark.parametrize(
    "raw, cleaned",
    [(None, None), ("", None), ("   ", None), (" Shelf B ", "Shelf B"), ("x", "x")],
)
def test_clean_text(raw, cleaned):
    assert clean_text(raw) == cleaned


def test_discrepancy_difference():
    d = BalanceDiscrepancy(entry_id=1, product_id=1, stored_balance=Decimal("8"), expected_balance=Decimal("10"))
    assert d.difference == Decimal("-2")


class TestClocks:

    def test_system_clock_is_utc_aware(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_deterministic_clock(self):
        start = datetime(2025, 5, 1, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.now() == start
        clock.advance(5)
        assert clock.now() == start + timedelta(seconds=5)
        assert clock.tick() == start + timedelta(seconds=6)
        clock.set_time(start)
        assert clock.now() == start
