"""Read-side queries: history ranges, lookups, report rows and verify()."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from stock_ledger.domain.dtos import NewLedgerEntry
from stock_ledger.domain.movement import ZERO, MovementType, ReferenceType
from stock_ledger.models.stock_ledger import StockLedgerEntry
from stock_ledger.selectors.ledger_selector import LedgerSelector

D = Decimal


@pytest.fixture
def stocked(record):
    """Four movements of product 1, one second apart, plus one of product 2."""
    entries = [
        record(1, MovementType.PURCHASE, "100", reference_type=ReferenceType.GRN, reference_id=11),
        record(1, MovementType.SALE, "30", reference_type=ReferenceType.SALE, reference_id=21),
        record(1, MovementType.ADJUSTMENT, "-5", reference_type=ReferenceType.ADJUSTMENT),
        record(1, MovementType.SALE, "10", reference_type=ReferenceType.SALE, reference_id=22),
    ]
    record(2, MovementType.SALE, "1", reference_type=ReferenceType.SALE, reference_id=21)
    return entries


class TestHistory:

    def test_range_bounds_are_inclusive(self, ledger, stocked):
        window = ledger.history(1, stocked[1].created_at, stocked[2].created_at)
        assert [e.id for e in window] == [stocked[1].id, stocked[2].id]

    def test_open_ended_ranges(self, ledger, stocked):
        assert [e.id for e in ledger.history(1, from_time=stocked[2].created_at)] == [
            stocked[2].id, stocked[3].id,
        ]
        assert [e.id for e in ledger.history(1, to_time=stocked[0].created_at)] == [stocked[0].id]

    def test_empty_window(self, ledger, stocked):
        later = stocked[-1].created_at + timedelta(days=1)
        assert ledger.history(1, later, later + timedelta(days=1)) == []

    def test_fresh_call_rereads_storage(self, ledger, stocked, record):
        first = ledger.history(1)
        record(1, MovementType.PURCHASE, "1")
        assert len(ledger.history(1)) == len(first) + 1

    def test_latest(self, ledger, stocked):
        assert ledger.latest(1).id == stocked[-1].id
        assert ledger.latest(1).balance == D("55")


class TestLookups:

    def test_get(self, ledger, stocked):
        assert ledger.get(stocked[0].id) == stocked[0]
        assert ledger.get(99999) is None

    def test_by_movement_type_newest_first(self, ledger, stocked):
        sales = ledger.by_movement_type("Sale")
        assert [e.movement_type for e in sales] == [MovementType.SALE] * 3
        assert [e.product_id for e in sales] == [2, 1, 1]
        assert sales[1].id == stocked[3].id

    def test_by_reference(self, ledger, stocked):
        by_doc = ledger.by_reference(ReferenceType.SALE, 21)
        assert {e.product_id for e in by_doc} == {1, 2}
        assert [e.reference_id for e in ledger.by_reference("grn")] == [11]
        assert len(ledger.by_reference(reference_id=22)) == 1
        assert len(ledger.by_reference()) == 5


class TestReport:

    def test_in_out_split_and_balance(self, ledger, stocked):
        rows = ledger.report(1)
        assert [(r.in_qty, r.out_qty, r.balance) for r in rows] == [
            (D("100"), ZERO, D("100")),
            (ZERO, D("30"), D("70")),
            (ZERO, D("5"), D("65")),
            (ZERO, D("10"), D("55")),
        ]
        assert rows[0].ref_no == "11"
        assert rows[2].ref_no == "-"

    def test_display_names_from_catalog(self, ledger, catalog):
        product_id, unit_id = catalog("Basmati Rice 5kg", "bag")
        ledger.append(NewLedgerEntry(product_id, MovementType.PURCHASE, D("4"), unit_id=unit_id))
        ledger.append(NewLedgerEntry(product_id, MovementType.SALE, D("1")))
        rows = ledger.report(product_id)
        assert {r.product_name for r in rows} == {"Basmati Rice 5kg"}
        assert [r.unit_name for r in rows] == ["bag", None]

    def test_unknown_product_has_no_names(self, ledger, stocked):
        assert all(r.product_name is None for r in ledger.report(1))

    def test_report_range(self, ledger, stocked):
        rows = ledger.report(1, stocked[3].created_at, stocked[3].created_at)
        assert [r.entry_id for r in rows] == [stocked[3].id]


class TestVerify:

    def test_consistent_ledger(self, ledger, stocked):
        assert ledger.verify(1) == []

    def test_reports_corruption_without_repairing(self, ledger, stocked, session):
        corrupted = stocked[1]
        session.execute(
            update(StockLedgerEntry)
            .where(StockLedgerEntry.id == corrupted.id)
            .values(balance=D("71"))
        )
        session.commit()

        found = ledger.verify(1)
        assert [d.entry_id for d in found] == [corrupted.id]
        assert found[0].stored_balance == D("71")
        assert found[0].expected_balance == D("70")
        assert found[0].difference == D("1")
        # Stored values are returned as they are.
        assert ledger.get(corrupted.id).balance == D("71")
        assert ledger.verify(1) == found

    def test_selector_used_directly(self, session, stocked):
        selector = LedgerSelector(session)
        assert selector.current_balance(1) == D("55")
        assert selector.current_balance(3) == ZERO
