"""
Property tests for the running-balance invariant.

Random sequences of appends (tail and back-dated), updates and removes are
applied to a real ledger; after every step the stored balances must equal
the fold of apply_movement over the product's history.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from stock_ledger.domain.dtos import LedgerEntryUpdate, NewLedgerEntry
from stock_ledger.domain.movement import MovementType, running_balances

try:
    from hypothesis import HealthCheck, given, settings
    from hypothesis import strategies as st
except ImportError:
    pytest.skip("hypothesis not installed", allow_module_level=True)


quantities = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1000"), places=3,
    allow_nan=False, allow_infinity=False,
)
movement_types = st.sampled_from(list(MovementType))

operations = st.lists(
    st.one_of(
        st.tuples(st.just("append"), movement_types, quantities, st.integers(1, 2)),
        st.tuples(st.just("backdate"), movement_types, quantities, st.integers(0, 600)),
        st.tuples(st.just("update"), movement_types, quantities, st.integers(0, 50)),
        st.tuples(st.just("move"), st.integers(0, 50), st.integers(1, 2)),
        st.tuples(st.just("remove"), st.integers(0, 50)),
    ),
    min_size=1,
    max_size=15,
)


def assert_invariant(ledger, product_id):
    history = ledger.history(product_id)
    assert [e.balance for e in history] == running_balances(
        (e.quantity, e.movement_type) for e in history
    )


@settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(ops=operations)
def test_fold_invariant_holds_after_every_mutation(ledger, deterministic_clock, ops):
    start = deterministic_clock.now()
    ids: list[int] = []
    for op in ops:
        kind = op[0]
        if kind == "append":
            _, movement_type, quantity, product_id = op
            deterministic_clock.advance(1)
            ids.append(ledger.append(NewLedgerEntry(product_id, movement_type, quantity)).id)
        elif kind == "backdate":
            _, movement_type, quantity, offset = op
            entry = ledger.append(
                NewLedgerEntry(
                    1, movement_type, quantity,
                    created_at=start + timedelta(milliseconds=offset * 100),
                )
            )
            ids.append(entry.id)
        elif ids and kind == "update":
            _, movement_type, quantity, index = op
            ledger.update(
                ids[index % len(ids)],
                LedgerEntryUpdate(movement_type=movement_type, quantity=quantity),
            )
        elif ids and kind == "move":
            _, index, product_id = op
            ledger.update(ids[index % len(ids)], LedgerEntryUpdate(product_id=product_id))
        elif ids and kind == "remove":
            _, index = op
            ledger.remove(ids.pop(index % len(ids)))

        assert_invariant(ledger, 1)
        assert_invariant(ledger, 2)

    for product_id in (1, 2):
        assert ledger.verify(product_id) == []
