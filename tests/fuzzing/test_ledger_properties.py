"""
Hypothesis-based property tests for the stock ledger and secret cleaning.

Random operation sequences are replayed against StockLedgerService and a
plain in-memory model of the counters.  Each step must succeed exactly when
the model says it may, and the stored row must match the model afterwards.

Boundaries fuzzed here:
- reserve / commit / release / resize interleavings (quantities 1-15)
- Ingest payload cleaning (whitespace, blanks, duplicates)
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fulfillment_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStateError,
)
from fulfillment_kernel.services.secret_pool import clean_secrets
from fulfillment_kernel.services.stock_ledger import StockLedgerService

ledger_ops = st.lists(
    st.tuples(
        st.sampled_from(["reserve", "commit", "release", "resize"]),
        st.integers(min_value=1, max_value=15),
    ),
    min_size=1,
    max_size=25,
)

FIXTURE_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)


def _model_allows(op: str, qty: int, total: int, locked: int, sold: int) -> bool:
    if op == "reserve":
        return total - locked - sold >= qty
    if op in ("commit", "release"):
        return locked >= qty
    return qty >= locked + sold


def _model_apply(op: str, qty: int, total: int, locked: int, sold: int) -> tuple[int, int, int]:
    if op == "reserve":
        return total, locked + qty, sold
    if op == "commit":
        return total, locked - qty, sold + qty
    if op == "release":
        return total, locked - qty, sold
    return qty, locked, sold


class TestLedgerSequences:

    @FIXTURE_SETTINGS
    @given(ops=ledger_ops, start_total=st.integers(min_value=0, max_value=30))
    def test_ledger_matches_model(self, session, make_product, make_sku, ops, start_total):
        product = make_product()
        sku = make_sku(product.id, manual_stock_total=start_total)
        ledger = StockLedgerService(session)
        total, locked, sold = start_total, 0, 0

        for op, qty in ops:
            action = getattr(ledger, op)
            if _model_allows(op, qty, total, locked, sold):
                snapshot = action(sku.id, qty)
                total, locked, sold = _model_apply(op, qty, total, locked, sold)
                assert (snapshot.total, snapshot.locked, snapshot.sold) == (total, locked, sold)
            else:
                with pytest.raises((InsufficientStockError, InvalidStateError)):
                    action(sku.id, qty)

            snapshot = ledger.snapshot(sku.id)
            assert snapshot.total >= snapshot.locked + snapshot.sold
            assert snapshot.available == total - locked - sold

        session.rollback()

    @FIXTURE_SETTINGS
    @given(qty=st.integers(max_value=0))
    def test_non_positive_quantity_rejected(self, session, make_product, make_sku, qty):
        product = make_product()
        sku = make_sku(product.id, manual_stock_total=5)
        ledger = StockLedgerService(session)

        for op in ("reserve", "commit", "release"):
            with pytest.raises(InvalidQuantityError):
                getattr(ledger, op)(sku.id, qty)

        assert ledger.snapshot(sku.id).available == 5


class TestCleanSecrets:

    @given(raw=st.lists(st.text(alphabet=" \tAB12-", max_size=6), max_size=30))
    def test_clean_output_is_stripped_unique_and_ordered(self, raw):
        cleaned = clean_secrets(raw)

        assert all(value and value == value.strip() for value in cleaned)
        assert len(cleaned) == len(set(cleaned))
        stripped = [value.strip() for value in raw if value.strip()]
        assert set(cleaned) == set(stripped)
        assert cleaned == sorted(set(stripped), key=stripped.index)

    @given(raw=st.lists(st.text(max_size=8), max_size=20))
    def test_cleaning_is_idempotent(self, raw):
        once = clean_secrets(raw)
        assert clean_secrets(once) == once
