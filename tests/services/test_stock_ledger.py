"""
Tests for StockLedgerService.

Covers:
- reserve / commit / release / resize happy paths
- Guards: insufficient stock, over-commit, over-release, resize below usage
- Quantity validation
- Structured log events
"""

import pytest

from fulfillment_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStateError,
    SKUInvalidError,
)
from fulfillment_kernel.services.stock_ledger import StockLedgerService


@pytest.fixture
def ledger(session):
    return StockLedgerService(session)


@pytest.fixture
def sku(make_product, make_sku):
    """Manual SKU with total 20, locked 3, sold 5 (12 available)."""
    product = make_product()
    return make_sku(
        product.id,
        manual_stock_total=20,
        manual_stock_locked=3,
        manual_stock_sold=5,
    )


class TestReserve:

    def test_reserve_locks_quantity(self, ledger, sku):
        snapshot = ledger.reserve(sku.id, 12)

        assert snapshot.total == 20
        assert snapshot.locked == 15
        assert snapshot.sold == 5
        assert snapshot.available == 0

    def test_reserve_beyond_available_rejected(self, ledger, sku):
        ledger.reserve(sku.id, 12)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.reserve(sku.id, 1)

        assert exc_info.value.requested == 1
        assert exc_info.value.available == 0
        assert ledger.snapshot(sku.id).locked == 15

    def test_failed_reserve_changes_nothing(self, ledger, sku):
        with pytest.raises(InsufficientStockError):
            ledger.reserve(sku.id, 13)

        snapshot = ledger.snapshot(sku.id)
        assert (snapshot.total, snapshot.locked, snapshot.sold) == (20, 3, 5)

    def test_unknown_sku(self, ledger):
        with pytest.raises(SKUInvalidError):
            ledger.reserve(999_999, 1)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, ledger, sku, quantity):
        with pytest.raises(InvalidQuantityError):
            ledger.reserve(sku.id, quantity)


class TestCommitAndRelease:

    def test_commit_moves_locked_to_sold(self, ledger, sku):
        snapshot = ledger.commit(sku.id, 2)

        assert snapshot.locked == 1
        assert snapshot.sold == 7
        assert snapshot.available == 12

    def test_commit_more_than_locked_rejected(self, ledger, sku):
        with pytest.raises(InvalidStateError) as exc_info:
            ledger.commit(sku.id, 4)
        assert exc_info.value.operation == "commit"

    def test_release_returns_to_available(self, ledger, sku):
        snapshot = ledger.release(sku.id, 3)

        assert snapshot.locked == 0
        assert snapshot.sold == 5
        assert snapshot.available == 15

    def test_release_more_than_locked_rejected(self, ledger, sku):
        with pytest.raises(InvalidStateError) as exc_info:
            ledger.release(sku.id, 4)
        assert exc_info.value.operation == "release"

    def test_counters_never_negative(self, ledger, sku):
        ledger.release(sku.id, 3)
        with pytest.raises(InvalidStateError):
            ledger.release(sku.id, 1)
        assert ledger.snapshot(sku.id).locked == 0


class TestResize:

    def test_resize_up(self, ledger, sku):
        snapshot = ledger.resize(sku.id, 50)
        assert snapshot.total == 50
        assert snapshot.available == 42

    def test_resize_down_to_usage(self, ledger, sku):
        snapshot = ledger.resize(sku.id, 8)
        assert snapshot.available == 0

    def test_resize_below_usage_rejected(self, ledger, sku):
        with pytest.raises(InvalidStateError) as exc_info:
            ledger.resize(sku.id, 7)
        assert exc_info.value.operation == "resize"
        assert ledger.snapshot(sku.id).total == 20

    def test_negative_total_rejected(self, ledger, sku):
        with pytest.raises(InvalidQuantityError):
            ledger.resize(sku.id, -1)


class TestLedgerLogging:

    def test_reserve_logs_counters(self, ledger, sku, captured_logs):
        ledger.reserve(sku.id, 2)

        events = [r for r in captured_logs() if r["message"] == "stock_reserved"]
        assert len(events) == 1
        assert events[0]["sku_id"] == sku.id
        assert events[0]["locked"] == 5
        assert events[0]["available"] == 10

    def test_insufficient_logged(self, ledger, sku, captured_logs):
        with pytest.raises(InsufficientStockError):
            ledger.reserve(sku.id, 100)

        assert any(r["message"] == "stock_insufficient" for r in captured_logs())
