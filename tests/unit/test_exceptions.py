"""
Unit tests for the typed exception hierarchy.

Verifies:
- Every error carries a stable machine-readable code
- Structured attributes survive construction
- Catching by category works
"""

import pytest

from fulfillment_kernel.exceptions import (
    CartError,
    DuplicateBatchError,
    DuplicateSecretError,
    EmptySecretBatchError,
    FulfillmentKernelError,
    FulfillmentTypeInvalidError,
    InsufficientStockError,
    InvalidCartItemError,
    InvalidQuantityError,
    InvalidStateError,
    MigrationError,
    OptimisticLockError,
    OrderNotFoundError,
    OrderNotPaidError,
    PoolExhaustedError,
    ProductNotAvailableError,
    ProductNotFoundError,
    SecretNotFoundError,
    SecretPoolError,
    SecretTooLongError,
    SKUError,
    SKUInvalidError,
    SKURequiredError,
    StockError,
)


class TestErrorCodes:

    @pytest.mark.parametrize(
        "exc, code",
        [
            (InsufficientStockError(1, 5, 2), "INSUFFICIENT_STOCK"),
            (InvalidStateError(1, "commit", "nothing locked"), "INVALID_STATE"),
            (InvalidQuantityError(0), "INVALID_QUANTITY"),
            (PoolExhaustedError(1, 2), "POOL_EXHAUSTED"),
            (DuplicateSecretError(["A"]), "DUPLICATE_SECRET"),
            (EmptySecretBatchError(1, 2), "SECRET_BATCH_EMPTY"),
            (DuplicateBatchError("IMPORT-7"), "DUPLICATE_BATCH_NO"),
            (SecretTooLongError(1, 2, 3, 512), "SECRET_TOO_LONG"),
            (SecretNotFoundError(9), "SECRET_NOT_FOUND"),
            (SKUInvalidError(1, 2, "inactive"), "SKU_INVALID"),
            (SKURequiredError(1, 2), "SKU_REQUIRED"),
            (ProductNotFoundError(1), "PRODUCT_NOT_FOUND"),
            (ProductNotAvailableError(1), "PRODUCT_NOT_AVAILABLE"),
            (FulfillmentTypeInvalidError("robot"), "FULFILLMENT_TYPE_INVALID"),
            (OrderNotFoundError(1), "ORDER_NOT_FOUND"),
            (OrderNotPaidError(1, "pending_payment"), "ORDER_NOT_PAID"),
            (InvalidCartItemError("no product"), "INVALID_CART_ITEM"),
            (OptimisticLockError("CardSecret", "1:2", 3), "OPTIMISTIC_LOCK_CONFLICT"),
            (MigrationError("create_tables", "boom"), "MIGRATION_FAILED"),
        ],
    )
    def test_code(self, exc, code):
        assert exc.code == code
        assert isinstance(exc, FulfillmentKernelError)


class TestCategories:

    def test_stock_errors(self):
        for exc in (
            InsufficientStockError(1, 1, 0),
            InvalidStateError(1, "release", "x"),
            InvalidQuantityError(-1),
        ):
            assert isinstance(exc, StockError)

    def test_pool_errors(self):
        assert isinstance(PoolExhaustedError(1, 1), SecretPoolError)
        assert isinstance(DuplicateSecretError([]), SecretPoolError)
        assert isinstance(DuplicateBatchError("B-1"), SecretPoolError)
        assert isinstance(SecretTooLongError(1, 1, 1, 512), SecretPoolError)

    def test_sku_errors(self):
        assert isinstance(SKUInvalidError(1, 1, "x"), SKUError)
        assert isinstance(SKURequiredError(1, 2), SKUError)

    def test_cart_error(self):
        assert isinstance(InvalidCartItemError("x"), CartError)


class TestStructuredData:

    def test_insufficient_stock(self):
        exc = InsufficientStockError(sku_id=3, requested=12, available=4)
        assert (exc.sku_id, exc.requested, exc.available) == (3, 12, 4)
        assert "requested 12, available 4" in str(exc)

    def test_pool_exhausted_without_order_context(self):
        exc = PoolExhaustedError(1, 2)
        assert exc.order_id is None
        assert exc.fulfilled_item_ids == []
        assert "order" not in str(exc)

    def test_pool_exhausted_with_order_context(self):
        exc = PoolExhaustedError(1, 2, order_id=10, order_item_id=11, fulfilled_item_ids=[9])
        assert exc.order_item_id == 11
        assert exc.fulfilled_item_ids == [9]
        assert "order 10" in str(exc)

    def test_duplicate_secret_counts(self):
        exc = DuplicateSecretError(["A", "B"])
        assert exc.duplicate_count == 2
        assert exc.duplicates == ["A", "B"]

    def test_duplicate_secret_race_has_no_list(self):
        exc = DuplicateSecretError([])
        assert exc.duplicate_count == 0
        assert "concurrent" in str(exc)

    def test_migration_error_names_step(self):
        exc = MigrationError("migrate_cart_unique_index", "table constraint")
        assert exc.step == "migrate_cart_unique_index"
        assert "migrate_cart_unique_index" in str(exc)
