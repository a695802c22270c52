"""
Tests for ProductSKUService.

Covers:
- sync_single_sku: create default, update single, skip multi-SKU products
- apply_skus: create / update by id / update by code / deactivate
- Stock totals go through the ledger (never below locked + sold)
- Input validation and derived product fields
"""

from decimal import Decimal

import pytest

from fulfillment_kernel.domain.dtos import SKUInput
from fulfillment_kernel.exceptions import (
    InvalidQuantityError,
    InvalidStateError,
    ProductNotFoundError,
    SKUInvalidError,
)
from fulfillment_kernel.models import FulfillmentType, Product
from fulfillment_kernel.services.product_sku_service import ProductSKUService


@pytest.fixture
def skus(session):
    return ProductSKUService(session)


def _by_code(summary) -> dict:
    return {info.sku_code: info for info in summary.skus}


class TestSyncSingleSKU:

    def test_creates_default_sku(self, skus, make_product):
        product = make_product()

        info = skus.sync_single_sku(product.id, Decimal("128"), 20)

        assert info.sku_code == "DEFAULT"
        assert info.price_amount == Decimal("128.00")
        assert info.manual_stock_total == 20
        assert info.is_active is True

    def test_updates_existing_single_sku(self, skus, make_product, make_sku):
        product = make_product()
        sku = make_sku(product.id, manual_stock_total=10, manual_stock_locked=2, is_active=False)

        info = skus.sync_single_sku(product.id, Decimal("9.999"), 15)

        assert info.sku_id == sku.id
        assert info.price_amount == Decimal("10.00")
        assert info.manual_stock_total == 15
        assert info.manual_stock_locked == 2
        assert info.is_active is True

    def test_cannot_shrink_below_usage(self, skus, make_product, make_sku):
        product = make_product()
        make_sku(product.id, manual_stock_total=10, manual_stock_locked=3, manual_stock_sold=4)

        with pytest.raises(InvalidStateError):
            skus.sync_single_sku(product.id, Decimal("10"), 6)

    def test_multi_sku_product_skipped(self, skus, make_product, make_sku):
        product = make_product()
        make_sku(product.id, "DEFAULT")
        make_sku(product.id, "PRO")

        assert skus.sync_single_sku(product.id, Decimal("10"), 5) is None

    def test_negative_total(self, skus, make_product):
        product = make_product()
        with pytest.raises(InvalidQuantityError):
            skus.sync_single_sku(product.id, Decimal("10"), -1)

    def test_unknown_product(self, skus):
        with pytest.raises(ProductNotFoundError):
            skus.sync_single_sku(999, Decimal("10"), 1)


class TestApplySKUs:

    def test_creates_skus_and_derives_product_fields(self, session, skus, make_product):
        product = make_product()

        summary = skus.apply_skus(
            product.id,
            FulfillmentType.MANUAL,
            [
                SKUInput("BASIC", Decimal("9.90"), manual_stock_total=5),
                SKUInput("PRO", Decimal("19.90"), manual_stock_total=3, sort_order=1),
                SKUInput("DRAFT", Decimal("1.00"), manual_stock_total=7, is_active=False),
            ],
        )

        assert set(_by_code(summary)) == {"BASIC", "PRO", "DRAFT"}
        assert summary.min_price == Decimal("9.90")
        assert summary.manual_stock_total == 8
        refreshed = session.get(Product, product.id)
        assert refreshed.price_amount == Decimal("9.90")
        assert refreshed.manual_stock_total == 8

    def test_auto_products_carry_zero_totals(self, skus, make_product):
        product = make_product(fulfillment_type=FulfillmentType.AUTO)

        summary = skus.apply_skus(
            product.id,
            "auto",
            [SKUInput("KEY", Decimal("5"), manual_stock_total=50)],
        )

        assert summary.skus[0].manual_stock_total == 0
        assert summary.manual_stock_total == 0

    def test_update_by_code_is_case_insensitive(self, skus, make_product, make_sku):
        product = make_product()
        existing = make_sku(product.id, "PRO", manual_stock_total=4)

        summary = skus.apply_skus(
            product.id,
            FulfillmentType.MANUAL,
            [SKUInput("pro", Decimal("30"), manual_stock_total=9)],
        )

        info = summary.skus[0]
        assert info.sku_id == existing.id
        assert info.sku_code == "pro"
        assert info.manual_stock_total == 9

    def test_rename_by_id(self, skus, make_product, make_sku):
        product = make_product()
        existing = make_sku(product.id, "OLD-NAME")

        summary = skus.apply_skus(
            product.id,
            FulfillmentType.MANUAL,
            [SKUInput("NEW-NAME", Decimal("10"), sku_id=existing.id)],
        )

        assert [(s.sku_id, s.sku_code) for s in summary.skus] == [(existing.id, "NEW-NAME")]

    def test_unmentioned_skus_deactivated_not_deleted(self, skus, make_product, make_sku):
        product = make_product()
        keep = make_sku(product.id, "KEEP")
        drop = make_sku(product.id, "DROP", manual_stock_total=3, manual_stock_sold=1)

        summary = skus.apply_skus(
            product.id,
            FulfillmentType.MANUAL,
            [SKUInput("KEEP", Decimal("10"), sku_id=keep.id)],
        )

        by_code = _by_code(summary)
        assert by_code["KEEP"].is_active is True
        assert by_code["DROP"].is_active is False
        assert by_code["DROP"].sku_id == drop.id
        assert by_code["DROP"].manual_stock_sold == 1

    def test_total_below_usage_rejected(self, skus, make_product, make_sku):
        product = make_product()
        sku = make_sku(product.id, "ONE", manual_stock_total=10, manual_stock_locked=5)

        with pytest.raises(InvalidStateError):
            skus.apply_skus(
                product.id,
                FulfillmentType.MANUAL,
                [SKUInput("ONE", Decimal("10"), manual_stock_total=4, sku_id=sku.id)],
            )

    def test_code_taken_by_other_sku(self, skus, make_product, make_sku):
        product = make_product()
        first = make_sku(product.id, "A")
        make_sku(product.id, "B")

        with pytest.raises(SKUInvalidError):
            skus.apply_skus(
                product.id,
                FulfillmentType.MANUAL,
                [SKUInput("B", Decimal("10"), sku_id=first.id)],
            )

    def test_foreign_sku_id(self, skus, make_product, make_sku):
        product = make_product()
        other = make_product()
        foreign = make_sku(other.id)

        with pytest.raises(SKUInvalidError):
            skus.apply_skus(
                product.id,
                FulfillmentType.MANUAL,
                [SKUInput("X", Decimal("10"), sku_id=foreign.id)],
            )

    @pytest.mark.parametrize(
        "inputs",
        [
            [],
            [SKUInput("  ", Decimal("10"))],
            [SKUInput("A", Decimal("10")), SKUInput("a", Decimal("12"))],
            [SKUInput("A", Decimal("0"))],
            [SKUInput("A", Decimal("10"), is_active=False)],
        ],
        ids=["empty", "blank-code", "repeated-code", "zero-price", "none-active"],
    )
    def test_invalid_inputs(self, skus, make_product, inputs):
        product = make_product()
        with pytest.raises(SKUInvalidError):
            skus.apply_skus(product.id, FulfillmentType.MANUAL, inputs)

    def test_negative_total(self, skus, make_product):
        product = make_product()
        with pytest.raises(InvalidQuantityError):
            skus.apply_skus(
                product.id,
                FulfillmentType.MANUAL,
                [SKUInput("A", Decimal("10"), manual_stock_total=-1)],
            )
