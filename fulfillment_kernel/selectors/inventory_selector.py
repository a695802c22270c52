"""
Module: fulfillment_kernel.selectors.inventory_selector
Responsibility: Read model for "how many units can still be sold".
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Manual SKUs report total - locked - sold from the ledger row.
    - Auto SKUs report the live count of available secrets for the exact
      (product_id, sku_id) pair.  Batch total_count snapshots are never
      consulted.

Failure modes:
    - ProductNotFoundError: unknown product.
    - SKUInvalidError: SKU missing or owned by another product.
"""

from sqlalchemy import select

from fulfillment_kernel.domain.dtos import SKUAvailability
from fulfillment_kernel.exceptions import ProductNotFoundError, SKUInvalidError
from fulfillment_kernel.models.card_secret import CardSecret
from fulfillment_kernel.models.product import FulfillmentType, Product, ProductSKU
from fulfillment_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector):
    """Availability per SKU, computed the way each fulfillment mode consumes it."""

    def sku_availability(self, product_id: int, sku_id: int) -> SKUAvailability:
        product = self._load_product(product_id)
        sku = self.session.get(ProductSKU, sku_id)
        if sku is None or sku.product_id != product_id:
            raise SKUInvalidError(product_id, sku_id, "SKU does not belong to product")
        return self._availability(product, sku)

    def product_availability(self, product_id: int) -> list[SKUAvailability]:
        """Availability of every active SKU, in display order."""
        product = self._load_product(product_id)
        skus = self.session.execute(
            select(ProductSKU)
            .where(
                ProductSKU.product_id == product_id,
                ProductSKU.is_active.is_(True),
            )
            .order_by(ProductSKU.sort_order, ProductSKU.id)
        ).scalars().all()
        return [self._availability(product, sku) for sku in skus]

    def _availability(self, product: Product, sku: ProductSKU) -> SKUAvailability:
        mode = FulfillmentType.normalize(product.fulfillment_type)
        if mode == FulfillmentType.AUTO:
            available = self.session.execute(
                CardSecret.count_available_stmt(product.id, sku.id)
            ).scalar_one()
        else:
            available = sku.manual_available
        return SKUAvailability(
            product_id=product.id,
            sku_id=sku.id,
            sku_code=sku.sku_code,
            fulfillment_type=mode.value,
            available=available,
        )

    def _load_product(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product
