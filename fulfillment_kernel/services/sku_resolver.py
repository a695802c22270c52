"""
SKUResolver -- maps a (product, requested SKU) pair to a concrete SKU.

Responsibility:
    Sits in front of the cart, batch ingestion and fulfillment.  Callers
    that predate SKUs pass sku_id = 0; the resolver falls back to the
    product's single active SKU when that is unambiguous.

Architecture position:
    Kernel > Services.  Read-only: it issues SELECTs but never writes, so
    it can share any caller's session.

Invariants enforced:
    - A resolved SKU always exists, belongs to the requested product and
      is active.
    - The legacy sentinel 0 never comes back as a resolved id.

Failure modes:
    - SKUInvalidError: explicit SKU missing, foreign or inactive; or the
      product has no active SKU at all.
    - SKURequiredError: sku_id = 0 and the product has several active SKUs.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import LEGACY_SKU_ID
from fulfillment_kernel.domain.dtos import SKUInfo
from fulfillment_kernel.exceptions import SKUInvalidError, SKURequiredError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.product import ProductSKU

logger = get_logger("services.sku_resolver")


class SKUResolver:
    """
    Resolve requested SKUs.

    Guarantees:
        - resolve(p, s) with s > 0 returns s or raises.
        - resolve(p, 0) returns the only active SKU of p or raises.
    """

    def __init__(self, session: Session):
        self._session = session

    def resolve(self, product_id: int, requested_sku_id: int = LEGACY_SKU_ID) -> SKUInfo:
        """
        Resolve the SKU a caller means.

        Args:
            product_id: Owning product.
            requested_sku_id: Explicit SKU id, or 0 for "the default one".

        Returns:
            SKUInfo of an active SKU of ``product_id``.
        """
        if requested_sku_id < 0:
            raise SKUInvalidError(product_id, requested_sku_id, "SKU id must not be negative")

        if requested_sku_id > 0:
            sku = self._session.get(ProductSKU, requested_sku_id)
            if sku is None:
                raise SKUInvalidError(product_id, requested_sku_id, "SKU does not exist")
            if sku.product_id != product_id:
                raise SKUInvalidError(
                    product_id,
                    requested_sku_id,
                    f"SKU belongs to product {sku.product_id}",
                )
            if not sku.is_active:
                raise SKUInvalidError(product_id, requested_sku_id, "SKU is inactive")
            return SKUInfo.from_model(sku)

        active = self.list_active(product_id)
        if len(active) == 1:
            logger.debug(
                "sku_fallback_resolved",
                extra={"product_id": product_id, "sku_id": active[0].sku_id},
            )
            return active[0]
        if not active:
            raise SKUInvalidError(product_id, requested_sku_id, "product has no active SKU")
        raise SKURequiredError(product_id, len(active))

    def list_active(self, product_id: int) -> list[SKUInfo]:
        """Active SKUs of a product ordered by sort_order, then id."""
        rows = self._session.execute(
            select(ProductSKU)
            .where(
                ProductSKU.product_id == product_id,
                ProductSKU.is_active.is_(True),
            )
            .order_by(ProductSKU.sort_order, ProductSKU.id)
        ).scalars().all()
        return [SKUInfo.from_model(row) for row in rows]
