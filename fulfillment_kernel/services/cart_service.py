"""
CartService -- per-user cart lines keyed by (product, SKU).

Responsibility:
    Adds, re-quantifies, lists and removes cart lines.  Every line is bound
    to a concrete SKU resolved through SKUResolver, so two SKUs of the same
    product are separate lines.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - One line per (user_id, product_id, sku_id) (idx_cart_user_product_sku).
      upsert_item() sets the quantity of the existing line.
    - Stored lines always carry a resolved sku_id; the legacy 0 is only
      seen on rows written before the migration ran.

Failure modes:
    - InvalidCartItemError: missing ids or non-positive quantity.
    - ProductNotAvailableError: product missing or inactive.
    - SKUInvalidError / SKURequiredError: from the resolver.
    - FulfillmentTypeInvalidError: product carries an unknown type.
    - InsufficientStockError: manual SKU cannot cover the quantity.
    - IntegrityError: two concurrent first inserts of the same line; the
      caller may retry, which then updates the winner's row.
"""

from sqlalchemy import select

from fulfillment_kernel.db.types import LEGACY_SKU_ID
from fulfillment_kernel.domain.dtos import CartLine, SKUInfo
from fulfillment_kernel.exceptions import (
    FulfillmentTypeInvalidError,
    InsufficientStockError,
    InvalidCartItemError,
    ProductNotAvailableError,
    SKUError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.cart import CartItem
from fulfillment_kernel.models.product import FulfillmentType, Product
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.sku_resolver import SKUResolver

logger = get_logger("services.cart")


class CartService(BaseService):
    """Cart lines with SKU resolution and manual stock pre-checks."""

    def upsert_item(
        self,
        user_id: int,
        product_id: int,
        quantity: int,
        sku_id: int = LEGACY_SKU_ID,
    ) -> CartLine:
        """
        Put ``quantity`` units of a SKU in the user's cart.

        The stock check is advisory: nothing is reserved until checkout.
        """
        if user_id <= 0 or product_id <= 0:
            raise InvalidCartItemError("user_id and product_id are required")
        if quantity <= 0:
            raise InvalidCartItemError(f"quantity must be positive, got {quantity}")

        product = self.session.get(Product, product_id)
        if product is None or not product.is_active:
            raise ProductNotAvailableError(product_id)

        sku = SKUResolver(self.session).resolve(product_id, sku_id)
        fulfillment_type = FulfillmentType.normalize(product.fulfillment_type)
        if (
            fulfillment_type == FulfillmentType.MANUAL
            and sku.manual_available < quantity
        ):
            raise InsufficientStockError(sku.sku_id, quantity, sku.manual_available)

        item = self.session.execute(
            select(CartItem).where(
                CartItem.user_id == user_id,
                CartItem.product_id == product_id,
                CartItem.sku_id == sku.sku_id,
            )
        ).scalar_one_or_none()
        if item is None:
            item = CartItem(
                user_id=user_id,
                product_id=product_id,
                sku_id=sku.sku_id,
                quantity=quantity,
                fulfillment_type=fulfillment_type.value,
            )
            self.session.add(item)
            event = "cart_item_added"
        else:
            item.quantity = quantity
            item.fulfillment_type = fulfillment_type.value
            event = "cart_item_updated"
        self.session.flush()

        logger.info(
            event,
            extra={
                "user_id": user_id,
                "product_id": product_id,
                "sku_id": sku.sku_id,
                "quantity": quantity,
            },
        )
        return self._to_line(item, sku, fulfillment_type)

    def list_by_user(self, user_id: int) -> list[CartLine]:
        """
        Return the user's still-purchasable cart lines.

        Lines whose product is gone or inactive, whose SKU no longer
        resolves, or whose manual SKU is sold out are deleted on the way.
        """
        if user_id <= 0:
            raise InvalidCartItemError("user_id is required")

        items = self.session.execute(
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.id)
        ).scalars().all()

        resolver = SKUResolver(self.session)
        lines: list[CartLine] = []
        for item in items:
            product = self.session.get(Product, item.product_id)
            if product is None or not product.is_active:
                self._prune(item, "product_unavailable")
                continue
            try:
                sku = resolver.resolve(item.product_id, item.sku_id)
                fulfillment_type = FulfillmentType.normalize(product.fulfillment_type)
            except (SKUError, FulfillmentTypeInvalidError) as exc:
                self._prune(item, exc.code)
                continue
            if (
                fulfillment_type == FulfillmentType.MANUAL
                and sku.manual_available <= 0
            ):
                self._prune(item, "sold_out")
                continue
            lines.append(self._to_line(item, sku, fulfillment_type))

        self.session.flush()
        return lines

    def remove_item(
        self,
        user_id: int,
        product_id: int,
        sku_id: int = LEGACY_SKU_ID,
    ) -> bool:
        """Delete one line.  Returns False when there was nothing to delete."""
        if user_id <= 0 or product_id <= 0:
            raise InvalidCartItemError("user_id and product_id are required")

        item = self.session.execute(
            select(CartItem).where(
                CartItem.user_id == user_id,
                CartItem.product_id == product_id,
                CartItem.sku_id == sku_id,
            )
        ).scalar_one_or_none()
        if item is None:
            return False
        self.session.delete(item)
        self.session.flush()
        logger.info(
            "cart_item_removed",
            extra={"user_id": user_id, "product_id": product_id, "sku_id": sku_id},
        )
        return True

    # -------------------------------------------------------------------------

    def _prune(self, item: CartItem, reason: str) -> None:
        self.session.delete(item)
        logger.info(
            "cart_line_pruned",
            extra={
                "user_id": item.user_id,
                "product_id": item.product_id,
                "sku_id": item.sku_id,
                "reason": reason,
            },
        )

    @staticmethod
    def _to_line(
        item: CartItem,
        sku: SKUInfo,
        fulfillment_type: FulfillmentType,
    ) -> CartLine:
        return CartLine(
            cart_item_id=item.id,
            user_id=item.user_id,
            product_id=item.product_id,
            sku_id=sku.sku_id,
            sku_code=sku.sku_code,
            quantity=item.quantity,
            unit_price=sku.price_amount,
            fulfillment_type=fulfillment_type.value,
        )
