"""
Module: fulfillment_kernel.models.cart
Responsibility: ORM persistence for shopping cart lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One line per (user_id, product_id, sku_id), enforced by the unique
      index idx_cart_user_product_sku.  Schemas created before SKUs had a
      unique index on (user_id, product_id) only; the migration runner
      replaces it.
"""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase
from fulfillment_kernel.db.types import LEGACY_SKU_ID

CART_UNIQUE_INDEX = "idx_cart_user_product_sku"
LEGACY_CART_UNIQUE_INDEX = "idx_cart_user_product"


class CartItem(TrackedBase):
    """A quantity of one SKU in a user's cart."""

    __tablename__ = "cart_items"

    __table_args__ = (
        Index(
            CART_UNIQUE_INDEX,
            "user_id",
            "product_id",
            "sku_id",
            unique=True,
        ),
    )

    user_id: Mapped[int] = mapped_column(nullable=False)

    product_id: Mapped[int] = mapped_column(nullable=False)

    sku_id: Mapped[int] = mapped_column(nullable=False, default=LEGACY_SKU_ID)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    fulfillment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<CartItem {self.id}: user={self.user_id} product={self.product_id} "
            f"sku={self.sku_id} qty={self.quantity}>"
        )
