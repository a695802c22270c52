"""
Module: fulfillment_kernel.models.order
Responsibility: ORM persistence for orders and order lines, as consumed by
    the fulfillment path.  Order creation and payment live outside the
    kernel; this module only needs the rows to exist and the status to be
    readable.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Order items are immutable after payment.  The single exception is the
      legacy migration, which rewrites sku_id = 0 to the product's default
      SKU id.
    - order_items.fulfillment_type is a snapshot of the product's type at
      order time.  It is used when the product row no longer exists.

Failure modes:
    - IntegrityError on duplicate order_no.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase
from fulfillment_kernel.db.types import LEGACY_SKU_ID, Money


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    FULFILLING = "fulfilling"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELED = "canceled"


# Statuses at which an order counts as paid for fulfillment purposes
PAID_STATUSES: frozenset[str] = frozenset({
    OrderStatus.PAID.value,
    OrderStatus.FULFILLING.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.COMPLETED.value,
})


class Order(TrackedBase):
    """
    A customer order.

    Guarantees:
        - order_no is unique.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_no", name="uq_order_no"),
        Index("idx_order_user", "user_id"),
        Index("idx_order_status", "status"),
    )

    order_no: Mapped[str] = mapped_column(String(64), nullable=False)

    user_id: Mapped[int | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=OrderStatus.PENDING_PAYMENT.value,
    )

    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="CNY")

    total_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    @property
    def is_paid(self) -> bool:
        return self.status in PAID_STATUSES

    def __repr__(self) -> str:
        return f"<Order {self.id}: {self.order_no} status={self.status}>"


class OrderItem(TrackedBase):
    """
    One line of an order: a quantity of one SKU of one product.
    """

    __tablename__ = "order_items"

    __table_args__ = (
        Index("idx_order_item_order", "order_id"),
        Index("idx_order_item_product_sku", "product_id", "sku_id"),
    )

    order_id: Mapped[int] = mapped_column(nullable=False)

    product_id: Mapped[int] = mapped_column(nullable=False)

    sku_id: Mapped[int] = mapped_column(nullable=False, default=LEGACY_SKU_ID)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    unit_price: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    total_price: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    fulfillment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<OrderItem {self.id}: order={self.order_id} product={self.product_id} "
            f"sku={self.sku_id} qty={self.quantity}>"
        )
