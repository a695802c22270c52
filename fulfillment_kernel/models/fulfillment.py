"""
Module: fulfillment_kernel.models.fulfillment
Responsibility: ORM persistence for the delivery record of a fulfilled order
    item.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one Fulfillment per order item (uq_fulfillment_order_item).
      This constraint is what makes create_auto idempotent under
      concurrent re-runs: the losing writer rolls back its whole item
      transaction, returning any secrets it took to the pool.

Failure modes:
    - IntegrityError on a second row for the same order_item_id.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase


class FulfillmentStatus(str, Enum):
    """Delivery state of a fulfilled item.

    DELIVERED: secrets were allocated and are in the payload.
    AWAITING_MANUAL: quota was committed; an operator delivers out of band.
    """

    DELIVERED = "delivered"
    AWAITING_MANUAL = "awaiting_manual"


class Fulfillment(TrackedBase):
    """Result of fulfilling one order item."""

    __tablename__ = "fulfillments"

    __table_args__ = (
        UniqueConstraint("order_item_id", name="uq_fulfillment_order_item"),
        Index("idx_fulfillment_order", "order_id"),
    )

    order_id: Mapped[int] = mapped_column(nullable=False)

    order_item_id: Mapped[int] = mapped_column(nullable=False)

    fulfillment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False)

    # Newline-joined secrets for auto items; NULL for manual items
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Fulfillment {self.id}: order={self.order_id} "
            f"item={self.order_item_id} status={self.status}>"
        )
