"""
Module: fulfillment_kernel.models.card_secret
Responsibility: ORM persistence for the secret pool: pre-loaded deliverable
    payloads (license keys, card codes) and the import batches that loaded
    them.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - secret is globally unique (uq_card_secret_secret).  The same payload
      can never be stored twice, even under a different product or SKU.
    - Status transitions are one-directional:
          available -> used       (allocation)
          available -> disabled   (administrative)
      A used row only ever receives its audit fields (order_id,
      order_item_id, used_at) in the same UPDATE that flips its status.
    - Batch total_count is a display snapshot taken at import time.
      Allocation NEVER consults it; it always queries live secret status.

Failure modes:
    - IntegrityError on duplicate secret payload (surfaced by
      SecretPoolService as DuplicateSecretError).
    - IntegrityError on duplicate batch_no (surfaced as DuplicateBatchError).

Audit relevance:
    order_id / order_item_id / used_at on a used secret identify which
    order line received it.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Index,
    Integer,
    Select,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase
from fulfillment_kernel.db.types import LEGACY_SKU_ID

# Column length of card_secrets.secret
SECRET_MAX_LENGTH = 512


class CardSecretStatus(str, Enum):
    """Secret lifecycle status.

    Contract: AVAILABLE is the only state allocation reads from.  USED and
    DISABLED are terminal.
    """

    AVAILABLE = "available"
    USED = "used"
    DISABLED = "disabled"


class SecretSource(str, Enum):
    """How a batch entered the pool."""

    MANUAL = "manual"
    IMPORT = "import"
    GENERATE = "generate"


class CardSecretBatch(TrackedBase):
    """
    One ingestion of secrets for a (product, SKU) pair.

    Guarantees:
        - batch_no is unique.
        - total_count equals the number of rows inserted with the batch.
    """

    __tablename__ = "card_secret_batches"

    __table_args__ = (
        UniqueConstraint("batch_no", name="uq_card_secret_batch_no"),
        Index("idx_card_secret_batch_product_sku", "product_id", "sku_id"),
    )

    product_id: Mapped[int] = mapped_column(nullable=False)

    sku_id: Mapped[int] = mapped_column(nullable=False, default=LEGACY_SKU_ID)

    batch_no: Mapped[str] = mapped_column(String(64), nullable=False)

    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SecretSource.MANUAL.value,
    )

    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CardSecretBatch {self.id}: {self.batch_no} "
            f"product={self.product_id} sku={self.sku_id} count={self.total_count}>"
        )


class CardSecret(TrackedBase):
    """
    A single deliverable payload, consumed at most once.

    Contract:
        Rows are scoped to the exact (product_id, sku_id) pair.  Allocation
        for one SKU never touches a sibling SKU's rows.

    Non-goals:
        - Status is NOT mutated through attribute assignment;
          SecretPoolService issues conditional UPDATE statements keyed on
          the current status.
    """

    __tablename__ = "card_secrets"

    __table_args__ = (
        UniqueConstraint("secret", name="uq_card_secret_secret"),
        Index("idx_card_secret_pool", "product_id", "sku_id", "status"),
        Index("idx_card_secret_batch", "batch_id"),
        Index("idx_card_secret_order_item", "order_item_id"),
    )

    product_id: Mapped[int] = mapped_column(nullable=False)

    sku_id: Mapped[int] = mapped_column(nullable=False, default=LEGACY_SKU_ID)

    batch_id: Mapped[int | None] = mapped_column(nullable=True)

    secret: Mapped[str] = mapped_column(String(SECRET_MAX_LENGTH), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CardSecretStatus.AVAILABLE.value,
    )

    # Audit fields, stamped in the same UPDATE as available -> used
    order_id: Mapped[int | None] = mapped_column(nullable=True)
    order_item_id: Mapped[int | None] = mapped_column(nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @classmethod
    def count_available_stmt(cls, product_id: int, sku_id: int) -> Select:
        """Live count of available secrets for the exact (product, SKU) pair."""
        return select(func.count(cls.id)).where(
            cls.product_id == product_id,
            cls.sku_id == sku_id,
            cls.status == CardSecretStatus.AVAILABLE.value,
        )

    @property
    def is_available(self) -> bool:
        return self.status == CardSecretStatus.AVAILABLE.value

    def __repr__(self) -> str:
        return (
            f"<CardSecret {self.id}: product={self.product_id} "
            f"sku={self.sku_id} status={self.status}>"
        )
