"""
Module: fulfillment_kernel.models.product
Responsibility: ORM persistence for products and their purchasable variants
    (SKUs).  The SKU row is the unit the stock ledger and the secret pool
    operate on.
Architecture position: Kernel > Models.  May import from db/ and exceptions only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - (product_id, sku_code) is unique (uq_product_sku_code).  The legacy
      migration relies on this constraint as its serialization point: two
      runners can never both synthesize the default SKU of one product.
    - Stock counters are non-negative and manual_stock_total >=
      manual_stock_locked + manual_stock_sold (CHECK constraints, backed by
      the conditional updates in StockLedgerService).
    - product_id is a plain indexed integer with NO foreign key; entities are
      loaded by identifier, never through relationships.

Failure modes:
    - IntegrityError on duplicate (product_id, sku_code) or a CHECK violation.

Design notes:
    The product-level stock counters and price predate SKUs.  They are kept
    because the migration copies them into the default SKU of each legacy
    product, and single-SKU products keep them in sync for display.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase
from fulfillment_kernel.db.types import Money
from fulfillment_kernel.exceptions import FulfillmentTypeInvalidError

DEFAULT_SKU_CODE = "DEFAULT"


class FulfillmentType(str, Enum):
    """How sold units of a product are delivered.

    Contract: Every product has exactly one FulfillmentType.  AUTO hands out
    one pooled secret per unit; MANUAL decrements a counted quota and leaves
    delivery to an operator.
    """

    AUTO = "auto"
    MANUAL = "manual"

    @classmethod
    def normalize(cls, raw: "str | FulfillmentType | None") -> "FulfillmentType":
        """Parse a stored or user-supplied value.  Blank means MANUAL."""
        if isinstance(raw, FulfillmentType):
            return raw
        value = (raw or "").strip().lower()
        if value == "":
            return cls.MANUAL
        try:
            return cls(value)
        except ValueError:
            raise FulfillmentTypeInvalidError(str(raw)) from None


class Product(TrackedBase):
    """
    A sellable product.  Owns its SKUs by product_id.

    Guarantees:
        - slug is unique.
        - fulfillment_type decides the fulfillment handler for every SKU.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("slug", name="uq_product_slug"),
        Index("idx_product_active", "is_active"),
    )

    slug: Mapped[str] = mapped_column(String(190), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    price_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    fulfillment_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=FulfillmentType.MANUAL.value,
    )

    # Pre-SKU stock counters, copied verbatim into the default SKU on migration
    manual_stock_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_stock_locked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_stock_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return (
            f"<Product {self.id}: {self.slug} "
            f"type={self.fulfillment_type} active={self.is_active}>"
        )


class ProductSKU(TrackedBase):
    """
    A purchasable variant of a product with its own price and stock counters.

    Contract:
        For MANUAL products the three counters are the quota ledger and
        total >= locked + sold always holds.  For AUTO products the counters
        are informational; availability is the count of available secrets
        bound to (product_id, id).

    Non-goals:
        - Counter arithmetic is NOT done through ORM attribute assignment;
          StockLedgerService issues guarded UPDATE statements.
    """

    __tablename__ = "product_skus"

    __table_args__ = (
        UniqueConstraint("product_id", "sku_code", name="uq_product_sku_code"),
        Index("idx_product_sku_product_active", "product_id", "is_active"),
        CheckConstraint("manual_stock_total >= 0", name="ck_sku_total_non_negative"),
        CheckConstraint("manual_stock_locked >= 0", name="ck_sku_locked_non_negative"),
        CheckConstraint("manual_stock_sold >= 0", name="ck_sku_sold_non_negative"),
        CheckConstraint(
            "manual_stock_total >= manual_stock_locked + manual_stock_sold",
            name="ck_sku_stock_balance",
        ),
    )

    product_id: Mapped[int] = mapped_column(nullable=False)

    sku_code: Mapped[str] = mapped_column(String(64), nullable=False)

    spec_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    price_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    manual_stock_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_stock_locked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_stock_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def manual_available(self) -> int:
        """Quota still free to reserve."""
        return (
            self.manual_stock_total
            - self.manual_stock_locked
            - self.manual_stock_sold
        )

    def __repr__(self) -> str:
        return (
            f"<ProductSKU {self.id}: product={self.product_id} code={self.sku_code} "
            f"stock={self.manual_stock_total}/{self.manual_stock_locked}/"
            f"{self.manual_stock_sold}>"
        )
