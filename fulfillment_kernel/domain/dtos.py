"""
DTOs -- immutable data transfer objects returned by kernel services.

Responsibility:
    Services and selectors hand these frozen dataclasses to callers instead
    of ORM rows, so nothing outside a unit of work can mutate persisted
    state by accident and results stay valid after the session closes.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.
    from_model() class methods are boundary converters invoked only from
    the service and selector layers.

Invariants enforced:
    - Every DTO is frozen.
    - StockSnapshot.available is always total - locked - sold as read in
      the same row image.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fulfillment_kernel.models.fulfillment import Fulfillment
    from fulfillment_kernel.models.product import ProductSKU


# =============================================================================
# Stock ledger
# =============================================================================


@dataclass(frozen=True)
class StockSnapshot:
    """Point-in-time view of one SKU's quota counters."""

    sku_id: int
    product_id: int
    total: int
    locked: int
    sold: int
    available: int

    @classmethod
    def from_model(cls, model: ProductSKU) -> StockSnapshot:
        return cls(
            sku_id=model.id,
            product_id=model.product_id,
            total=model.manual_stock_total,
            locked=model.manual_stock_locked,
            sold=model.manual_stock_sold,
            available=model.manual_available,
        )


# =============================================================================
# SKUs
# =============================================================================


@dataclass(frozen=True)
class SKUInfo:
    """A resolved, purchasable SKU."""

    sku_id: int
    product_id: int
    sku_code: str
    price_amount: Decimal
    manual_stock_total: int
    manual_stock_locked: int
    manual_stock_sold: int
    is_active: bool
    sort_order: int = 0
    spec_values: dict[str, Any] | None = None

    @property
    def manual_available(self) -> int:
        return (
            self.manual_stock_total
            - self.manual_stock_locked
            - self.manual_stock_sold
        )

    @classmethod
    def from_model(cls, model: ProductSKU) -> SKUInfo:
        return cls(
            sku_id=model.id,
            product_id=model.product_id,
            sku_code=model.sku_code,
            price_amount=model.price_amount,
            manual_stock_total=model.manual_stock_total,
            manual_stock_locked=model.manual_stock_locked,
            manual_stock_sold=model.manual_stock_sold,
            is_active=model.is_active,
            sort_order=model.sort_order,
            spec_values=dict(model.spec_values) if model.spec_values else None,
        )


@dataclass(frozen=True)
class SKUInput:
    """
    Desired state of one SKU, as submitted by product maintenance.

    sku_id == 0 means "match by code, or create".
    """

    sku_code: str
    price_amount: Decimal
    manual_stock_total: int = 0
    sku_id: int = 0
    is_active: bool = True
    sort_order: int = 0
    spec_values: dict[str, Any] | None = None


@dataclass(frozen=True)
class SKUSummary:
    """Product-level figures derived from its SKU set after maintenance."""

    product_id: int
    skus: tuple[SKUInfo, ...]
    min_price: Decimal
    manual_stock_total: int


@dataclass(frozen=True)
class SKUAvailability:
    """Units that can still be sold for one SKU."""

    product_id: int
    sku_id: int
    sku_code: str
    fulfillment_type: str
    available: int


# =============================================================================
# Secret pool
# =============================================================================


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a successful secret ingestion."""

    batch_id: int
    batch_no: str
    product_id: int
    sku_id: int
    created: int


@dataclass(frozen=True)
class AllocatedSecret:
    """A secret that has just been flipped to used."""

    secret_id: int
    product_id: int
    sku_id: int
    payload: str


# =============================================================================
# Fulfillment
# =============================================================================


@dataclass(frozen=True)
class FulfillmentInfo:
    """Delivery record of one order item."""

    fulfillment_id: int
    order_id: int
    order_item_id: int
    fulfillment_type: str
    status: str
    payload: str | None
    delivered_at: datetime | None

    @classmethod
    def from_model(cls, model: Fulfillment) -> FulfillmentInfo:
        return cls(
            fulfillment_id=model.id,
            order_id=model.order_id,
            order_item_id=model.order_item_id,
            fulfillment_type=model.fulfillment_type,
            status=model.status,
            payload=model.payload,
            delivered_at=model.delivered_at,
        )


@dataclass(frozen=True)
class OrderFulfillmentResult:
    """
    Result of fulfilling every item of an order.

    fulfillments holds one entry per order item (pre-existing ones
    included); created_count counts only rows written by this call.
    payload joins the payloads of all auto fulfillments.
    """

    order_id: int
    fulfillments: tuple[FulfillmentInfo, ...] = field(default_factory=tuple)
    created_count: int = 0
    payload: str = ""


# =============================================================================
# Cart
# =============================================================================


@dataclass(frozen=True)
class CartLine:
    """A still-valid cart line priced at its SKU's current price."""

    cart_item_id: int
    user_id: int
    product_id: int
    sku_id: int
    sku_code: str
    quantity: int
    unit_price: Decimal
    fulfillment_type: str

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


# =============================================================================
# Migration
# =============================================================================


@dataclass(frozen=True)
class MigrationReport:
    """What one ensure_product_sku_migration() pass did."""

    migrated_product_ids: tuple[int, ...] = ()
    skipped_product_ids: tuple[int, ...] = ()

    @property
    def migrated_count(self) -> int:
        return len(self.migrated_product_ids)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_product_ids)
