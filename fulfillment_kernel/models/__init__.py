"""ORM models for the fulfillment kernel."""

from fulfillment_kernel.models.card_secret import (
    SECRET_MAX_LENGTH,
    CardSecret,
    CardSecretBatch,
    CardSecretStatus,
    SecretSource,
)
from fulfillment_kernel.models.cart import (
    CART_UNIQUE_INDEX,
    LEGACY_CART_UNIQUE_INDEX,
    CartItem,
)
from fulfillment_kernel.models.fulfillment import Fulfillment, FulfillmentStatus
from fulfillment_kernel.models.order import (
    PAID_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
)
from fulfillment_kernel.models.product import (
    DEFAULT_SKU_CODE,
    FulfillmentType,
    Product,
    ProductSKU,
)

__all__ = [
    "Product",
    "ProductSKU",
    "FulfillmentType",
    "DEFAULT_SKU_CODE",
    "CardSecret",
    "CardSecretBatch",
    "CardSecretStatus",
    "SecretSource",
    "SECRET_MAX_LENGTH",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PAID_STATUSES",
    "CartItem",
    "CART_UNIQUE_INDEX",
    "LEGACY_CART_UNIQUE_INDEX",
    "Fulfillment",
    "FulfillmentStatus",
]
