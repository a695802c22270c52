"""Kernel services: stateful operations over the fulfillment tables."""

from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.cart_service import CartService
from fulfillment_kernel.services.fulfillment_handlers import (
    AutoSecretHandler,
    FulfillmentHandler,
    FulfillmentOutcome,
    FulfillmentRequest,
    ManualQuotaHandler,
    handler_registry,
)
from fulfillment_kernel.services.fulfillment_service import FulfillmentService
from fulfillment_kernel.services.product_sku_service import ProductSKUService
from fulfillment_kernel.services.secret_pool import SecretPoolService, clean_secrets
from fulfillment_kernel.services.sku_resolver import SKUResolver
from fulfillment_kernel.services.stock_ledger import StockLedgerService

__all__ = [
    "BaseService",
    "StockLedgerService",
    "SecretPoolService",
    "clean_secrets",
    "SKUResolver",
    "FulfillmentService",
    "FulfillmentHandler",
    "FulfillmentRequest",
    "FulfillmentOutcome",
    "AutoSecretHandler",
    "ManualQuotaHandler",
    "handler_registry",
    "CartService",
    "ProductSKUService",
]
