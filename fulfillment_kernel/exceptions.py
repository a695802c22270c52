"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (order processing, cart handlers, the admin importer)
must react differently to "sold out", "bad SKU id from the client" and
"a counter invariant was about to break".  Parsing message strings for that
is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        ledger.reserve(sku_id, quantity)
    except InsufficientStockError as e:
        reject_cart_line(code=e.code, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentKernelError (base)
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- InvalidStateError
    |   +-- InvalidQuantityError
    |
    +-- SecretPoolError
    |   +-- PoolExhaustedError
    |   +-- DuplicateSecretError
    |   +-- DuplicateBatchError
    |   +-- SecretTooLongError
    |   +-- EmptySecretBatchError
    |   +-- SecretNotFoundError
    |
    +-- SKUError
    |   +-- SKUInvalidError
    |   +-- SKURequiredError
    |
    +-- ProductError
    |   +-- ProductNotFoundError
    |   +-- ProductNotAvailableError
    |   +-- FulfillmentTypeInvalidError
    |
    +-- OrderError
    |   +-- OrderNotFoundError
    |   +-- OrderNotPaidError
    |
    +-- CartError
    |   +-- InvalidCartItemError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- MigrationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|------------------------------------
Stock        | INSUFFICIENT_STOCK        | Reserve would exceed available quota
             | INVALID_STATE             | Commit/release/resize breaks counters
             | INVALID_QUANTITY          | Non-positive quantity / negative total
-------------|---------------------------|------------------------------------
Secret pool  | POOL_EXHAUSTED            | No available secret for exact SKU
             | DUPLICATE_SECRET          | Payload already stored
             | DUPLICATE_BATCH_NO        | batch_no already used
             | SECRET_TOO_LONG           | Payload exceeds the column length
             | SECRET_BATCH_EMPTY        | Nothing left to ingest after cleanup
             | SECRET_NOT_FOUND          | Unknown secret id
-------------|---------------------------|------------------------------------
SKU          | SKU_INVALID               | SKU unknown/inactive/foreign/sentinel
             | SKU_REQUIRED              | Several active SKUs, none requested
-------------|---------------------------|------------------------------------
Product      | PRODUCT_NOT_FOUND         | Product id doesn't exist
             | PRODUCT_NOT_AVAILABLE     | Product inactive
             | FULFILLMENT_TYPE_INVALID  | Unknown fulfillment type
-------------|---------------------------|------------------------------------
Order        | ORDER_NOT_FOUND           | Order id doesn't exist
             | ORDER_NOT_PAID            | Order hasn't reached a paid state
-------------|---------------------------|------------------------------------
Cart         | INVALID_CART_ITEM         | Missing ids / non-positive quantity
-------------|---------------------------|------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | Allocation lost every retry
-------------|---------------------------|------------------------------------
Migration    | MIGRATION_FAILED          | Startup migration failed (fatal)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RECOVERABLE BUSINESS OUTCOMES:

    except PoolExhaustedError as e:
        mark_pending_manual(e.order_item_id)

2. CLIENT INPUT ERRORS (never retried):

    except (SKUInvalidError, SKURequiredError) as e:
        return {"error": e.code, "product_id": e.product_id}

3. PROGRAMMING ERRORS (fatal to the call):

    except InvalidStateError:
        raise  # a reservation was never made, fix the caller

===============================================================================
"""


class FulfillmentKernelError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FULFILLMENT_KERNEL_ERROR"


# Stock ledger exceptions


class StockError(FulfillmentKernelError):
    """Base exception for stock ledger errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Reservation would push available quota below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, sku_id: int, requested: int, available: int):
        self.sku_id = sku_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for SKU {sku_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidStateError(StockError):
    """
    A counter transition would violate total >= locked + sold.

    Indicates an upstream programming error (e.g. committing a quantity
    that was never reserved).  Not retryable.
    """

    code: str = "INVALID_STATE"

    def __init__(self, sku_id: int, operation: str, reason: str):
        self.sku_id = sku_id
        self.operation = operation
        self.reason = reason
        super().__init__(f"Invalid {operation} on SKU {sku_id}: {reason}")


class InvalidQuantityError(StockError):
    """Quantity argument is out of range."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "must be positive"):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


# Secret pool exceptions


class SecretPoolError(FulfillmentKernelError):
    """Base exception for secret pool errors."""

    code: str = "SECRET_POOL_ERROR"


class PoolExhaustedError(SecretPoolError):
    """
    No available secret for the exact (product, SKU) pair.

    When raised by the fulfillment orchestrator it also carries the order
    context: the failing order item and the items already fulfilled in the
    same call.
    """

    code: str = "POOL_EXHAUSTED"

    def __init__(
        self,
        product_id: int,
        sku_id: int,
        order_id: int | None = None,
        order_item_id: int | None = None,
        fulfilled_item_ids: list[int] | None = None,
    ):
        self.product_id = product_id
        self.sku_id = sku_id
        self.order_id = order_id
        self.order_item_id = order_item_id
        self.fulfilled_item_ids = list(fulfilled_item_ids or [])
        message = f"No available secret for product {product_id} SKU {sku_id}"
        if order_id is not None:
            message += f" (order {order_id}, item {order_item_id})"
        super().__init__(message)


class DuplicateSecretError(SecretPoolError):
    """One or more payloads already exist in the pool."""

    code: str = "DUPLICATE_SECRET"

    def __init__(self, duplicates: list[str]):
        self.duplicates = list(duplicates)
        self.duplicate_count = len(self.duplicates)
        if self.duplicates:
            message = f"{self.duplicate_count} secret(s) already exist in the pool"
        else:
            # Lost a race with a concurrent import; the colliding rows are unknown
            message = "Secrets collided with a concurrent import"
        super().__init__(message)


class DuplicateBatchError(SecretPoolError):
    """A batch with this batch_no already exists."""

    code: str = "DUPLICATE_BATCH_NO"

    def __init__(self, batch_no: str):
        self.batch_no = batch_no
        super().__init__(f"Secret batch already exists: {batch_no}")


class SecretTooLongError(SecretPoolError):
    """
    One or more payloads exceed the stored length.

    Carries counts only; the payloads themselves are never attached.
    """

    code: str = "SECRET_TOO_LONG"

    def __init__(self, product_id: int, sku_id: int, too_long_count: int, max_length: int):
        self.product_id = product_id
        self.sku_id = sku_id
        self.too_long_count = too_long_count
        self.max_length = max_length
        super().__init__(
            f"{too_long_count} secret(s) for product {product_id} SKU {sku_id} "
            f"exceed {max_length} characters"
        )


class EmptySecretBatchError(SecretPoolError):
    """Ingestion received no usable payloads."""

    code: str = "SECRET_BATCH_EMPTY"

    def __init__(self, product_id: int, sku_id: int):
        self.product_id = product_id
        self.sku_id = sku_id
        super().__init__(
            f"No secrets to ingest for product {product_id} SKU {sku_id}"
        )


class SecretNotFoundError(SecretPoolError):
    """Secret with given ID was not found."""

    code: str = "SECRET_NOT_FOUND"

    def __init__(self, secret_id: int):
        self.secret_id = secret_id
        super().__init__(f"Secret not found: {secret_id}")


# SKU exceptions


class SKUError(FulfillmentKernelError):
    """Base exception for SKU resolution errors."""

    code: str = "SKU_ERROR"


class SKUInvalidError(SKUError):
    """Caller-supplied SKU cannot be used for this product."""

    code: str = "SKU_INVALID"

    def __init__(self, product_id: int | None, sku_id: int, reason: str):
        self.product_id = product_id
        self.sku_id = sku_id
        self.reason = reason
        super().__init__(
            f"Invalid SKU {sku_id} for product {product_id}: {reason}"
        )


class SKURequiredError(SKUError):
    """Product has several active SKUs and no SKU was specified."""

    code: str = "SKU_REQUIRED"

    def __init__(self, product_id: int, active_count: int):
        self.product_id = product_id
        self.active_count = active_count
        super().__init__(
            f"Product {product_id} has {active_count} active SKUs; "
            "an explicit sku_id is required"
        )


# Product exceptions


class ProductError(FulfillmentKernelError):
    """Base exception for product errors."""

    code: str = "PRODUCT_ERROR"


class ProductNotFoundError(ProductError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ProductNotAvailableError(ProductError):
    """Product exists but is not active."""

    code: str = "PRODUCT_NOT_AVAILABLE"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not available")


class FulfillmentTypeInvalidError(ProductError):
    """Fulfillment type is neither auto nor manual."""

    code: str = "FULFILLMENT_TYPE_INVALID"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid fulfillment type: {value!r}")


# Order exceptions


class OrderError(FulfillmentKernelError):
    """Base exception for order errors."""

    code: str = "ORDER_ERROR"


class OrderNotFoundError(OrderError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class OrderNotPaidError(OrderError):
    """Order has not reached a paid state."""

    code: str = "ORDER_NOT_PAID"

    def __init__(self, order_id: int, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Order {order_id} is in status '{status}' and cannot be fulfilled"
        )


# Cart exceptions


class CartError(FulfillmentKernelError):
    """Base exception for cart errors."""

    code: str = "CART_ERROR"


class InvalidCartItemError(CartError):
    """Cart operation received unusable input."""

    code: str = "INVALID_CART_ITEM"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid cart item: {reason}")


# Concurrency exceptions


class ConcurrencyError(FulfillmentKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic update lost every retry."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id} "
            f"after {attempts} attempt(s)"
        )


# Migration exceptions


class MigrationError(FulfillmentKernelError):
    """
    Startup migration failed.

    Fatal: the process must not serve traffic against an un-migrated schema.
    """

    code: str = "MIGRATION_FAILED"

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Migration step '{step}' failed: {reason}")
