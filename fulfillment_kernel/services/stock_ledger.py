"""
StockLedgerService -- quota counters for manually fulfilled SKUs.

Responsibility:
    Owns the three counters of a ProductSKU (total, locked, sold) and the
    transitions between them:

        reserve   available -> locked      (checkout)
        commit    locked    -> sold        (fulfillment)
        release   locked    -> available   (cancellation / timeout)
        resize    total := new_total       (stock maintenance)

Architecture position:
    Kernel > Services.  Called by CartService (availability pre-check is
    read-only), ManualQuotaHandler (commit) and ProductSKUService (resize).

Invariants enforced:
    - total >= locked + sold, and every counter >= 0, at all times.
    - Each mutation is ONE conditional ``UPDATE ... WHERE <guard>``.  The
      database evaluates guard and arithmetic atomically on the row, so two
      concurrent reserve() calls can never lock more than total - sold
      between them.  There is no read-modify-write window.

Failure modes:
    - InvalidQuantityError: quantity <= 0, or new_total < 0.
    - SKUInvalidError: no SKU row with that id.
    - InsufficientStockError: reserve would exceed available quota.
    - InvalidStateError: commit/release of more than is locked, or a
      resize below locked + sold.

Audit relevance:
    Every successful mutation logs the resulting counters.
"""

from sqlalchemy import func, select, update
from sqlalchemy.engine import CursorResult

from fulfillment_kernel.domain.dtos import StockSnapshot
from fulfillment_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStateError,
    SKUInvalidError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.product import ProductSKU
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

_AVAILABLE = (
    ProductSKU.manual_stock_total
    - ProductSKU.manual_stock_locked
    - ProductSKU.manual_stock_sold
)


class StockLedgerService(BaseService):
    """
    Compare-and-set ledger over ProductSKU counters.

    Contract:
        All methods run inside the caller's transaction.  A failed guard
        raises and changes nothing.

    Guarantees:
        - reserve/commit/release/resize never produce a row that violates
          total >= locked + sold.
        - Returned snapshots reflect the row after the mutation.

    Non-goals:
        - Does NOT check SKU activity.  Orders placed before a SKU was
          deactivated must still be committable.
        - Does NOT apply to auto SKUs, whose availability is the secret pool.
    """

    def reserve(self, sku_id: int, quantity: int) -> StockSnapshot:
        """
        Lock ``quantity`` units for a pending order.

        Postconditions: locked increases by quantity.

        Raises:
            InsufficientStockError: total - locked - sold < quantity.
        """
        self._require_positive(quantity)
        result = self._execute(
            update(ProductSKU)
            .where(ProductSKU.id == sku_id, _AVAILABLE >= quantity)
            .values(
                manual_stock_locked=ProductSKU.manual_stock_locked + quantity,
                updated_at=func.now(),
            )
        )
        if result.rowcount == 0:
            current = self._load_or_raise(sku_id)
            logger.info(
                "stock_insufficient",
                extra={
                    "sku_id": sku_id,
                    "requested": quantity,
                    "available": current.available,
                },
            )
            raise InsufficientStockError(sku_id, quantity, current.available)

        snapshot = self.snapshot(sku_id)
        self._log_mutation("stock_reserved", quantity, snapshot)
        return snapshot

    def commit(self, sku_id: int, quantity: int) -> StockSnapshot:
        """
        Convert ``quantity`` reserved units into sold units.

        Raises:
            InvalidStateError: fewer than quantity units are locked.
        """
        self._require_positive(quantity)
        result = self._execute(
            update(ProductSKU)
            .where(
                ProductSKU.id == sku_id,
                ProductSKU.manual_stock_locked >= quantity,
            )
            .values(
                manual_stock_locked=ProductSKU.manual_stock_locked - quantity,
                manual_stock_sold=ProductSKU.manual_stock_sold + quantity,
                updated_at=func.now(),
            )
        )
        if result.rowcount == 0:
            current = self._load_or_raise(sku_id)
            raise InvalidStateError(
                sku_id,
                "commit",
                f"locked {current.locked} < requested {quantity}",
            )

        snapshot = self.snapshot(sku_id)
        self._log_mutation("stock_committed", quantity, snapshot)
        return snapshot

    def release(self, sku_id: int, quantity: int) -> StockSnapshot:
        """
        Return ``quantity`` reserved units to available.

        Raises:
            InvalidStateError: fewer than quantity units are locked.
        """
        self._require_positive(quantity)
        result = self._execute(
            update(ProductSKU)
            .where(
                ProductSKU.id == sku_id,
                ProductSKU.manual_stock_locked >= quantity,
            )
            .values(
                manual_stock_locked=ProductSKU.manual_stock_locked - quantity,
                updated_at=func.now(),
            )
        )
        if result.rowcount == 0:
            current = self._load_or_raise(sku_id)
            raise InvalidStateError(
                sku_id,
                "release",
                f"locked {current.locked} < requested {quantity}",
            )

        snapshot = self.snapshot(sku_id)
        self._log_mutation("stock_released", quantity, snapshot)
        return snapshot

    def resize(self, sku_id: int, new_total: int) -> StockSnapshot:
        """
        Set the SKU's total quota.

        Raises:
            InvalidQuantityError: new_total < 0.
            InvalidStateError: new_total < locked + sold.
        """
        if new_total < 0:
            raise InvalidQuantityError(new_total, "total must not be negative")

        result = self._execute(
            update(ProductSKU)
            .where(
                ProductSKU.id == sku_id,
                ProductSKU.manual_stock_locked + ProductSKU.manual_stock_sold
                <= new_total,
            )
            .values(manual_stock_total=new_total, updated_at=func.now())
        )
        if result.rowcount == 0:
            current = self._load_or_raise(sku_id)
            raise InvalidStateError(
                sku_id,
                "resize",
                f"new total {new_total} < locked {current.locked} "
                f"+ sold {current.sold}",
            )

        snapshot = self.snapshot(sku_id)
        self._log_mutation("stock_resized", new_total, snapshot)
        return snapshot

    def snapshot(self, sku_id: int) -> StockSnapshot:
        """
        Read the current counters.

        Raises:
            SKUInvalidError: no SKU row with that id.
        """
        return self._load_or_raise(sku_id)

    # -------------------------------------------------------------------------

    def _execute(self, stmt) -> CursorResult:
        # Identity-map rows for this SKU are refreshed by the next snapshot()
        return self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )

    def _load_or_raise(self, sku_id: int) -> StockSnapshot:
        sku = self.session.execute(
            select(ProductSKU)
            .where(ProductSKU.id == sku_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if sku is None:
            raise SKUInvalidError(None, sku_id, "SKU does not exist")
        return StockSnapshot.from_model(sku)

    @staticmethod
    def _require_positive(quantity: int) -> None:
        if quantity <= 0:
            raise InvalidQuantityError(quantity)

    @staticmethod
    def _log_mutation(event: str, quantity: int, snapshot: StockSnapshot) -> None:
        logger.info(
            event,
            extra={
                "sku_id": snapshot.sku_id,
                "product_id": snapshot.product_id,
                "quantity": quantity,
                "total": snapshot.total,
                "locked": snapshot.locked,
                "sold": snapshot.sold,
                "available": snapshot.available,
            },
        )
