"""
FulfillmentService -- top-level entry point for fulfilling a paid order.

Responsibility:
    For every item of a paid order, exactly once: resolve its SKU, dispatch
    to the handler for its FulfillmentType, and persist a Fulfillment row.

Architecture position:
    Kernel > Services.  Unlike the flush-only services, this one OWNS its
    units of work: it receives a session factory and opens one transaction
    per order item.

Invariants enforced:
    - Exactly-once per order item.  An existing Fulfillment is returned
      as-is.  Concurrent runs on one item are serialized by a row lock on
      the OrderItem (PostgreSQL) or by the database write lock (SQLite).
      A run that still loses, whether at uq_fulfillment_order_item or
      because the winner drained the pool or the reservation first, rolls
      back its item transaction (returning any secret it took) and
      returns the winner's row.
    - Per-item atomicity.  An item either gets its secrets / committed
      quota AND its Fulfillment row, or neither.
    - Items are processed in id order; earlier items stay committed when a
      later one fails.

Failure modes:
    - OrderNotFoundError / OrderNotPaidError before any item is touched.
    - PoolExhaustedError carrying order_id, order_item_id and
      fulfilled_item_ids; processing stops at the failing item.
    - Any other kernel error (InvalidStateError, SKUInvalidError,
      SKURequiredError, FulfillmentTypeInvalidError) rolls back the item
      and propagates unchanged.

Audit relevance:
    Logs fulfillment_started, fulfillment_item_created,
    fulfillment_item_exists, fulfillment_pool_exhausted and
    fulfillment_completed with order_id bound into the log context.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_kernel.db.engine import SessionFactory
from fulfillment_kernel.db.types import LEGACY_SKU_ID
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import FulfillmentInfo, OrderFulfillmentResult
from fulfillment_kernel.exceptions import (
    OrderNotFoundError,
    OrderNotPaidError,
    PoolExhaustedError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.fulfillment import Fulfillment, FulfillmentStatus
from fulfillment_kernel.models.order import Order, OrderItem
from fulfillment_kernel.models.product import FulfillmentType, Product
from fulfillment_kernel.services.fulfillment_handlers import (
    FulfillmentHandler,
    FulfillmentRequest,
    handler_registry,
)
from fulfillment_kernel.services.sku_resolver import SKUResolver

logger = get_logger("services.fulfillment")


class FulfillmentService:
    """
    Orchestrates per-item fulfillment of an order.

    Contract:
        create_auto(order_id) may be called any number of times, from any
        number of threads, for the same order; the result converges to one
        Fulfillment per item.

    Non-goals:
        - Does NOT change the order's status; the caller decides what a
          completed or partial fulfillment means for the order.
        - Does NOT reserve manual quota; checkout does that.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Clock | None = None,
        max_retries: int = 3,
        payload_separator: str = "\n",
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._separator = payload_separator
        self._handlers = handler_registry(
            clock=self._clock,
            max_retries=max_retries,
            payload_separator=payload_separator,
        )

    def create_auto(self, order_id: int) -> OrderFulfillmentResult:
        """
        Fulfill every item of a paid order.

        Postconditions:
            - Every item up to the first failure has exactly one Fulfillment.

        Returns:
            OrderFulfillmentResult with one FulfillmentInfo per item.
        """
        with LogContext.bind(order_id=order_id):
            item_ids = self._load_paid_item_ids(order_id)
            logger.info("fulfillment_started", extra={"item_count": len(item_ids)})

            fulfillments: list[FulfillmentInfo] = []
            fulfilled_item_ids: list[int] = []
            created_count = 0

            for item_id in item_ids:
                try:
                    info, created = self._fulfill_item(order_id, item_id)
                except PoolExhaustedError as exc:
                    logger.warning(
                        "fulfillment_pool_exhausted",
                        extra={
                            "order_item_id": item_id,
                            "product_id": exc.product_id,
                            "sku_id": exc.sku_id,
                            "fulfilled_item_ids": list(fulfilled_item_ids),
                        },
                    )
                    raise PoolExhaustedError(
                        exc.product_id,
                        exc.sku_id,
                        order_id=order_id,
                        order_item_id=item_id,
                        fulfilled_item_ids=fulfilled_item_ids,
                    ) from exc

                fulfillments.append(info)
                fulfilled_item_ids.append(item_id)
                if created:
                    created_count += 1

            payload = self._separator.join(
                info.payload
                for info in fulfillments
                if info.fulfillment_type == FulfillmentType.AUTO.value and info.payload
            )
            logger.info(
                "fulfillment_completed",
                extra={"item_count": len(fulfillments), "created_count": created_count},
            )
            return OrderFulfillmentResult(
                order_id=order_id,
                fulfillments=tuple(fulfillments),
                created_count=created_count,
                payload=payload,
            )

    # -------------------------------------------------------------------------

    def _load_paid_item_ids(self, order_id: int) -> list[int]:
        with self._session_factory() as session:
            order = session.get(Order, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if not order.is_paid:
                raise OrderNotPaidError(order_id, order.status)
            return list(
                session.execute(
                    select(OrderItem.id)
                    .where(OrderItem.order_id == order_id)
                    .order_by(OrderItem.id)
                ).scalars()
            )

    def _fulfill_item(self, order_id: int, item_id: int) -> tuple[FulfillmentInfo, bool]:
        session = self._session_factory()
        try:
            # Row lock serializes concurrent runs per item on PostgreSQL;
            # SQLite serializes them at the first write instead.
            item = session.execute(
                select(OrderItem).where(OrderItem.id == item_id).with_for_update()
            ).scalar_one()
            existing = self._find_fulfillment(session, item_id)
            if existing is not None:
                logger.info(
                    "fulfillment_item_exists",
                    extra={"order_item_id": item_id, "fulfillment_id": existing.id},
                )
                return FulfillmentInfo.from_model(existing), False

            fulfillment_type = self._fulfillment_type_for(session, item)
            sku_id = item.sku_id
            if sku_id == LEGACY_SKU_ID:
                sku_id = SKUResolver(session).resolve(item.product_id).sku_id

            handler = self._handler_for(fulfillment_type)
            outcome = handler.fulfill(
                session,
                FulfillmentRequest(
                    order_id=order_id,
                    order_item_id=item_id,
                    product_id=item.product_id,
                    sku_id=sku_id,
                    quantity=item.quantity,
                ),
            )

            row = Fulfillment(
                order_id=order_id,
                order_item_id=item_id,
                fulfillment_type=fulfillment_type.value,
                status=outcome.status.value,
                payload=outcome.payload,
                delivered_at=(
                    self._clock.now()
                    if outcome.status == FulfillmentStatus.DELIVERED
                    else None
                ),
            )
            session.add(row)
            session.flush()
            session.commit()
        except Exception as exc:
            # A concurrent run may have fulfilled the item and drained what
            # this run needed; its row is the result.
            session.rollback()
            winner = self._find_fulfillment(session, item_id)
            if winner is None:
                raise
            logger.info(
                "fulfillment_item_exists",
                extra={
                    "order_item_id": item_id,
                    "fulfillment_id": winner.id,
                    "lost_race": True,
                    "race_error": type(exc).__name__,
                },
            )
            return FulfillmentInfo.from_model(winner), False
        finally:
            session.close()

        logger.info(
            "fulfillment_item_created",
            extra={
                "order_item_id": item_id,
                "fulfillment_id": row.id,
                "fulfillment_type": row.fulfillment_type,
                "sku_id": sku_id,
                "quantity": item.quantity,
            },
        )
        return FulfillmentInfo.from_model(row), True

    @staticmethod
    def _find_fulfillment(session: Session, item_id: int) -> Fulfillment | None:
        return session.execute(
            select(Fulfillment).where(Fulfillment.order_item_id == item_id)
        ).scalar_one_or_none()

    @staticmethod
    def _fulfillment_type_for(session: Session, item: OrderItem) -> FulfillmentType:
        # The product's current type wins; the item snapshot covers deleted products
        product = session.get(Product, item.product_id)
        if product is not None:
            return FulfillmentType.normalize(product.fulfillment_type)
        return FulfillmentType.normalize(item.fulfillment_type)

    def _handler_for(self, fulfillment_type: FulfillmentType) -> FulfillmentHandler:
        return self._handlers[fulfillment_type]
