"""
Fulfillment handlers -- one per FulfillmentType.

Responsibility:
    Turn one paid order item into a delivery outcome.  The orchestrator
    picks the handler through ``handler_registry()[FulfillmentType]``; it
    never compares type strings itself.

        AUTO    -> AutoSecretHandler   one pooled secret per unit
        MANUAL  -> ManualQuotaHandler  reservation converted to sold

Architecture position:
    Kernel > Services.  Invoked only by FulfillmentService, inside the
    per-item transaction it owns.

Invariants enforced:
    - Handlers only flush.  If anything after them fails, the item
      transaction rolls back and their effects disappear with it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.models.fulfillment import FulfillmentStatus
from fulfillment_kernel.models.product import FulfillmentType
from fulfillment_kernel.services.secret_pool import SecretPoolService
from fulfillment_kernel.services.stock_ledger import StockLedgerService


@dataclass(frozen=True)
class FulfillmentRequest:
    """An order item ready for fulfillment, with its SKU already resolved."""

    order_id: int
    order_item_id: int
    product_id: int
    sku_id: int
    quantity: int


@dataclass(frozen=True)
class FulfillmentOutcome:
    status: FulfillmentStatus
    payload: str | None


class FulfillmentHandler(ABC):
    """Strategy interface for delivering one order item."""

    fulfillment_type: FulfillmentType

    @abstractmethod
    def fulfill(self, session: Session, request: FulfillmentRequest) -> FulfillmentOutcome:
        """Deliver ``request`` within ``session``'s transaction."""
        ...


class AutoSecretHandler(FulfillmentHandler):
    """
    Allocate ``quantity`` secrets from the exact (product, SKU) pool.

    Raises:
        PoolExhaustedError: fewer than quantity secrets available.  Secrets
            already taken for this item are returned by the rollback.
    """

    fulfillment_type = FulfillmentType.AUTO

    def __init__(
        self,
        clock: Clock | None = None,
        max_retries: int = 3,
        payload_separator: str = "\n",
    ):
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._separator = payload_separator

    def fulfill(self, session: Session, request: FulfillmentRequest) -> FulfillmentOutcome:
        pool = SecretPoolService(session, clock=self._clock, max_retries=self._max_retries)
        secrets = [
            pool.allocate(
                request.product_id,
                request.sku_id,
                order_id=request.order_id,
                order_item_id=request.order_item_id,
            )
            for _ in range(request.quantity)
        ]
        return FulfillmentOutcome(
            status=FulfillmentStatus.DELIVERED,
            payload=self._separator.join(secret.payload for secret in secrets),
        )


class ManualQuotaHandler(FulfillmentHandler):
    """
    Convert the item's reservation into sold quota.

    Delivery itself happens out of band, so the outcome has no payload.

    Raises:
        InvalidStateError: the reservation was never made.
    """

    fulfillment_type = FulfillmentType.MANUAL

    def fulfill(self, session: Session, request: FulfillmentRequest) -> FulfillmentOutcome:
        StockLedgerService(session).commit(request.sku_id, request.quantity)
        return FulfillmentOutcome(status=FulfillmentStatus.AWAITING_MANUAL, payload=None)


def handler_registry(
    clock: Clock | None = None,
    max_retries: int = 3,
    payload_separator: str = "\n",
) -> dict[FulfillmentType, FulfillmentHandler]:
    """Build the handler for every FulfillmentType."""
    handlers: list[FulfillmentHandler] = [
        AutoSecretHandler(
            clock=clock,
            max_retries=max_retries,
            payload_separator=payload_separator,
        ),
        ManualQuotaHandler(),
    ]
    return {handler.fulfillment_type: handler for handler in handlers}
