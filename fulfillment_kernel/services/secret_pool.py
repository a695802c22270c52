"""
SecretPoolService -- finite pool of single-use deliverable secrets.

Responsibility:
    Loads secrets in batches and hands them out one at a time to auto
    fulfillment.  The pool for a (product_id, sku_id) pair is exactly the
    set of CardSecret rows with that pair and status ``available``.

Architecture position:
    Kernel > Services.  Called by AutoSecretHandler (allocate) and by the
    admin import path (create_batch / ingest).

Invariants enforced:
    - A secret is handed out at most once.  allocate() flips a candidate
      with ``UPDATE ... WHERE id = :candidate AND status = 'available'``;
      a row count of 0 means another transaction won the row and the
      call retries with a fresh candidate.
    - Allocation is exact: a (product, SKU) pair never draws from a
      sibling SKU, even when its own pool is empty.
    - Ingestion is all-or-nothing: a single payload that already exists
      anywhere in the pool rejects the whole call.

Failure modes:
    - SKUInvalidError: sku_id is the legacy sentinel 0.
    - EmptySecretBatchError: nothing left to ingest after cleanup.
    - SecretTooLongError: a payload exceeds SECRET_MAX_LENGTH.
    - DuplicateBatchError: batch_no already used.
    - DuplicateSecretError: payload already stored, or a concurrent import
      won the unique constraint.
    - PoolExhaustedError: no available secret for the exact pair.
    - OptimisticLockError: every retry lost its candidate to another
      transaction.
    - SecretNotFoundError: disable() on an unknown id.

Audit relevance:
    Used rows keep order_id, order_item_id and used_at.  Payloads are never
    written to the log.
"""

from collections.abc import Iterable
from uuid import uuid4

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import LEGACY_SKU_ID
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import AllocatedSecret, IngestResult
from fulfillment_kernel.exceptions import (
    DuplicateBatchError,
    DuplicateSecretError,
    EmptySecretBatchError,
    OptimisticLockError,
    PoolExhaustedError,
    ProductNotFoundError,
    SecretNotFoundError,
    SecretTooLongError,
    SKUInvalidError,
    SKURequiredError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.card_secret import (
    SECRET_MAX_LENGTH,
    CardSecret,
    CardSecretBatch,
    CardSecretStatus,
    SecretSource,
)
from fulfillment_kernel.models.product import DEFAULT_SKU_CODE, Product, ProductSKU
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.sku_resolver import SKUResolver

logger = get_logger("services.secret_pool")

# Keeps IN (...) lists under SQLite's bound parameter limit
_LOOKUP_CHUNK = 500


def clean_secrets(secrets: Iterable[str]) -> list[str]:
    """Strip whitespace, drop blanks, dedupe keeping first occurrence."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for raw in secrets:
        value = (raw or "").strip()
        if not value or value in seen:
            continue
        seen.add(value)
        cleaned.append(value)
    return cleaned


class SecretPoolService(BaseService):
    """
    Ingestion and allocation over the card_secrets table.

    Contract:
        Runs inside the caller's transaction.  When the caller rolls back,
        every secret allocated in that transaction is available again.

    Guarantees:
        - Concurrent allocate() calls never return the same secret.
        - ingest() either inserts every cleaned payload or none.

    Non-goals:
        - Does NOT enforce that the product is an auto product; the import
          path may stock a pool ahead of switching the product over.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_retries: int = 3,
        default_sku_code: str = DEFAULT_SKU_CODE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._default_sku_code = default_sku_code

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def ingest(
        self,
        product_id: int,
        sku_id: int,
        secrets: Iterable[str],
        batch_no: str | None = None,
        source: SecretSource = SecretSource.MANUAL,
        note: str | None = None,
        created_by: int | None = None,
    ) -> IngestResult:
        """
        Store a batch of secrets for an exact (product, SKU) pair.

        Preconditions:
            - sku_id is a real SKU id (> 0).

        Postconditions:
            - One CardSecretBatch row and one available CardSecret per
              cleaned payload exist in the caller's transaction.

        Raises:
            SKUInvalidError, EmptySecretBatchError, SecretTooLongError,
            DuplicateSecretError, DuplicateBatchError.
        """
        if sku_id <= LEGACY_SKU_ID:
            raise SKUInvalidError(product_id, sku_id, "secrets must be bound to a real SKU")

        cleaned = clean_secrets(secrets)
        if not cleaned:
            raise EmptySecretBatchError(product_id, sku_id)

        too_long = sum(1 for value in cleaned if len(value) > SECRET_MAX_LENGTH)
        if too_long:
            raise SecretTooLongError(product_id, sku_id, too_long, SECRET_MAX_LENGTH)

        existing = self._find_existing(cleaned)
        if existing:
            duplicates = [value for value in cleaned if value in existing]
            logger.warning(
                "secret_ingest_duplicates",
                extra={
                    "product_id": product_id,
                    "sku_id": sku_id,
                    "duplicate_count": len(duplicates),
                },
            )
            raise DuplicateSecretError(duplicates)

        batch_no = batch_no or self._generate_batch_no()
        if self._batch_exists(batch_no):
            raise DuplicateBatchError(batch_no)

        batch = CardSecretBatch(
            product_id=product_id,
            sku_id=sku_id,
            batch_no=batch_no,
            source=SecretSource(source).value,
            total_count=len(cleaned),
            note=note,
            created_by=created_by,
        )
        self.session.add(batch)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # uq_card_secret_batch_no is the only constraint on the batch row
            logger.warning(
                "secret_ingest_conflict",
                extra={"product_id": product_id, "sku_id": sku_id, "batch_no": batch_no},
            )
            raise DuplicateBatchError(batch_no) from exc

        try:
            self.session.execute(
                insert(CardSecret),
                [
                    {
                        "product_id": product_id,
                        "sku_id": sku_id,
                        "batch_id": batch.id,
                        "secret": value,
                        "status": CardSecretStatus.AVAILABLE.value,
                    }
                    for value in cleaned
                ],
            )
        except IntegrityError as exc:
            logger.warning(
                "secret_ingest_conflict",
                extra={"product_id": product_id, "sku_id": sku_id},
            )
            raise DuplicateSecretError([]) from exc

        logger.info(
            "secret_batch_ingested",
            extra={
                "product_id": product_id,
                "sku_id": sku_id,
                "batch_id": batch.id,
                "batch_no": batch.batch_no,
                "created_count": len(cleaned),
            },
        )
        return IngestResult(
            batch_id=batch.id,
            batch_no=batch.batch_no,
            product_id=product_id,
            sku_id=sku_id,
            created=len(cleaned),
        )

    def create_batch(
        self,
        product_id: int,
        secrets: Iterable[str],
        sku_id: int = LEGACY_SKU_ID,
        batch_no: str | None = None,
        source: SecretSource = SecretSource.MANUAL,
        note: str | None = None,
        created_by: int | None = None,
    ) -> IngestResult:
        """
        Admin import: resolve the SKU, then ingest.

        Without an explicit sku_id the batch lands on the product's single
        active SKU.  When several SKUs are active, the active SKU carrying
        the default code is used; otherwise SKURequiredError propagates.

        Raises:
            ProductNotFoundError, SKUInvalidError, SKURequiredError and
            everything ingest() raises.
        """
        if self.session.get(Product, product_id) is None:
            raise ProductNotFoundError(product_id)

        resolver = SKUResolver(self.session)
        try:
            sku = resolver.resolve(product_id, sku_id)
        except SKURequiredError:
            if sku_id != LEGACY_SKU_ID:
                raise
            default_sku = self._find_active_default_sku(product_id)
            if default_sku is None:
                raise
            sku_id = default_sku.id
        else:
            sku_id = sku.sku_id

        return self.ingest(
            product_id,
            sku_id,
            secrets,
            batch_no=batch_no,
            source=source,
            note=note,
            created_by=created_by,
        )

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def allocate(
        self,
        product_id: int,
        sku_id: int,
        order_id: int | None = None,
        order_item_id: int | None = None,
    ) -> AllocatedSecret:
        """
        Take one available secret of the exact (product, SKU) pair.

        Postconditions:
            - The returned secret is ``used`` in the caller's transaction,
              stamped with order_id, order_item_id and used_at.

        Raises:
            SKUInvalidError: sku_id is the legacy sentinel.
            PoolExhaustedError: no candidate left.
            OptimisticLockError: every attempt lost its candidate.
        """
        if sku_id <= LEGACY_SKU_ID:
            raise SKUInvalidError(product_id, sku_id, "allocation requires a real SKU")

        for attempt in range(1, self._max_retries + 1):
            # SKIP LOCKED spreads concurrent allocators over different rows
            # on PostgreSQL; SQLite ignores the clause and serializes writers.
            candidate_id = self.session.execute(
                select(CardSecret.id)
                .where(
                    CardSecret.product_id == product_id,
                    CardSecret.sku_id == sku_id,
                    CardSecret.status == CardSecretStatus.AVAILABLE.value,
                )
                .order_by(CardSecret.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            ).scalar_one_or_none()

            if candidate_id is None:
                logger.info(
                    "secret_pool_exhausted",
                    extra={"product_id": product_id, "sku_id": sku_id},
                )
                raise PoolExhaustedError(product_id, sku_id)

            now = self._clock.now()
            result = self.session.execute(
                update(CardSecret)
                .where(
                    CardSecret.id == candidate_id,
                    CardSecret.status == CardSecretStatus.AVAILABLE.value,
                )
                .values(
                    status=CardSecretStatus.USED.value,
                    order_id=order_id,
                    order_item_id=order_item_id,
                    used_at=now,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                payload = self.session.execute(
                    select(CardSecret.secret).where(CardSecret.id == candidate_id)
                ).scalar_one()
                logger.info(
                    "secret_allocated",
                    extra={
                        "product_id": product_id,
                        "sku_id": sku_id,
                        "secret_id": candidate_id,
                        "attempt": attempt,
                    },
                )
                return AllocatedSecret(
                    secret_id=candidate_id,
                    product_id=product_id,
                    sku_id=sku_id,
                    payload=payload,
                )

            logger.debug(
                "secret_allocation_retry",
                extra={
                    "product_id": product_id,
                    "sku_id": sku_id,
                    "secret_id": candidate_id,
                    "attempt": attempt,
                },
            )

        raise OptimisticLockError(
            "CardSecret", f"{product_id}:{sku_id}", self._max_retries
        )

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def disable(self, secret_id: int) -> bool:
        """
        Withdraw an available secret from the pool.

        Returns:
            True when the secret went available -> disabled, False when it
            was already used or disabled.

        Raises:
            SecretNotFoundError: unknown secret id.
        """
        result = self.session.execute(
            update(CardSecret)
            .where(
                CardSecret.id == secret_id,
                CardSecret.status == CardSecretStatus.AVAILABLE.value,
            )
            .values(status=CardSecretStatus.DISABLED.value, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info("secret_disabled", extra={"secret_id": secret_id})
            return True

        status = self.session.execute(
            select(CardSecret.status).where(CardSecret.id == secret_id)
        ).scalar_one_or_none()
        if status is None:
            raise SecretNotFoundError(secret_id)
        logger.debug(
            "secret_disable_noop",
            extra={"secret_id": secret_id, "status": status},
        )
        return False

    def count_available(self, product_id: int, sku_id: int) -> int:
        """Live count of available secrets for the exact pair."""
        return self.session.execute(
            CardSecret.count_available_stmt(product_id, sku_id)
        ).scalar_one()

    # -------------------------------------------------------------------------

    def _find_existing(self, cleaned: list[str]) -> set[str]:
        existing: set[str] = set()
        for start in range(0, len(cleaned), _LOOKUP_CHUNK):
            chunk = cleaned[start:start + _LOOKUP_CHUNK]
            existing.update(
                self.session.execute(
                    select(CardSecret.secret).where(CardSecret.secret.in_(chunk))
                ).scalars()
            )
        return existing

    def _find_active_default_sku(self, product_id: int) -> ProductSKU | None:
        return self.session.execute(
            select(ProductSKU).where(
                ProductSKU.product_id == product_id,
                ProductSKU.sku_code == self._default_sku_code,
                ProductSKU.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def _generate_batch_no(self) -> str:
        return f"BATCH-{self._clock.now():%Y%m%d%H%M%S}-{uuid4().hex[:8].upper()}"

    def _batch_exists(self, batch_no: str) -> bool:
        return self.session.execute(
            select(CardSecretBatch.id).where(CardSecretBatch.batch_no == batch_no)
        ).first() is not None
