"""
Module: fulfillment_kernel.db.migrations
Responsibility: Startup migration from the single-SKU schema to the SKU model.
    Adds the sku_id column where a legacy schema lacks it, replaces the
    legacy cart unique index, and gives every product without SKUs a default
    SKU that inherits its price and stock counters, rewriting all dependent
    rows from the sentinel sku_id 0 to the new id.
Architecture position: Kernel > DB.  Imports models to address the tables.
    Runs once at startup (fulfillment_services.bootstrap) before any service
    is used.

Invariants enforced:
    - "Zero SKU rows" means "not migrated".  A product that already has any
      SKU row is never touched again, so re-running performs no writes.
    - Each product migrates in its own transaction: default SKU insert and
      dependent-row rewrite commit together or not at all.
    - Two runners racing on one product are serialized by
      uq_product_sku_code; the loser rolls back and counts it as skipped.
    - Counters are copied verbatim; the migration never recomputes stock.

Failure modes:
    - MigrationError from run(): any step failed.  Fatal to startup.
    - MigrationError from migrate_cart_unique_index(): the legacy unique
      rule is a table constraint on SQLite, which cannot be dropped in place.
"""

from sqlalchemy import exists, func, inspect, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.db.engine import SessionFactory, create_tables, session_scope
from fulfillment_kernel.db.types import LEGACY_SKU_ID
from fulfillment_kernel.domain.dtos import MigrationReport
from fulfillment_kernel.exceptions import MigrationError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.card_secret import CardSecret, CardSecretBatch
from fulfillment_kernel.models.cart import CART_UNIQUE_INDEX, CartItem
from fulfillment_kernel.models.order import OrderItem
from fulfillment_kernel.models.product import DEFAULT_SKU_CODE, Product, ProductSKU

logger = get_logger("db.migrations")

# Tables whose rows point at a SKU and predate the sku_id column
SKU_DEPENDENT_MODELS = (OrderItem, CartItem, CardSecretBatch, CardSecret)

_LEGACY_CART_COLUMNS = frozenset({"user_id", "product_id"})


class LegacySKUMigrationRunner:
    """
    Idempotent migration of legacy products into the SKU model.

    Contract:
        Every public method may be called any number of times; after the
        first successful call, later calls change nothing.

    Guarantees:
        - After ensure_product_sku_migration(), every product has >= 1 SKU
          and no dependent row of a migrated product keeps sku_id 0.
    """

    def __init__(
        self,
        engine: Engine,
        session_factory: SessionFactory,
        default_sku_code: str = DEFAULT_SKU_CODE,
    ):
        self._engine = engine
        self._session_factory = session_factory
        self._default_sku_code = default_sku_code

    def run(self) -> MigrationReport:
        """
        Bring the schema and data up to the SKU model.

        Raises:
            MigrationError: naming the step that failed.
        """
        logger.info("migration_started", extra={"dialect": self._engine.dialect.name})
        steps = (
            ("create_tables", lambda: create_tables(self._engine)),
            ("ensure_sku_columns", self.ensure_sku_columns),
            ("migrate_cart_unique_index", self.migrate_cart_unique_index),
            ("ensure_product_sku_migration", self.ensure_product_sku_migration),
        )
        result = None
        for step, action in steps:
            try:
                result = action()
            except MigrationError:
                logger.error("migration_failed", extra={"step": step}, exc_info=True)
                raise
            except Exception as exc:
                logger.error("migration_failed", extra={"step": step}, exc_info=True)
                raise MigrationError(step, str(exc)) from exc

        logger.info(
            "migration_completed",
            extra={
                "migrated_count": result.migrated_count,
                "skipped_count": result.skipped_count,
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Schema steps
    # -------------------------------------------------------------------------

    def ensure_sku_columns(self) -> list[str]:
        """
        Add ``sku_id BIGINT NOT NULL DEFAULT 0`` where a legacy table lacks it.

        Returns:
            Names of the tables that were altered.
        """
        inspector = inspect(self._engine)
        altered: list[str] = []
        for model in SKU_DEPENDENT_MODELS:
            table = model.__tablename__
            if not inspector.has_table(table):
                continue
            columns = {column["name"] for column in inspector.get_columns(table)}
            if "sku_id" in columns:
                continue
            with self._engine.begin() as conn:
                quoted = conn.dialect.identifier_preparer.quote(table)
                conn.execute(
                    text(
                        f"ALTER TABLE {quoted} "
                        f"ADD COLUMN sku_id BIGINT NOT NULL DEFAULT {LEGACY_SKU_ID}"
                    )
                )
            altered.append(table)
            logger.info("sku_column_added", extra={"table": table})
        return altered

    def migrate_cart_unique_index(self) -> list[str]:
        """
        Replace the legacy (user_id, product_id) uniqueness on cart_items with
        (user_id, product_id, sku_id).

        Returns:
            Names of the legacy indexes / constraints that were dropped.
        """
        inspector = inspect(self._engine)
        table = CartItem.__tablename__
        if not inspector.has_table(table):
            return []

        legacy_constraints = [
            constraint.get("name")
            for constraint in inspector.get_unique_constraints(table)
            if set(constraint["column_names"]) == _LEGACY_CART_COLUMNS
        ]
        # Constraint-backed indexes go away with their constraint
        legacy_indexes = [
            index["name"]
            for index in inspector.get_indexes(table)
            if index.get("unique")
            and set(index["column_names"]) == _LEGACY_CART_COLUMNS
            and not index.get("duplicates_constraint")
        ]

        dialect = self._engine.dialect.name
        for name in legacy_constraints:
            if dialect == "sqlite" or not name:
                raise MigrationError(
                    "migrate_cart_unique_index",
                    f"legacy unique constraint {name!r} on {table} "
                    "cannot be dropped in place",
                )

        dropped: list[str] = []
        with self._engine.begin() as conn:
            quote = conn.dialect.identifier_preparer.quote
            for name in legacy_constraints:
                conn.execute(text(f"ALTER TABLE {quote(table)} DROP CONSTRAINT {quote(name)}"))
                dropped.append(name)
            for name in legacy_indexes:
                conn.execute(text(f"DROP INDEX {quote(name)}"))
                dropped.append(name)

            conn.execute(
                text(
                    f"CREATE UNIQUE INDEX IF NOT EXISTS {quote(CART_UNIQUE_INDEX)} "
                    f"ON {quote(table)} (user_id, product_id, sku_id)"
                )
            )

        for name in dropped:
            logger.info("cart_legacy_index_dropped", extra={"index_name": name})
        return dropped

    # -------------------------------------------------------------------------
    # Data step
    # -------------------------------------------------------------------------

    def ensure_product_sku_migration(self) -> MigrationReport:
        """
        Give every product without SKU rows a default SKU and backfill the
        dependent rows.

        Returns:
            MigrationReport listing migrated and skipped product ids.
        """
        with self._session_factory() as session:
            candidate_ids = list(
                session.execute(
                    select(Product.id)
                    .where(~exists().where(ProductSKU.product_id == Product.id))
                    .order_by(Product.id)
                ).scalars()
            )

        migrated: list[int] = []
        skipped: list[int] = []
        for product_id in candidate_ids:
            try:
                with session_scope(self._session_factory) as session:
                    sku_id = self._migrate_product(session, product_id)
            except IntegrityError as exc:
                if not _is_sku_code_conflict(exc):
                    raise
                logger.info(
                    "sku_migration_conflict",
                    extra={"product_id": product_id},
                )
                skipped.append(product_id)
                continue

            if sku_id is None:
                skipped.append(product_id)
            else:
                migrated.append(product_id)

        return MigrationReport(
            migrated_product_ids=tuple(migrated),
            skipped_product_ids=tuple(skipped),
        )

    def _migrate_product(self, session: Session, product_id: int) -> int | None:
        product = session.get(Product, product_id)
        if product is None:
            return None

        # Precondition may have changed since the candidate scan
        sku_count = session.execute(
            select(func.count(ProductSKU.id)).where(ProductSKU.product_id == product_id)
        ).scalar_one()
        if sku_count:
            return None

        sku = ProductSKU(
            product_id=product_id,
            sku_code=self._default_sku_code,
            spec_values={},
            price_amount=product.price_amount,
            manual_stock_total=product.manual_stock_total,
            manual_stock_locked=product.manual_stock_locked,
            manual_stock_sold=product.manual_stock_sold,
            is_active=True,
            sort_order=0,
        )
        session.add(sku)
        session.flush()

        rewritten: dict[str, int] = {}
        for model in SKU_DEPENDENT_MODELS:
            result = session.execute(
                update(model)
                .where(model.product_id == product_id, model.sku_id == LEGACY_SKU_ID)
                .values(sku_id=sku.id)
                .execution_options(synchronize_session=False)
            )
            rewritten[model.__tablename__] = result.rowcount

        logger.info(
            "sku_migration_product_backfilled",
            extra={
                "product_id": product_id,
                "sku_id": sku.id,
                "rewritten": rewritten,
            },
        )
        return sku.id


def _is_sku_code_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_product_sku_code" in message or "product_skus.sku_code" in message
