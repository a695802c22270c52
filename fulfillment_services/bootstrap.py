"""
Process bootstrap -- wires settings into engine, session factory and services.

Responsibility:
    Turns a FulfillmentSettings into a running FulfillmentRuntime: configures
    logging, builds the engine and session factory, runs the legacy SKU
    migration (fatal on failure), and hands out services bound to them.

Architecture position:
    Services -- the outermost layer of this repository.  The only place that
    reads FulfillmentSettings and translates it into kernel constructor
    arguments.

Failure modes:
    - MigrationError: propagated after the engine is disposed.  The process
      must not serve traffic against an un-migrated schema.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fulfillment_config import FulfillmentSettings
from fulfillment_kernel.db.engine import create_session_factory, init_engine_from_url
from fulfillment_kernel.db.migrations import LegacySKUMigrationRunner
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import MigrationReport
from fulfillment_kernel.exceptions import MigrationError
from fulfillment_kernel.logging_config import configure_logging, get_logger
from fulfillment_kernel.services.fulfillment_service import FulfillmentService
from fulfillment_kernel.services.secret_pool import SecretPoolService

logger = get_logger("bootstrap")


@dataclass
class FulfillmentRuntime:
    """Handles owned by one process.  Call dispose() on shutdown."""

    settings: FulfillmentSettings
    engine: Engine
    session_factory: sessionmaker[Session]
    clock: Clock
    migration_report: MigrationReport | None = None

    def fulfillment_service(self) -> FulfillmentService:
        return FulfillmentService(
            self.session_factory,
            clock=self.clock,
            max_retries=self.settings.allocation.max_retries,
            payload_separator=self.settings.allocation.payload_separator,
        )

    def secret_pool(self, session: Session) -> SecretPoolService:
        return SecretPoolService(
            session,
            clock=self.clock,
            max_retries=self.settings.allocation.max_retries,
            default_sku_code=self.settings.migration.default_sku_code,
        )

    def migration_runner(self) -> LegacySKUMigrationRunner:
        return LegacySKUMigrationRunner(
            self.engine,
            self.session_factory,
            default_sku_code=self.settings.migration.default_sku_code,
        )

    def dispose(self) -> None:
        self.engine.dispose()


def create_engine_from_settings(settings: FulfillmentSettings) -> Engine:
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        sqlite_busy_timeout=db.sqlite_busy_timeout,
    )


def bootstrap(
    settings: FulfillmentSettings,
    clock: Clock | None = None,
    run_migrations: bool | None = None,
) -> FulfillmentRuntime:
    """
    Build the runtime for one process.

    Args:
        settings: Output of fulfillment_config.get_active_config().
        clock: Time source; SystemClock by default.
        run_migrations: Overrides settings.migration.run_on_startup.

    Raises:
        MigrationError: the startup migration failed.
    """
    configure_logging(level=settings.logging.level_number)

    engine = create_engine_from_settings(settings)
    runtime = FulfillmentRuntime(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        clock=clock or SystemClock(),
    )

    should_migrate = (
        settings.migration.run_on_startup if run_migrations is None else run_migrations
    )
    if should_migrate:
        try:
            runtime.migration_report = runtime.migration_runner().run()
        except MigrationError:
            logger.critical("bootstrap_aborted", extra={"config_checksum": settings.checksum})
            runtime.dispose()
            raise

    logger.info(
        "bootstrap_completed",
        extra={
            "config_checksum": settings.checksum,
            "migrated": should_migrate,
        },
    )
    return runtime
