"""
Module: fulfillment_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory creation, and
    transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables/drop_tables which import models).

Invariants enforced:
    - No process-wide handle: every function takes or returns the Engine /
      session factory explicitly, and callers inject them into the
      components that need storage.
    - PostgreSQL sessions run at READ COMMITTED; the ledger and the secret
      pool rely on conditional UPDATE statements and row locks rather than
      stronger isolation.
    - SQLite file databases are accepted for local runs and tests.  The
      connection gets a busy timeout so concurrent writers queue on the
      database lock instead of failing.

Failure modes:
    - sqlalchemy.exc.ArgumentError on a malformed URL.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

from collections.abc import Callable
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.engine")

SessionFactory = Callable[[], Session]


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Create a SQLAlchemy engine for the given database URL.

    Preconditions: database_url is a PostgreSQL or SQLite connection string.
    Postconditions: Returns a new Engine.  Nothing is stored globally; the
        caller owns the engine and must dispose() it.

    Args:
        database_url: Connection URL (postgresql://... or sqlite:///path).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_busy_timeout: Seconds a SQLite writer waits for the lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "timeout": sqlite_busy_timeout,
                "check_same_thread": False,
            },
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "echo": echo,
        },
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Build the session factory that components receive as their storage handle.

    Sessions keep loaded attributes after commit so DTOs can be built from
    rows after the unit of work closes.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: SessionFactory) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            StockLedgerService(session).reserve(sku_id, 2)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create all tables defined in the models (existing tables are left alone).

    Postconditions: All tables declared on Base.metadata exist.
    """
    from fulfillment_kernel.db.base import Base
    import fulfillment_kernel.models  # noqa: F401  (registers all tables)

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from fulfillment_kernel.db.base import Base
    import fulfillment_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    """Check if the engine talks to PostgreSQL."""
    return engine.dialect.name == "postgresql"
