"""Database layer - engine, base classes, types, and migrations."""

from fulfillment_kernel.db.base import Base, BigIntId, TrackedBase
from fulfillment_kernel.db.engine import (
    create_session_factory,
    create_tables,
    drop_tables,
    init_engine_from_url,
    session_scope,
)
from fulfillment_kernel.db.types import LEGACY_SKU_ID, Money, round_money

__all__ = [
    "init_engine_from_url",
    "create_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "BigIntId",
    "Money",
    "LEGACY_SKU_ID",
    "round_money",
]
