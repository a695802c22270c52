"""
Configuration schema (``fulfillment_config.schema``).

Frozen dataclasses describing the runtime settings of the fulfillment
kernel.  Every section validates itself in ``__post_init__`` and raises
``ValueError`` on an unusable value, so a bad YAML file fails at startup
rather than on the first order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseSettings:
    """Engine construction parameters."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.url or not self.url.strip():
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"database.max_overflow must be >= 0, got {self.max_overflow}")
        if self.pool_timeout <= 0:
            raise ValueError(f"database.pool_timeout must be > 0, got {self.pool_timeout}")
        if self.sqlite_busy_timeout <= 0:
            raise ValueError(
                f"database.sqlite_busy_timeout must be > 0, got {self.sqlite_busy_timeout}"
            )


@dataclass(frozen=True)
class AllocationSettings:
    """Secret allocation behaviour."""

    # Attempts per secret before OptimisticLockError
    max_retries: int = 3
    payload_separator: str = "\n"

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"allocation.max_retries must be >= 1, got {self.max_retries}")


@dataclass(frozen=True)
class MigrationSettings:
    default_sku_code: str = "DEFAULT"
    run_on_startup: bool = True

    def __post_init__(self) -> None:
        if not self.default_sku_code or not self.default_sku_code.strip():
            raise ValueError("migration.default_sku_code must not be empty")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {self.level!r}")

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level.upper())


@dataclass(frozen=True)
class FulfillmentSettings:
    """
    The complete runtime configuration.

    Obtained only through ``fulfillment_config.get_active_config()``.
    """

    database: DatabaseSettings
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    migration: MigrationSettings = field(default_factory=MigrationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
