"""
fulfillment_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads settings files or
    environment variables directly; the kernel receives plain values from
    whoever wires it (``fulfillment_services.bootstrap``).

Architecture position:
    Configuration.  Sits above ``fulfillment_kernel``, which MUST NEVER
    import from this package.

Invariants enforced:
    - Single entrypoint: all runtime settings flow through
      ``get_active_config()``.
    - Deterministic: the same files and environment always produce the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- config_path does not exist.
    - ``ValueError`` -- unknown section/key or invalid value.

Audit relevance:
    Every successful call emits a ``FULFILLMENT_CONFIG_TRACE`` log entry
    with the checksum of the effective settings.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fulfillment_config.loader import load_yaml_file, merge_settings, parse_settings
from fulfillment_config.schema import (
    AllocationSettings,
    DatabaseSettings,
    FulfillmentSettings,
    LoggingSettings,
    MigrationSettings,
)

_logger = logging.getLogger("fulfillment_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "FULFILLMENT_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> FulfillmentSettings:
    """The ONLY public configuration entrypoint.

    Loads ``defaults.yaml``, merges ``config_path`` over it when given, then
    applies the ``FULFILLMENT_DATABASE_URL`` environment override.

    Returns:
        FulfillmentSettings -- frozen, validated.

    Raises:
        FileNotFoundError: If config_path does not exist.
        ValueError: If validation fails.
    """
    data = load_yaml_file(DEFAULTS_FILE)
    if config_path is not None:
        data = merge_settings(data, load_yaml_file(Path(config_path)))
    else:
        data = merge_settings(data, {})

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        data["database"]["url"] = env_url

    settings = parse_settings(data)

    _logger.info(
        "FULFILLMENT_CONFIG_TRACE",
        extra={
            "trace_type": "FULFILLMENT_CONFIG_TRACE",
            "checksum": settings.checksum,
            "config_path": str(config_path) if config_path else None,
            "database_dialect": settings.database.url.split(":", 1)[0],
            "allocation_max_retries": settings.allocation.max_retries,
            "default_sku_code": settings.migration.default_sku_code,
            "run_migration_on_startup": settings.migration.run_on_startup,
        },
    )
    return settings


__all__ = [
    "get_active_config",
    "FulfillmentSettings",
    "DatabaseSettings",
    "AllocationSettings",
    "MigrationSettings",
    "LoggingSettings",
    "DATABASE_URL_ENV",
]
