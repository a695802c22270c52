"""
Configuration Loader (``fulfillment_config.loader``).

Responsibility
--------------
Loads YAML settings files and parses them into the frozen dataclasses of
``fulfillment_config.schema``.  Internal tooling: runtime code obtains its
settings through ``fulfillment_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown top-level sections or keys raise ``ValueError``; a typo in a
  settings file never degrades silently into a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the merged
  settings for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``ValueError`` from the schema's ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import (
    AllocationSettings,
    DatabaseSettings,
    FulfillmentSettings,
    LoggingSettings,
    MigrationSettings,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "allocation": AllocationSettings,
    "migration": MigrationSettings,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {section: dict(values or {}) for section, values in base.items()}
    for section, values in (override or {}).items():
        merged.setdefault(section, {}).update(values or {})
    return merged


def parse_section(name: str, data: dict[str, Any]) -> Any:
    """Build one settings dataclass, rejecting unknown keys."""
    cls = _SECTIONS[name]
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown key(s) in '{name}': {sorted(unknown)}")
    return cls(**data)


def parse_settings(data: dict[str, Any]) -> FulfillmentSettings:
    """
    Parse merged settings into a ``FulfillmentSettings``.

    Raises:
        ValueError: unknown section/key, or a value rejected by the schema.
        TypeError: a required key (database.url) is missing.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration section(s): {sorted(unknown)}")

    return FulfillmentSettings(
        database=parse_section("database", data.get("database") or {}),
        allocation=parse_section("allocation", data.get("allocation") or {}),
        migration=parse_section("migration", data.get("migration") or {}),
        logging=parse_section("logging", data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
