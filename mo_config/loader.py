"""
Configuration Loader (``mo_config.loader``).

Responsibility
--------------
Loads the production YAML file and parses it into the frozen dataclasses
of ``mo_config.schema``.  Runtime code obtains configuration through
``mo_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Missing required top-level keys raise ``KeyError``; bad values raise
  ``ValueError``.  Optional sections fall back to the schema defaults.
* Numeric thresholds are parsed to ``Decimal`` via ``str`` so YAML floats
  never leak binary rounding into comparisons.
* ``compute_checksum`` is a deterministic SHA-256 over the raw document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from mo_config.schema import (
    AlertThresholds,
    ClosureRules,
    PalletSettings,
    ProductionConfig,
    ProgressSettings,
)

VALID_PANEL_TYPES = frozenset({"TYPE_36", "TYPE_40", "TYPE_60", "TYPE_72", "TYPE_144"})
VALID_LINES = frozenset({"LINE_1", "LINE_2"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_decimal(value: Any, name: str, minimum: Decimal | None = Decimal("0")) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: expected a number, got {value!r}") from None
    if minimum is not None and result < minimum:
        raise ValueError(f"{name}: must be >= {minimum}, got {result}")
    return result


def parse_int(value: Any, name: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name}: expected an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{name}: must be >= {minimum}, got {value}")
    return value


def parse_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name}: expected true/false, got {value!r}")
    return value


def parse_closure_rules(data: dict[str, Any]) -> ClosureRules:
    """Parse ClosureRules; absent keys keep their defaults."""
    defaults = ClosureRules()
    return ClosureRules(
        min_completion_percentage=parse_decimal(
            data.get("min_completion_percentage", defaults.min_completion_percentage),
            "closure.min_completion_percentage",
        ),
        max_failure_rate=parse_decimal(
            data.get("max_failure_rate", defaults.max_failure_rate),
            "closure.max_failure_rate",
        ),
        require_pallet_finalization=parse_bool(
            data.get("require_pallet_finalization", defaults.require_pallet_finalization),
            "closure.require_pallet_finalization",
        ),
        min_readiness_percentage=parse_decimal(
            data.get("min_readiness_percentage", defaults.min_readiness_percentage),
            "closure.min_readiness_percentage",
        ),
        wattage_min=parse_decimal(
            data.get("wattage_min", defaults.wattage_min), "closure.wattage_min",
        ),
        wattage_max=parse_decimal(
            data.get("wattage_max", defaults.wattage_max), "closure.wattage_max",
        ),
    )


def parse_alert_thresholds(data: dict[str, Any]) -> AlertThresholds:
    defaults = AlertThresholds()
    return AlertThresholds(
        panels_remaining=parse_int(
            data.get("panels_remaining", defaults.panels_remaining),
            "alerts.panels_remaining",
        ),
        low_progress=parse_decimal(
            data.get("low_progress", defaults.low_progress), "alerts.low_progress",
        ),
        high_failure_rate=parse_decimal(
            data.get("high_failure_rate", defaults.high_failure_rate),
            "alerts.high_failure_rate",
        ),
        bottleneck_queue=parse_int(
            data.get("bottleneck_queue", defaults.bottleneck_queue),
            "alerts.bottleneck_queue",
        ),
        slow_station_minutes=parse_decimal(
            data.get("slow_station_minutes", defaults.slow_station_minutes),
            "alerts.slow_station_minutes",
        ),
    )


def parse_progress_settings(data: dict[str, Any]) -> ProgressSettings:
    defaults = ProgressSettings()
    return ProgressSettings(
        cache_ttl_seconds=parse_int(
            data.get("cache_ttl_seconds", defaults.cache_ttl_seconds),
            "progress.cache_ttl_seconds",
        ),
        default_station_minutes=parse_decimal(
            data.get("default_station_minutes", defaults.default_station_minutes),
            "progress.default_station_minutes",
        ),
    )


def parse_pallet_settings(data: dict[str, Any]) -> PalletSettings:
    return PalletSettings(
        default_capacity=parse_int(
            data.get("default_capacity", PalletSettings().default_capacity),
            "pallets.default_capacity",
            minimum=1,
        ),
    )


def parse_line_assignments(data: dict[str, Any]) -> dict[str, str]:
    assignments: dict[str, str] = {}
    for panel_type, line in data.items():
        panel_type = str(panel_type)
        if not panel_type.startswith("TYPE_"):
            panel_type = f"TYPE_{panel_type}"
        if panel_type not in VALID_PANEL_TYPES:
            raise ValueError(f"line_assignments: unknown panel type {panel_type!r}")
        if line not in VALID_LINES:
            raise ValueError(f"line_assignments: unknown production line {line!r}")
        assignments[panel_type] = line
    return assignments


def parse_production_config(data: dict[str, Any]) -> ProductionConfig:
    """
    Parse a complete ProductionConfig from a document dict.

    Raises:
        KeyError: ``config_id`` or ``version`` missing.
        ValueError: any value out of range.
    """
    return ProductionConfig(
        config_id=data["config_id"],
        version=parse_int(data["version"], "version", minimum=1),
        closure=parse_closure_rules(data.get("closure") or {}),
        alerts=parse_alert_thresholds(data.get("alerts") or {}),
        progress=parse_progress_settings(data.get("progress") or {}),
        pallets=parse_pallet_settings(data.get("pallets") or {}),
        line_assignments=parse_line_assignments(data.get("line_assignments") or {}),
        checksum=compute_checksum(data),
    )


def load_production_config(path: Path) -> ProductionConfig:
    return parse_production_config(load_yaml_file(path))
