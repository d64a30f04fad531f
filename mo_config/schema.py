"""
ProductionConfig schema.

Frozen dataclasses for the tunable rules of the manufacturing order engine:
closure readiness thresholds, progress alert thresholds, progress cache
settings, pallet defaults and production line assignment.  YAML is parsed
into these types by the loader; services receive them through injection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Closure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClosureRules:
    """Thresholds used by the closure readiness engine."""

    min_completion_percentage: Decimal = Decimal("95")
    max_failure_rate: Decimal = Decimal("15")
    require_pallet_finalization: bool = True
    min_readiness_percentage: Decimal = Decimal("80")
    wattage_min: Decimal = Decimal("100")
    wattage_max: Decimal = Decimal("1000")

    def __post_init__(self) -> None:
        if self.wattage_min > self.wattage_max:
            raise ValueError(
                f"wattage_min ({self.wattage_min}) exceeds wattage_max ({self.wattage_max})"
            )


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlertThresholds:
    panels_remaining: int = 50
    low_progress: Decimal = Decimal("25")
    high_failure_rate: Decimal = Decimal("10")
    bottleneck_queue: int = 5
    slow_station_minutes: Decimal = Decimal("10")


@dataclass(frozen=True)
class ProgressSettings:
    cache_ttl_seconds: int = 30
    default_station_minutes: Decimal = Decimal("5")


@dataclass(frozen=True)
class PalletSettings:
    default_capacity: int = 25


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductionConfig:
    """Complete engine configuration; ``checksum`` identifies the source."""

    config_id: str
    version: int
    closure: ClosureRules = field(default_factory=ClosureRules)
    alerts: AlertThresholds = field(default_factory=AlertThresholds)
    progress: ProgressSettings = field(default_factory=ProgressSettings)
    pallets: PalletSettings = field(default_factory=PalletSettings)
    # panel type value (e.g. "TYPE_60") -> production line value
    line_assignments: dict[str, str] = field(default_factory=dict)
    checksum: str = ""
