"""
mo_services._closure_types -- DTOs for progress, readiness and closure.

Responsibility:
    Frozen dataclasses produced by the progress tracker, the closure
    readiness engine and the closure executor: readiness checks and
    recommendations, closure options and results, pallet finalization
    items, completion reports, progress snapshots, alerts and bottlenecks.

Architecture position:
    Services.  These types live in mo_services/ because the orchestrators
    that produce them live here.  They have no kernel model dependency.

Invariants enforced:
    - All DTOs are frozen.
    - Every top-level result carries an explicit timestamp.
    - ``to_json_safe`` is the one conversion used before a DTO is stored in
      a JSON column; Decimal, UUID, datetime and Enum become strings.

Audit relevance:
    ClosureAssessment, PalletFinalizationResult, CompletionReport and
    ClosureOptions are snapshotted verbatim into the closure audit record.
"""

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def to_json_safe(value: Any) -> Any:
    """Recursively convert a DTO (or nested value) into JSON-storable data."""
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ReadinessStatus(str, Enum):
    READY = "READY"
    NOT_READY = "NOT_READY"


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReadinessCheck:
    """One closure readiness criterion and its outcome."""
    name: str
    passed: bool
    reason: str
    severity: Severity | None
    weight: int
    details: dict[str, Any] = field(default_factory=dict)

    def as_blocker(self) -> dict[str, Any]:
        return {
            "check": self.name,
            "reason": self.reason,
            "severity": self.severity.value if self.severity else None,
            "details": to_json_safe(self.details),
        }


@dataclass(frozen=True)
class Recommendation:
    type: str
    priority: str
    message: str
    details: str | None = None
    check: str | None = None


@dataclass(frozen=True)
class ClosureAssessment:
    """Result of assessing an order for closure; computed, never stored alone."""
    mo_id: UUID
    order_number: str
    mo_status: str
    status: ReadinessStatus
    is_ready: bool
    readiness_score: int
    readiness_percentage: Decimal
    checks: tuple[ReadinessCheck, ...]
    blockers: tuple[ReadinessCheck, ...]
    recommendations: tuple[Recommendation, ...]
    assessed_at: datetime

    def check(self, name: str) -> ReadinessCheck:
        for c in self.checks:
            if c.name == name:
                return c
        raise KeyError(name)

    def blocker_dicts(self) -> list[dict[str, Any]]:
        return [b.as_blocker() for b in self.blockers]


# ---------------------------------------------------------------------------
# Closure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClosureOptions:
    force: bool = False
    skip_validation: bool = False
    finalize_pallets: bool = True
    generate_report: bool = True


@dataclass(frozen=True)
class PalletFinalizationItem:
    pallet_id: UUID
    pallet_number: str
    panel_count: int
    succeeded: bool
    error: str | None = None


@dataclass(frozen=True)
class PalletFinalizationResult:
    """Per-pallet outcome of closing an order's open pallets."""
    total_pallets: int
    finalized_count: int
    items: tuple[PalletFinalizationItem, ...] = ()

    @property
    def failed_count(self) -> int:
        return self.total_pallets - self.finalized_count


@dataclass(frozen=True)
class CompletionReport:
    mo_id: UUID
    order_number: str
    generated_at: datetime
    summary: dict[str, Any]
    quality_metrics: dict[str, Any]
    pallet_summary: dict[str, Any]
    performance_metrics: dict[str, Any]
    timeline: dict[str, Any]


@dataclass(frozen=True)
class ClosureResult:
    mo_id: UUID
    order_number: str
    closed_by: UUID
    closed_at: datetime
    final_statistics: dict[str, Any]
    audit_record_id: UUID
    assessment: ClosureAssessment | None = None
    pallet_finalization: PalletFinalizationResult | None = None
    completion_report: CompletionReport | None = None


@dataclass(frozen=True)
class RollbackResult:
    mo_id: UUID
    order_number: str
    rolled_back_by: UUID
    rolled_back_at: datetime
    reason: str
    previous_status: str
    new_status: str
    audit_record_id: UUID


@dataclass(frozen=True)
class ClosureAuditView:
    """Read-only view of one closure audit record."""
    id: UUID
    mo_id: UUID
    closure_type: str
    closed_by: UUID
    created_at: datetime
    assessment_data: dict[str, Any] | None
    final_statistics: dict[str, Any] | None
    pallet_finalization: dict[str, Any] | None
    completion_report: dict[str, Any] | None
    closure_options: dict[str, Any] | None


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Alert:
    type: str
    severity: Severity
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Bottleneck:
    station_id: int
    station_name: str
    type: str  # "queue" or "slow_station"
    value: Decimal
    threshold: Decimal
    message: str


@dataclass(frozen=True)
class PerformanceMetrics:
    total_production_hours: Decimal
    panels_per_hour: Decimal
    efficiency: Decimal
    avg_minutes_per_panel: Decimal
    on_time_likelihood: int


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of an order's production progress."""
    mo_id: UUID
    order_number: str
    status: str
    target_quantity: int
    completed_quantity: int
    failed_quantity: int
    in_progress_quantity: int
    total_panels: int
    rework_panels: int
    progress_percentage: Decimal
    panels_remaining: int
    failure_rate: Decimal
    estimated_completion_time: datetime | None
    performance_metrics: PerformanceMetrics
    station_queues: dict[int, int]
    alerts: tuple[Alert, ...]
    bottlenecks: tuple[Bottleneck, ...]
    calculated_at: datetime
