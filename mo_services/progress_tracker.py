"""
mo_services.progress_tracker -- progress snapshots, alerts and bottlenecks.

Responsibility:
    Builds a ProgressSnapshot for one manufacturing order from its counters
    and the ProgressSelector aggregates: percentages, remaining panels,
    failure rate, estimated completion time, performance metrics, alerts
    and station bottlenecks.  Snapshots are cached per order for a short
    TTL measured on the injected clock.

Architecture position:
    Services.  Read-only over the kernel; owns no transaction.  The facade
    calls ``invalidate`` after every committed counter change.

Invariants enforced:
    - Order counters are the source of truth for completed / failed /
      in-progress; panel rows only widen ``total_panels``.
    - failure_rate is 0 when there are no panels, otherwise rounded to two
      places.
    - A cached snapshot is never served past ``cache_ttl_seconds``.

Failure modes:
    - MONotFoundError for an unknown order.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from mo_config.schema import AlertThresholds, ProgressSettings
from mo_kernel.domain.clock import Clock, SystemClock
from mo_kernel.exceptions import MONotFoundError
from mo_kernel.logging_config import get_logger
from mo_kernel.models.manufacturing_order import ManufacturingOrder, MOStatus
from mo_kernel.models.panel import STATION_NAMES
from mo_kernel.selectors.progress_selector import ProgressInputs, ProgressSelector
from mo_services._closure_types import (
    Alert,
    Bottleneck,
    PerformanceMetrics,
    ProgressSnapshot,
    Severity,
)

logger = get_logger("services.progress_tracker")

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def percentage(part: int | Decimal, whole: int | Decimal) -> Decimal:
    """``part / whole * 100`` rounded to two places, 0 for an empty whole."""
    if not whole:
        return Decimal("0.00")
    return (Decimal(part) / Decimal(whole) * _HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP)


def compute_failure_rate(failed: int, total_panels: int) -> Decimal:
    return percentage(failed, total_panels)


def compute_total_panels(
    panel_count: int, completed: int, failed: int, in_progress: int,
) -> int:
    return max(panel_count, completed + failed + in_progress)


def on_time_likelihood(
    estimated_completion_date: datetime | None,
    estimated_completion_time: datetime | None,
) -> int:
    """100 on time, 75 within a day late, 50 within three days, else 25."""
    if estimated_completion_date is None or estimated_completion_time is None:
        return 0
    late_by = estimated_completion_time - estimated_completion_date
    if late_by <= timedelta(0):
        return 100
    if late_by <= timedelta(hours=24):
        return 75
    if late_by <= timedelta(hours=72):
        return 50
    return 25


class ProgressTracker:
    """
    Cached progress calculation for manufacturing orders.

    Contract:
        Receives session, clock, alert thresholds and progress settings via
        constructor injection.  One instance per unit of work; the cache is
        instance state, never module state.

    Guarantees:
        - ``calculate_mo_progress(mo_id, fresh=True)`` always recomputes.
        - ``invalidate(mo_id)`` drops the cached snapshot immediately.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        alerts: AlertThresholds | None = None,
        settings: ProgressSettings | None = None,
        selector: ProgressSelector | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._alerts = alerts or AlertThresholds()
        self._settings = settings or ProgressSettings()
        self._selector = selector or ProgressSelector(session)
        self._cache: dict[UUID, tuple[datetime, ProgressSnapshot]] = {}

    def invalidate(self, mo_id: UUID) -> None:
        self._cache.pop(mo_id, None)

    def clear_cache(self) -> None:
        self._cache.clear()

    def calculate_mo_progress(self, mo_id: UUID, fresh: bool = False) -> ProgressSnapshot:
        now = self._clock.now()
        if not fresh:
            cached = self._cache.get(mo_id)
            if cached is not None and cached[0] > now:
                return cached[1]

        mo = self._session.get(ManufacturingOrder, mo_id)
        if mo is None:
            raise MONotFoundError(str(mo_id))

        snapshot = self._build_snapshot(mo, self._selector.snapshot_inputs(mo_id), now)
        self._cache[mo_id] = (
            now + timedelta(seconds=self._settings.cache_ttl_seconds),
            snapshot,
        )

        logger.info(
            "mo_progress_calculated",
            extra={
                "mo_id": str(mo.id),
                "order_number": mo.order_number,
                "progress_percentage": snapshot.progress_percentage,
                "panels_remaining": snapshot.panels_remaining,
            },
        )
        return snapshot

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def _build_snapshot(
        self,
        mo: ManufacturingOrder,
        inputs: ProgressInputs,
        now: datetime,
    ) -> ProgressSnapshot:
        completed = mo.completed_quantity
        failed = mo.failed_quantity
        in_progress = mo.in_progress_quantity
        status = MOStatus(mo.status)

        total_panels = compute_total_panels(inputs.panel_count, completed, failed, in_progress)
        progress_pct = percentage(completed, mo.target_quantity)
        panels_remaining = max(0, mo.target_quantity - completed - failed)
        failure_rate = compute_failure_rate(failed, total_panels)

        eta = self._estimate_completion(mo, inputs, panels_remaining)
        metrics = self._performance_metrics(mo, eta, now)

        alerts = self._alerts_for(mo, status, progress_pct, panels_remaining, failure_rate)
        bottlenecks = self._bottlenecks_for(inputs)

        return ProgressSnapshot(
            mo_id=mo.id,
            order_number=mo.order_number,
            status=status.value,
            target_quantity=mo.target_quantity,
            completed_quantity=completed,
            failed_quantity=failed,
            in_progress_quantity=in_progress,
            total_panels=total_panels,
            rework_panels=inputs.rework_panels,
            progress_percentage=progress_pct,
            panels_remaining=panels_remaining,
            failure_rate=failure_rate,
            estimated_completion_time=eta,
            performance_metrics=metrics,
            station_queues=dict(inputs.station_queues),
            alerts=tuple(alerts),
            bottlenecks=tuple(bottlenecks),
            calculated_at=now,
        )

    def _estimate_completion(
        self,
        mo: ManufacturingOrder,
        inputs: ProgressInputs,
        panels_remaining: int,
    ) -> datetime | None:
        if MOStatus(mo.status) == MOStatus.COMPLETED:
            return mo.completed_at
        if mo.completed_quantity == 0 or mo.started_at is None:
            return None
        average = inputs.average_station_minutes
        minutes_per_panel = (
            Decimal(str(average)) if average is not None
            else self._settings.default_station_minutes
        )
        return mo.started_at + timedelta(minutes=float(minutes_per_panel * panels_remaining))

    def _performance_metrics(
        self,
        mo: ManufacturingOrder,
        eta: datetime | None,
        now: datetime,
    ) -> PerformanceMetrics:
        zero = Decimal("0.00")
        hours = zero
        if mo.started_at is not None:
            hours = Decimal(str((now - mo.started_at).total_seconds() / 3600))

        if hours <= 0:
            panels_per_hour = efficiency = avg_minutes = zero
        else:
            completed = Decimal(mo.completed_quantity)
            panels_per_hour = (completed / hours).quantize(_CENT, rounding=ROUND_HALF_UP)
            planned_hours = (
                Decimal(mo.target_quantity) * self._settings.default_station_minutes / 60
            )
            efficiency = (
                (completed / Decimal(mo.target_quantity)) / (hours / planned_hours) * _HUNDRED
            ).quantize(_CENT, rounding=ROUND_HALF_UP)
            avg_minutes = (
                (hours * 60 / completed).quantize(_CENT, rounding=ROUND_HALF_UP)
                if completed else zero
            )

        return PerformanceMetrics(
            total_production_hours=hours.quantize(_CENT, rounding=ROUND_HALF_UP),
            panels_per_hour=panels_per_hour,
            efficiency=efficiency,
            avg_minutes_per_panel=avg_minutes,
            on_time_likelihood=on_time_likelihood(mo.estimated_completion_date, eta),
        )

    def _alerts_for(
        self,
        mo: ManufacturingOrder,
        status: MOStatus,
        progress_pct: Decimal,
        panels_remaining: int,
        failure_rate: Decimal,
    ) -> list[Alert]:
        thresholds = self._alerts
        alerts: list[Alert] = []

        if 0 < panels_remaining <= thresholds.panels_remaining:
            alerts.append(Alert(
                type="panels_remaining",
                severity=Severity.WARNING,
                message=f"Only {panels_remaining} panels remaining in MO {mo.order_number}",
                details={
                    "threshold": thresholds.panels_remaining,
                    "current_value": panels_remaining,
                },
            ))

        if progress_pct < thresholds.low_progress and status == MOStatus.ACTIVE:
            alerts.append(Alert(
                type="low_progress",
                severity=Severity.WARNING,
                message=f"Low progress: {progress_pct}% completed for MO {mo.order_number}",
                details={
                    "threshold": thresholds.low_progress,
                    "current_value": progress_pct,
                },
            ))

        if failure_rate > thresholds.high_failure_rate:
            alerts.append(Alert(
                type="high_failure_rate",
                severity=Severity.CRITICAL,
                message=f"High failure rate: {failure_rate}% for MO {mo.order_number}",
                details={
                    "threshold": thresholds.high_failure_rate,
                    "current_value": failure_rate,
                },
            ))

        if panels_remaining == 0 and status != MOStatus.COMPLETED:
            alerts.append(Alert(
                type="ready_for_completion",
                severity=Severity.INFO,
                message=f"MO {mo.order_number} is ready for completion",
            ))

        return alerts

    def _bottlenecks_for(self, inputs: ProgressInputs) -> list[Bottleneck]:
        thresholds = self._alerts
        bottlenecks: list[Bottleneck] = []

        for station, queued in sorted(inputs.station_queues.items()):
            if queued > thresholds.bottleneck_queue:
                name = STATION_NAMES[station]
                bottlenecks.append(Bottleneck(
                    station_id=station,
                    station_name=name,
                    type="queue",
                    value=Decimal(queued),
                    threshold=Decimal(thresholds.bottleneck_queue),
                    message=f"Bottleneck detected at {name}: {queued} panels queued",
                ))

        for station, minutes in sorted(inputs.station_average_minutes.items()):
            if minutes is None:
                continue
            average = Decimal(str(minutes)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            if Decimal(str(minutes)) > thresholds.slow_station_minutes:
                name = STATION_NAMES[station]
                bottlenecks.append(Bottleneck(
                    station_id=station,
                    station_name=name,
                    type="slow_station",
                    value=average,
                    threshold=thresholds.slow_station_minutes,
                    message=f"Slow performance at {name}: {average} minutes per panel",
                ))

        return bottlenecks
