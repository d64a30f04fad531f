"""
Module: mo_kernel.selectors.progress_selector
Responsibility: Read-only aggregation of panel and pallet rows for one
    manufacturing order: status counts, station queues and durations,
    electrical quality statistics, pallet summary.
Architecture position: Kernel > Selectors.  Feeds the progress tracker, the
    closure readiness engine and the completion report in mo_services.

Invariants enforced:
    - Never writes.
    - Station durations are derived from timestamps at query time; nothing
      is stored.
    - Station 1 duration is measured from ``started_at``; station n from
      station n-1's completion.
"""

import statistics
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mo_kernel.models.pallet import UNFINALIZED_PALLET_STATUSES, Pallet, PalletStatus
from mo_kernel.models.panel import STATION_COUNT, Panel, PanelStatus
from mo_kernel.selectors.base import BaseSelector

# Panels occupying a station
_ON_LINE_STATUSES = (PanelStatus.IN_PROGRESS, PanelStatus.REWORK)


@dataclass(frozen=True)
class ProgressInputs:
    """Panel-level facts behind a progress snapshot."""

    mo_id: UUID
    panel_count: int
    status_counts: dict[str, int]
    rework_panels: int
    station_queues: dict[int, int]
    station_average_minutes: dict[int, float | None]

    @property
    def average_station_minutes(self) -> float | None:
        """Mean over stations that have timing data, None if none do."""
        known = [m for m in self.station_average_minutes.values() if m is not None]
        if not known:
            return None
        return sum(known) / len(known)


@dataclass(frozen=True)
class QualityStats:
    """Electrical measurements of an order's completed panels."""

    completed_panels: int
    measured_panels: int
    missing_wattage: int
    average_wattage: Decimal | None = None
    min_wattage: Decimal | None = None
    max_wattage: Decimal | None = None
    stddev_wattage: Decimal | None = None


@dataclass(frozen=True)
class PalletSummary:
    total_pallets: int
    unfinalized_pallets: int
    panels_on_pallets: int
    by_status: dict[str, int] = field(default_factory=dict)


def _minutes_between(start: datetime | None, end: datetime | None) -> float | None:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 60.0


class ProgressSelector(BaseSelector[Panel]):
    """
    Panel and pallet aggregates for a single order.

    Guarantees:
        - Every station 1..STATION_COUNT appears in the queue and duration
          maps, with zero / None when there is no data.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def status_counts(self, mo_id: UUID) -> dict[str, int]:
        rows = self.session.execute(
            select(Panel.status, func.count(Panel.id))
            .where(Panel.mo_id == mo_id)
            .group_by(Panel.status)
        ).all()
        counts = {status.value: 0 for status in PanelStatus}
        for status, count in rows:
            counts[PanelStatus(status).value] = count
        return counts

    def station_queues(self, mo_id: UUID) -> dict[int, int]:
        rows = self.session.execute(
            select(Panel.current_station_id, func.count(Panel.id))
            .where(
                Panel.mo_id == mo_id,
                Panel.status.in_(_ON_LINE_STATUSES),
                Panel.current_station_id.is_not(None),
            )
            .group_by(Panel.current_station_id)
        ).all()
        queues = {station: 0 for station in range(1, STATION_COUNT + 1)}
        for station, count in rows:
            if station in queues:
                queues[station] = count
        return queues

    def station_average_minutes(self, mo_id: UUID) -> dict[int, float | None]:
        panels = self.session.execute(
            select(
                Panel.started_at,
                Panel.station_1_completed_at,
                Panel.station_2_completed_at,
                Panel.station_3_completed_at,
                Panel.station_4_completed_at,
            ).where(Panel.mo_id == mo_id)
        ).all()

        samples: dict[int, list[float]] = {s: [] for s in range(1, STATION_COUNT + 1)}
        for row in panels:
            previous = row[0]
            for station in range(1, STATION_COUNT + 1):
                completed_at = row[station]
                minutes = _minutes_between(previous, completed_at)
                if minutes is not None and minutes >= 0:
                    samples[station].append(minutes)
                previous = completed_at

        return {
            station: (sum(values) / len(values) if values else None)
            for station, values in samples.items()
        }

    def snapshot_inputs(self, mo_id: UUID) -> ProgressInputs:
        counts = self.status_counts(mo_id)
        rework_panels = self.session.execute(
            select(func.count(Panel.id))
            .where(Panel.mo_id == mo_id, Panel.rework_count > 0)
        ).scalar_one()
        return ProgressInputs(
            mo_id=mo_id,
            panel_count=sum(counts.values()),
            status_counts=counts,
            rework_panels=rework_panels,
            station_queues=self.station_queues(mo_id),
            station_average_minutes=self.station_average_minutes(mo_id),
        )

    def quality_stats(self, mo_id: UUID) -> QualityStats:
        wattages = list(
            self.session.execute(
                select(Panel.wattage_pmax)
                .where(Panel.mo_id == mo_id, Panel.status == PanelStatus.COMPLETED)
            ).scalars()
        )
        measured = [Decimal(w) for w in wattages if w is not None]
        completed = len(wattages)
        if not measured:
            return QualityStats(
                completed_panels=completed,
                measured_panels=0,
                missing_wattage=completed,
            )
        return QualityStats(
            completed_panels=completed,
            measured_panels=len(measured),
            missing_wattage=completed - len(measured),
            average_wattage=sum(measured) / len(measured),
            min_wattage=min(measured),
            max_wattage=max(measured),
            stddev_wattage=statistics.pstdev(measured),
        )

    def pallet_summary(self, mo_id: UUID) -> PalletSummary:
        rows = self.session.execute(
            select(
                Pallet.status,
                func.count(Pallet.id),
                func.coalesce(func.sum(Pallet.current_panel_count), 0),
            )
            .where(Pallet.mo_id == mo_id)
            .group_by(Pallet.status)
        ).all()
        by_status: dict[str, int] = {}
        total = unfinalized = panels = 0
        for status, count, panel_count in rows:
            status = PalletStatus(status)
            by_status[status.value] = count
            total += count
            panels += int(panel_count)
            if status in UNFINALIZED_PALLET_STATUSES:
                unfinalized += count
        return PalletSummary(
            total_pallets=total,
            unfinalized_pallets=unfinalized,
            panels_on_pallets=panels,
            by_status=by_status,
        )
