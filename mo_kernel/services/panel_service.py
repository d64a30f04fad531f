"""
PanelService -- panel status transitions and station data.

Responsibility:
    Moves a panel through its production statuses and turns each move into
    the matching progress change on the owning order, so order counters
    and panel rows never drift apart.  Records station completions and the
    electrical measurements taken at the final station.

Architecture position:
    Kernel > Services.  Delegates counter changes to ProgressAggregator.

Invariants enforced:
    - Only the moves in PANEL_TRANSITIONS are allowed.
    - The owning order row is locked before the panel row, the same lock
      order the allocator uses.
    - Panel status and order counters change in the same flush.

Failure modes:
    - PanelNotFoundError: unknown panel id.
    - InvalidPanelTransitionError: move not in the table, or station out of
      range.
    - CounterInvariantViolatedError: propagated from the aggregator.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mo_kernel.domain.clock import Clock
from mo_kernel.domain.dtos import ChangeType, StatusChange
from mo_kernel.exceptions import InvalidPanelTransitionError, PanelNotFoundError
from mo_kernel.logging_config import get_logger
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.panel import STATION_COUNT, Panel, PanelStatus
from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.base import BaseService
from mo_kernel.services.order_service import OrderService
from mo_kernel.services.progress_aggregator import ProgressAggregator

logger = get_logger("services.panel")

# (from, to) -> progress change applied to the order, None for no counter change
PANEL_TRANSITIONS: dict[tuple[PanelStatus, PanelStatus], ChangeType | None] = {
    (PanelStatus.PENDING, PanelStatus.IN_PROGRESS): ChangeType.PANEL_STARTED,
    (PanelStatus.IN_PROGRESS, PanelStatus.COMPLETED): ChangeType.PANEL_COMPLETED,
    (PanelStatus.REWORK, PanelStatus.COMPLETED): ChangeType.PANEL_COMPLETED,
    (PanelStatus.IN_PROGRESS, PanelStatus.FAILED): ChangeType.PANEL_FAILED,
    (PanelStatus.REWORK, PanelStatus.FAILED): ChangeType.PANEL_FAILED,
    (PanelStatus.IN_PROGRESS, PanelStatus.REWORK): ChangeType.PANEL_REWORK,
    (PanelStatus.REWORK, PanelStatus.IN_PROGRESS): None,
}


class PanelService(BaseService):
    """
    Status changes and station data for individual panels.

    Contract:
        Flush-only.  ``transition_panel`` is the only way kernel code changes
        a panel's status after allocation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        order_service: OrderService | None = None,
        progress: ProgressAggregator | None = None,
    ):
        super().__init__(session, clock)
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._orders = order_service or OrderService(
            session, self._clock, audit_log=self._audit_log,
        )
        self._progress = progress or ProgressAggregator(
            session, self._clock, audit_log=self._audit_log, order_service=self._orders,
        )

    def get_panel(self, panel_id: UUID) -> Panel:
        panel = self.session.get(Panel, panel_id)
        if panel is None:
            raise PanelNotFoundError(str(panel_id))
        return panel

    def get_panel_by_barcode(self, barcode: str) -> Panel:
        panel = self.session.execute(
            select(Panel).where(Panel.barcode == barcode)
        ).scalar_one_or_none()
        if panel is None:
            raise PanelNotFoundError(barcode)
        return panel

    def _get_panel_for_update(self, panel_id: UUID) -> Panel:
        panel = self.session.execute(
            select(Panel)
            .where(Panel.id == panel_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if panel is None:
            raise PanelNotFoundError(str(panel_id))
        return panel

    def transition_panel(
        self,
        panel_id: UUID,
        new_status: PanelStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Panel:
        """
        Move a panel to ``new_status`` and apply the matching order change.

        Raises:
            PanelNotFoundError, InvalidPanelTransitionError,
            CounterInvariantViolatedError.
        """
        panel = self.get_panel(panel_id)
        # Order row first, then panel row
        mo = self._orders.get_order_for_update(panel.mo_id)
        panel = self._get_panel_for_update(panel_id)

        old_status = PanelStatus(panel.status)
        new_status = PanelStatus(new_status)
        key = (old_status, new_status)
        if key not in PANEL_TRANSITIONS:
            raise InvalidPanelTransitionError(
                str(panel.id), old_status.value, new_status.value,
            )
        change_type = PANEL_TRANSITIONS[key]

        if change_type is not None:
            self._progress.apply_to_order(
                mo,
                StatusChange(type=change_type, count=1, panel_id=panel.id, reason=reason),
                actor_id,
            )

        now = self._clock.now()
        panel.status = new_status
        if new_status == PanelStatus.IN_PROGRESS and panel.started_at is None:
            panel.started_at = now
            panel.current_station_id = panel.current_station_id or 1
        elif new_status == PanelStatus.REWORK:
            panel.rework_count = panel.rework_count + 1
            panel.rework_reason = reason
        elif new_status in (PanelStatus.COMPLETED, PanelStatus.FAILED):
            panel.completed_at = now
            panel.current_station_id = None
        panel.updated_at = now
        panel.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            entity_type="Panel",
            entity_id=panel.id,
            action=AuditAction.PANEL_STATUS_CHANGED,
            actor_id=actor_id,
            old_values={"status": old_status.value},
            new_values={
                "status": new_status.value,
                "reason": reason,
                "rework_count": panel.rework_count,
            },
        )

        logger.info(
            "panel_status_changed",
            extra={
                "panel_id": str(panel.id),
                "barcode": panel.barcode,
                "mo_id": str(panel.mo_id),
                "from_status": old_status.value,
                "to_status": new_status.value,
            },
        )
        return panel

    def record_station_completion(
        self,
        panel_id: UUID,
        station: int,
        actor_id: UUID | None = None,
    ) -> Panel:
        """Stamp ``station`` as done and advance the panel to the next one."""
        panel = self._get_panel_for_update(panel_id)
        if station < 1 or station > STATION_COUNT:
            raise InvalidPanelTransitionError(
                str(panel.id), str(panel.current_station_id), f"station {station}",
            )
        if PanelStatus(panel.status) not in (PanelStatus.IN_PROGRESS, PanelStatus.REWORK):
            raise InvalidPanelTransitionError(
                str(panel.id), PanelStatus(panel.status).value, f"station {station}",
            )

        now = self._clock.now()
        setattr(panel, f"station_{station}_completed_at", now)
        if station < STATION_COUNT:
            panel.current_station_id = station + 1
        panel.updated_at = now
        panel.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "station_completed",
            extra={
                "panel_id": str(panel.id),
                "mo_id": str(panel.mo_id),
                "station": station,
            },
        )
        return panel

    def record_measurements(
        self,
        panel_id: UUID,
        wattage_pmax: Decimal | None,
        vmp: Decimal | None = None,
        imp: Decimal | None = None,
        actor_id: UUID | None = None,
    ) -> Panel:
        """Store the final-station electrical readings."""
        panel = self._get_panel_for_update(panel_id)
        now = self._clock.now()
        panel.wattage_pmax = Decimal(str(wattage_pmax)) if wattage_pmax is not None else None
        panel.vmp = Decimal(str(vmp)) if vmp is not None else None
        panel.imp = Decimal(str(imp)) if imp is not None else None
        panel.updated_at = now
        panel.updated_by_id = actor_id
        self.session.flush()

        logger.debug(
            "panel_measurements_recorded",
            extra={"panel_id": str(panel.id), "wattage_pmax": panel.wattage_pmax},
        )
        return panel
