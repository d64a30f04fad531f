"""
OrderService -- manufacturing order creation and lifecycle transitions.

Responsibility:
    Creates manufacturing orders from a validated spec (line assignment,
    order number, initial barcode window) and moves them between lifecycle
    statuses through named transitions.

Architecture position:
    Kernel > Services.  Used by the facade for create/pause/resume/cancel,
    by ProgressAggregator for the DRAFT -> ACTIVE activation, and by the
    closure executor for COMPLETED and rollback.

Invariants enforced:
    - All spec validation happens before the first write.
    - Order numbers come from a locked SequenceCounter per year code.
    - Status changes follow VALID_MO_TRANSITIONS and each writes an
      audit_log row.
    - The first move to ACTIVE stamps ``started_at``.

Failure modes:
    - InvalidPanelTypeError / InvalidOrderSpecError on bad input.
    - OrderNumberDuplicateError on an explicit, already-used order number.
    - MONotFoundError for an unknown id.
    - InvalidMOTransitionError for a move outside the transition table.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mo_kernel.domain.barcode import BarcodeRange, barcode_range
from mo_kernel.domain.clock import Clock
from mo_kernel.domain.order_spec import (
    OrderSpec,
    PanelType,
    ProductionLine,
    assign_production_line,
    validate_order_spec,
)
from mo_kernel.exceptions import (
    InvalidMOTransitionError,
    MONotFoundError,
    OrderNumberDuplicateError,
)
from mo_kernel.logging_config import get_logger
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.manufacturing_order import ManufacturingOrder, MOStatus
from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.base import BaseService
from mo_kernel.services.sequence_service import SequenceService

logger = get_logger("services.order")

ORDER_NUMBER_PREFIX = "MO"


class OrderService(BaseService):
    """
    Creation and lifecycle of manufacturing orders.

    Contract:
        Flush-only.  Transition methods take the order row the caller already
        loaded (and, where it matters, locked).

    Guarantees:
        - Every created order starts in DRAFT with next_sequence_number = 1
          and all counters at zero.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        sequence_service: SequenceService | None = None,
        line_assignments: dict[PanelType, ProductionLine] | None = None,
    ):
        super().__init__(session, clock)
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._sequences = sequence_service or SequenceService(session)
        self._line_assignments = line_assignments

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_order(self, mo_id: UUID) -> ManufacturingOrder:
        mo = self.session.get(ManufacturingOrder, mo_id)
        if mo is None:
            raise MONotFoundError(str(mo_id))
        return mo

    def get_order_for_update(self, mo_id: UUID) -> ManufacturingOrder:
        """Load and lock the order row (FOR UPDATE) with fresh values."""
        mo = self.session.execute(
            select(ManufacturingOrder)
            .where(ManufacturingOrder.id == mo_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if mo is None:
            raise MONotFoundError(str(mo_id))
        return mo

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _order_number_exists(self, order_number: str) -> bool:
        return self.session.execute(
            select(ManufacturingOrder.id)
            .where(ManufacturingOrder.order_number == order_number)
        ).first() is not None

    def _next_order_number(self, year_code: str) -> str:
        sequence_name = SequenceService.order_number_sequence(year_code)
        while True:
            seq = self._sequences.next_value(sequence_name)
            candidate = f"{ORDER_NUMBER_PREFIX}{year_code}{seq:04d}"
            # Explicitly numbered orders may already hold this value
            if not self._order_number_exists(candidate):
                return candidate

    def create_order(
        self,
        spec: OrderSpec,
        actor_id: UUID,
    ) -> tuple[ManufacturingOrder, BarcodeRange]:
        """
        Validate ``spec`` and persist a new DRAFT order.

        Returns:
            The new order and the barcode window reserved for preview.
        """
        validated = validate_order_spec(spec)

        if validated.order_number is not None:
            if self._order_number_exists(validated.order_number):
                raise OrderNumberDuplicateError(validated.order_number)
            order_number = validated.order_number
        else:
            order_number = self._next_order_number(validated.year_code)

        now = self._clock.now()
        mo = ManufacturingOrder(
            order_number=order_number,
            panel_type=validated.panel_type,
            frame_type=validated.frame_type,
            backsheet_type=validated.backsheet_type,
            year_code=validated.year_code,
            line_assignment=assign_production_line(
                validated.panel_type, self._line_assignments,
            ),
            target_quantity=validated.target_quantity,
            completed_quantity=0,
            failed_quantity=0,
            in_progress_quantity=0,
            next_sequence_number=1,
            status=MOStatus.DRAFT,
            priority=validated.priority,
            customer_name=validated.customer_name,
            customer_po=validated.customer_po,
            notes=validated.notes,
            estimated_completion_date=validated.estimated_completion_date,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(mo)
        self.session.flush()

        window = barcode_range(
            start=mo.next_sequence_number,
            target_quantity=mo.target_quantity,
            year_code=mo.year_code,
            panel_type=mo.panel_type,
            frame_type=mo.frame_type,
            backsheet_type=mo.backsheet_type,
        )

        self._audit_log.record(
            entity_type="ManufacturingOrder",
            entity_id=mo.id,
            action=AuditAction.MO_CREATED,
            actor_id=actor_id,
            new_values={
                "order_number": mo.order_number,
                "panel_type": mo.panel_type.value,
                "target_quantity": mo.target_quantity,
                "year_code": mo.year_code,
                "frame_type": mo.frame_type.value,
                "backsheet_type": mo.backsheet_type.value,
                "line_assignment": mo.line_assignment.value,
                "barcode_range": {"start": window.start, "end": window.end},
            },
        )

        logger.info(
            "mo_created",
            extra={
                "mo_id": str(mo.id),
                "order_number": mo.order_number,
                "panel_type": mo.panel_type.value,
                "target_quantity": mo.target_quantity,
                "line_assignment": mo.line_assignment.value,
            },
        )
        return mo, window

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        mo: ManufacturingOrder,
        new_status: MOStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ManufacturingOrder:
        """
        Move ``mo`` to ``new_status`` if the transition table allows it.

        Raises:
            InvalidMOTransitionError: move not allowed from current status.
        """
        old_status = MOStatus(mo.status)
        if not mo.can_transition_to(new_status):
            raise InvalidMOTransitionError(
                str(mo.id), old_status.value, MOStatus(new_status).value,
            )

        now = self._clock.now()
        mo.status = new_status
        if new_status == MOStatus.ACTIVE and mo.started_at is None:
            mo.started_at = now
        mo.updated_at = now
        mo.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            entity_type="ManufacturingOrder",
            entity_id=mo.id,
            action=AuditAction.MO_STATUS_CHANGED,
            actor_id=actor_id,
            old_values={"status": old_status.value},
            new_values={"status": MOStatus(new_status).value, "reason": reason},
        )

        logger.info(
            "mo_status_changed",
            extra={
                "mo_id": str(mo.id),
                "from_status": old_status.value,
                "to_status": MOStatus(new_status).value,
                "reason": reason,
            },
        )
        return mo

    def activate(self, mo: ManufacturingOrder, actor_id: UUID) -> ManufacturingOrder:
        """DRAFT -> ACTIVE, fired by the order's first started panel."""
        return self.transition(mo, MOStatus.ACTIVE, actor_id, reason="first_panel_started")

    def pause(self, mo_id: UUID, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        mo = self.get_order_for_update(mo_id)
        return self.transition(mo, MOStatus.PAUSED, actor_id, reason)

    def resume(self, mo_id: UUID, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        mo = self.get_order_for_update(mo_id)
        if MOStatus(mo.status) != MOStatus.PAUSED:
            raise InvalidMOTransitionError(
                str(mo.id), MOStatus(mo.status).value, MOStatus.ACTIVE.value,
            )
        return self.transition(mo, MOStatus.ACTIVE, actor_id, reason)

    def cancel(self, mo_id: UUID, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        mo = self.get_order_for_update(mo_id)
        return self.transition(mo, MOStatus.CANCELLED, actor_id, reason)

    def complete(self, mo: ManufacturingOrder, actor_id: UUID) -> ManufacturingOrder:
        """ACTIVE/PAUSED -> COMPLETED; stamps both completion timestamps."""
        self.transition(mo, MOStatus.COMPLETED, actor_id, reason="closure")
        now = self._clock.now()
        mo.completed_at = now
        mo.actual_completion_date = now
        self.session.flush()
        return mo

    def reopen(self, mo: ManufacturingOrder, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        """COMPLETED -> ACTIVE for closure rollback; clears completion timestamps."""
        self.transition(mo, MOStatus.ACTIVE, actor_id, reason)
        mo.completed_at = None
        mo.actual_completion_date = None
        self.session.flush()
        return mo
