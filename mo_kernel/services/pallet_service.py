"""
PalletService -- pallets of finished panels.

Responsibility:
    Creates pallets for an order, assigns completed panels to them, and
    moves pallets OPEN -> FULL -> CLOSED -> SHIPPED.  The closure executor
    uses ``close_pallet`` to finalize every open pallet of an order.

Architecture position:
    Kernel > Services.  Pallet numbers come from SequenceService.

Invariants enforced:
    - A pallet only holds COMPLETED panels of its own order.
    - current_panel_count never exceeds max_capacity; reaching capacity
      moves the pallet to FULL.
    - Status moves follow VALID_PALLET_TRANSITIONS.

Failure modes:
    - PalletNotFoundError, InvalidPalletTransitionError,
      PalletCapacityExceededError, InvalidPalletCapacityError.
    - MONotFoundError / PanelNotFoundError for unknown references.
    - InvalidPanelTransitionError when the panel is not assignable.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mo_kernel.domain.clock import Clock
from mo_kernel.exceptions import (
    InvalidPalletCapacityError,
    InvalidPalletTransitionError,
    InvalidPanelTransitionError,
    PalletCapacityExceededError,
    PalletNotFoundError,
    PanelNotFoundError,
)
from mo_kernel.logging_config import get_logger
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.pallet import (
    UNFINALIZED_PALLET_STATUSES,
    VALID_PALLET_TRANSITIONS,
    Pallet,
    PalletStatus,
)
from mo_kernel.models.panel import Panel, PanelStatus
from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.base import BaseService
from mo_kernel.services.order_service import OrderService
from mo_kernel.services.sequence_service import SequenceService

logger = get_logger("services.pallet")

PALLET_NUMBER_PREFIX = "PLT"
DEFAULT_PALLET_CAPACITY = 25


class PalletService(BaseService):
    """
    Pallet lifecycle and panel assignment.

    Contract:
        Flush-only.  Pallet rows are locked FOR UPDATE before mutation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        order_service: OrderService | None = None,
        sequence_service: SequenceService | None = None,
        default_capacity: int = DEFAULT_PALLET_CAPACITY,
    ):
        super().__init__(session, clock)
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._orders = order_service or OrderService(
            session, self._clock, audit_log=self._audit_log,
        )
        self._sequences = sequence_service or SequenceService(session)
        self._default_capacity = default_capacity

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_pallet(self, pallet_id: UUID) -> Pallet:
        pallet = self.session.get(Pallet, pallet_id)
        if pallet is None:
            raise PalletNotFoundError(str(pallet_id))
        return pallet

    def _get_pallet_for_update(self, pallet_id: UUID) -> Pallet:
        pallet = self.session.execute(
            select(Pallet)
            .where(Pallet.id == pallet_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if pallet is None:
            raise PalletNotFoundError(str(pallet_id))
        return pallet

    def list_open_pallets(self, mo_id: UUID) -> list[Pallet]:
        """Pallets of ``mo_id`` still OPEN or FULL, oldest first."""
        return list(
            self.session.execute(
                select(Pallet)
                .where(
                    Pallet.mo_id == mo_id,
                    Pallet.status.in_(UNFINALIZED_PALLET_STATUSES),
                )
                .order_by(Pallet.created_at, Pallet.pallet_number)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Creation and assignment
    # ------------------------------------------------------------------

    def create_pallet(
        self,
        mo_id: UUID,
        actor_id: UUID,
        max_capacity: int | None = None,
    ) -> Pallet:
        mo = self._orders.get_order(mo_id)
        capacity = max_capacity if max_capacity is not None else self._default_capacity
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
            raise InvalidPalletCapacityError(capacity)

        seq = self._sequences.next_value(
            SequenceService.pallet_number_sequence(mo.order_number),
        )
        now = self._clock.now()
        pallet = Pallet(
            pallet_number=f"{PALLET_NUMBER_PREFIX}{mo.order_number}{seq:03d}",
            mo_id=mo.id,
            max_capacity=capacity,
            current_panel_count=0,
            status=PalletStatus.OPEN,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(pallet)
        self.session.flush()

        logger.info(
            "pallet_created",
            extra={
                "pallet_id": str(pallet.id),
                "pallet_number": pallet.pallet_number,
                "mo_id": str(mo.id),
                "max_capacity": capacity,
            },
        )
        return pallet

    def assign_panel(self, pallet_id: UUID, panel_id: UUID, actor_id: UUID) -> Pallet:
        """
        Put a completed panel on an OPEN pallet of the same order.

        Raises:
            PalletCapacityExceededError: pallet not OPEN or already full.
            InvalidPanelTransitionError: panel not COMPLETED, from another
                order, or already on a pallet.
        """
        pallet = self._get_pallet_for_update(pallet_id)
        panel = self.session.get(Panel, panel_id)
        if panel is None:
            raise PanelNotFoundError(str(panel_id))

        if (
            PalletStatus(pallet.status) != PalletStatus.OPEN
            or pallet.current_panel_count >= pallet.max_capacity
        ):
            raise PalletCapacityExceededError(str(pallet.id), pallet.max_capacity)
        if (
            PanelStatus(panel.status) != PanelStatus.COMPLETED
            or panel.mo_id != pallet.mo_id
            or panel.pallet_id is not None
        ):
            raise InvalidPanelTransitionError(
                str(panel.id), PanelStatus(panel.status).value, f"pallet {pallet.pallet_number}",
            )

        now = self._clock.now()
        panel.pallet_id = pallet.id
        panel.updated_at = now
        pallet.current_panel_count = pallet.current_panel_count + 1
        pallet.updated_at = now
        pallet.updated_by_id = actor_id
        self.session.flush()

        if pallet.current_panel_count >= pallet.max_capacity:
            self._transition(pallet, PalletStatus.FULL, actor_id)
        return pallet

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def _transition(self, pallet: Pallet, new_status: PalletStatus, actor_id: UUID) -> Pallet:
        old_status = PalletStatus(pallet.status)
        if new_status not in VALID_PALLET_TRANSITIONS[old_status]:
            raise InvalidPalletTransitionError(
                str(pallet.id), old_status.value, new_status.value,
            )

        now = self._clock.now()
        pallet.status = new_status
        if new_status == PalletStatus.CLOSED:
            pallet.completed_at = now
            pallet.completed_by_id = actor_id
        elif new_status == PalletStatus.SHIPPED:
            pallet.shipped_at = now
        pallet.updated_at = now
        pallet.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            entity_type="Pallet",
            entity_id=pallet.id,
            action=AuditAction.PALLET_STATUS_CHANGED,
            actor_id=actor_id,
            old_values={"status": old_status.value},
            new_values={
                "status": new_status.value,
                "current_panel_count": pallet.current_panel_count,
            },
        )

        logger.info(
            "pallet_status_changed",
            extra={
                "pallet_id": str(pallet.id),
                "pallet_number": pallet.pallet_number,
                "from_status": old_status.value,
                "to_status": new_status.value,
            },
        )
        return pallet

    def close_pallet(self, pallet_id: UUID, actor_id: UUID) -> Pallet:
        """OPEN/FULL -> CLOSED; stamps completed_at and completed_by_id."""
        pallet = self._get_pallet_for_update(pallet_id)
        return self._transition(pallet, PalletStatus.CLOSED, actor_id)

    def ship_pallet(self, pallet_id: UUID, actor_id: UUID) -> Pallet:
        pallet = self._get_pallet_for_update(pallet_id)
        return self._transition(pallet, PalletStatus.SHIPPED, actor_id)
