"""
ProgressAggregator -- applies panel status changes to order counters.

Responsibility:
    Single write path for ``completed_quantity``, ``failed_quantity`` and
    ``in_progress_quantity``.  Each change is validated, checked against the
    quantity invariant, applied, and mirrored by a before/after audit row in
    the same flush.

Architecture position:
    Kernel > Services.  Called by the facade (explicit status changes), by
    SequenceAllocator (panel registration) and by PanelService (panel
    transitions).

Invariants enforced:
    - completed + failed + in_progress <= target, checked before mutation.
    - in_progress never goes negative (floored at zero).
    - PANEL_REWORK leaves order counters untouched; rework lives on the panel.
    - The first PANEL_STARTED on a DRAFT order fires OrderService.activate.
    - Counters and their audit row are flushed together.

Failure modes:
    - InvalidStatusChangeError: unknown change type or non-positive count,
      raised before the order row is read.
    - MONotFoundError: unknown order.
    - CounterInvariantViolatedError: the change would overshoot target.

Audit relevance:
    Every counter change has an audit_log row with old/new counters and the
    triggering change, so the counters can be replayed from the log.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from mo_kernel.domain.clock import Clock
from mo_kernel.domain.dtos import ChangeType, ProgressCounters, StatusChange
from mo_kernel.exceptions import (
    CounterInvariantViolatedError,
    InvalidStatusChangeError,
)
from mo_kernel.logging_config import get_logger
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.manufacturing_order import ManufacturingOrder, MOStatus
from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.base import BaseService
from mo_kernel.services.order_service import OrderService

logger = get_logger("services.progress")


def _counter_values(mo: ManufacturingOrder) -> dict[str, int]:
    return {
        "completed_quantity": mo.completed_quantity,
        "failed_quantity": mo.failed_quantity,
        "in_progress_quantity": mo.in_progress_quantity,
    }


def coerce_change_type(value: Any) -> ChangeType:
    """Resolve a ChangeType from an enum member or its string value."""
    if isinstance(value, ChangeType):
        return value
    try:
        return ChangeType(value)
    except ValueError:
        raise InvalidStatusChangeError(value) from None


def next_counters(
    completed: int,
    failed: int,
    in_progress: int,
    change_type: ChangeType,
    count: int,
) -> tuple[int, int, int]:
    """Pure counter transition for one change."""
    if change_type == ChangeType.PANEL_STARTED:
        return completed, failed, in_progress + count
    if change_type == ChangeType.PANEL_COMPLETED:
        return completed + count, failed, max(0, in_progress - count)
    if change_type == ChangeType.PANEL_FAILED:
        return completed, failed + count, max(0, in_progress - count)
    # PANEL_REWORK
    return completed, failed, in_progress


class ProgressAggregator(BaseService):
    """
    Applies status changes to an order's counters.

    Contract:
        The order row is read FOR UPDATE so concurrent changes on the same
        order serialize.  Flush-only.

    Guarantees:
        - On any raised error no counter has been modified.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        order_service: OrderService | None = None,
    ):
        super().__init__(session, clock)
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._orders = order_service or OrderService(
            session, self._clock, audit_log=self._audit_log,
        )

    def apply_status_change(
        self,
        mo_id: UUID,
        change: StatusChange,
        actor_id: UUID,
    ) -> ProgressCounters:
        """Lock the order and apply ``change`` to it."""
        change_type = coerce_change_type(change.type)
        self._check_count(change_type, change.count)
        mo = self._orders.get_order_for_update(mo_id)
        return self.apply_to_order(mo, change, actor_id)

    def apply_to_order(
        self,
        mo: ManufacturingOrder,
        change: StatusChange,
        actor_id: UUID,
    ) -> ProgressCounters:
        """
        Apply ``change`` to an order row the caller has already locked.

        Preconditions:
            - ``mo`` was loaded FOR UPDATE in the current transaction.
        """
        change_type = coerce_change_type(change.type)
        count = self._check_count(change_type, change.count)

        old = _counter_values(mo)
        completed, failed, in_progress = next_counters(
            mo.completed_quantity,
            mo.failed_quantity,
            mo.in_progress_quantity,
            change_type,
            count,
        )

        if completed + failed + in_progress > mo.target_quantity:
            logger.warning(
                "counter_invariant_violation_blocked",
                extra={
                    "mo_id": str(mo.id),
                    "change_type": change_type.value,
                    "count": count,
                    "target_quantity": mo.target_quantity,
                    **old,
                },
            )
            raise CounterInvariantViolatedError(
                str(mo.id), mo.target_quantity, completed, failed, in_progress,
            )

        now = self._clock.now()
        mo.completed_quantity = completed
        mo.failed_quantity = failed
        mo.in_progress_quantity = in_progress
        mo.updated_at = now
        mo.updated_by_id = actor_id

        if change_type == ChangeType.PANEL_STARTED and MOStatus(mo.status) == MOStatus.DRAFT:
            self._orders.activate(mo, actor_id)

        self.session.flush()

        new = _counter_values(mo)
        self._audit_log.record(
            entity_type="ManufacturingOrder",
            entity_id=mo.id,
            action=AuditAction.PROGRESS_UPDATED,
            actor_id=actor_id,
            old_values=old,
            new_values={
                **new,
                "change_type": change_type.value,
                "count": count,
                "panel_id": str(change.panel_id) if change.panel_id else None,
            },
        )

        logger.info(
            "progress_applied",
            extra={
                "mo_id": str(mo.id),
                "change_type": change_type.value,
                "count": count,
                **new,
            },
        )
        return ProgressCounters.from_model(mo, now)

    @staticmethod
    def _check_count(change_type: ChangeType, count: Any) -> int:
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise InvalidStatusChangeError(
                change_type.value, f"count must be a positive integer, got {count!r}",
            )
        return count
