"""
SequenceAllocator -- per-order barcode sequence allocation.

Responsibility:
    Issues the next unused sequence number of a manufacturing order, mints
    the barcode for it, and registers the panel that carries it.  Also
    answers the read-side questions about externally presented barcodes:
    does the sequence lie in the order's live window, is the barcode
    already taken, which order does it belong to.

Architecture position:
    Kernel > Services.  Uses the barcode codec (domain), OrderService for
    the locked order row, and ProgressAggregator to count the registered
    panel as started.

Invariants enforced:
    - The order row is locked FOR UPDATE, restricted to DRAFT/ACTIVE/PAUSED.
      "Order exists" and "order is allocatable" are one atomic read.
    - next_sequence_number advances by exactly one per successful
      allocation and only inside the caller's transaction: a rollback
      returns the number, so there is no skip-ahead on error.
    - Target check happens before any mutation.
    - The lock is per order row; allocations for different orders never
      block each other.

Failure modes:
    - MONotFoundError: no allocatable order row.
    - MOTargetReachedError: completed + failed + in_progress >= target.
    - BarcodeDuplicateError: minted barcode already exists on a panel.
    - SequenceOverflowError: sequence no longer fits five digits.

Audit relevance:
    Each allocation writes a BARCODE_ALLOCATED row plus the PROGRESS_UPDATED
    row for the started panel.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mo_kernel.domain.barcode import (
    BarcodeComponents,
    BarcodeSpec,
    construct,
    parse,
    validate_against_spec,
)
from mo_kernel.domain.clock import Clock
from mo_kernel.domain.dtos import (
    AllocatedBarcode,
    BarcodeValidationResult,
    ChangeType,
    RangeValidation,
    StatusChange,
    UniquenessResult,
)
from mo_kernel.exceptions import (
    BarcodeDuplicateError,
    BarcodeMOMismatchError,
    MONotFoundError,
    MOTargetReachedError,
    SequenceAlreadyUsedError,
    SequenceExceedsTargetError,
)
from mo_kernel.logging_config import get_logger
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.manufacturing_order import (
    ALLOCATABLE_STATUSES,
    ManufacturingOrder,
)
from mo_kernel.models.panel import Panel, PanelStatus
from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.base import BaseService
from mo_kernel.services.progress_aggregator import ProgressAggregator

logger = get_logger("services.sequence_allocator")


def validate_sequence_range(
    components: BarcodeComponents,
    mo: ManufacturingOrder,
) -> RangeValidation:
    """
    Check an embedded sequence number against the order's live window.

    With ``c = next_sequence_number`` and
    ``r = target - completed - failed``, valid iff ``c <= s <= c + r``.
    """
    seq = components.sequence_number
    if seq < 1:
        return RangeValidation(
            is_valid=False,
            error_code=SequenceAlreadyUsedError.code,
            error=f"Sequence {seq} is not a valid sequence number",
        )

    current = mo.next_sequence_number
    upper = current + mo.remaining_capacity

    if seq < current:
        err = SequenceAlreadyUsedError(seq, current)
        return RangeValidation(is_valid=False, error_code=err.code, error=str(err))
    if seq > upper:
        err = SequenceExceedsTargetError(seq, upper)
        return RangeValidation(is_valid=False, error_code=err.code, error=str(err))
    return RangeValidation(is_valid=True)


class SequenceAllocator(BaseService):
    """
    Barcode allocation and barcode-to-order matching.

    Contract:
        Flush-only; the caller commits.  ``generate_next_barcode`` must run
        in its own transaction so the row lock is held only briefly.

    Guarantees:
        - N successful allocations on one order yield N consecutive sequence
          numbers, under any interleaving of concurrent callers.
        - A failed allocation leaves the order row exactly as it was.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        progress: ProgressAggregator | None = None,
    ):
        super().__init__(session, clock)
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._progress = progress or ProgressAggregator(
            session, self._clock, audit_log=self._audit_log,
        )

    def _lock_allocatable_order(self, mo_id: UUID) -> ManufacturingOrder:
        mo = self.session.execute(
            select(ManufacturingOrder)
            .where(
                ManufacturingOrder.id == mo_id,
                ManufacturingOrder.status.in_(ALLOCATABLE_STATUSES),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if mo is None:
            raise MONotFoundError(str(mo_id), "not found or not in an allocatable status")
        return mo

    def generate_next_barcode(self, mo_id: UUID, actor_id: UUID) -> AllocatedBarcode:
        """
        Allocate the next sequence number of ``mo_id`` and register its panel.

        Steps (all in the caller's transaction):
            1. lock the allocatable order row;
            2. reject with MO_TARGET_REACHED when capacity is used up;
            3. mint the barcode from next_sequence_number;
            4. reject a barcode that already exists on any panel;
            5. advance next_sequence_number by one;
            6. insert the panel (IN_PROGRESS at station 1) and count it as
               started.
        """
        mo = self._lock_allocatable_order(mo_id)

        total_produced = mo.total_produced
        if total_produced >= mo.target_quantity:
            logger.info(
                "allocation_target_reached",
                extra={
                    "mo_id": str(mo.id),
                    "target_quantity": mo.target_quantity,
                    "total_produced": total_produced,
                },
            )
            raise MOTargetReachedError(str(mo.id), mo.target_quantity, total_produced)

        sequence_number = mo.next_sequence_number
        barcode = construct(BarcodeSpec(
            year_code=mo.year_code,
            frame_type=mo.frame_type,
            backsheet_type=mo.backsheet_type,
            panel_type=mo.panel_type,
            sequence_number=sequence_number,
        ))

        self.require_unique_barcode(barcode)

        now = self._clock.now()
        mo.next_sequence_number = sequence_number + 1
        mo.updated_at = now

        panel = Panel(
            barcode=barcode,
            mo_id=mo.id,
            sequence_number=sequence_number,
            panel_type=mo.panel_type,
            frame_type=mo.frame_type,
            backsheet_type=mo.backsheet_type,
            line_assignment=mo.line_assignment,
            current_station_id=1,
            status=PanelStatus.IN_PROGRESS,
            rework_count=0,
            started_at=now,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(panel)
        self.session.flush()

        self._progress.apply_to_order(
            mo,
            StatusChange(type=ChangeType.PANEL_STARTED, count=1, panel_id=panel.id),
            actor_id,
        )

        self._audit_log.record(
            entity_type="ManufacturingOrder",
            entity_id=mo.id,
            action=AuditAction.BARCODE_ALLOCATED,
            actor_id=actor_id,
            old_values={"next_sequence_number": sequence_number},
            new_values={
                "next_sequence_number": mo.next_sequence_number,
                "barcode": barcode,
                "panel_id": str(panel.id),
            },
        )

        logger.info(
            "barcode_allocated",
            extra={
                "mo_id": str(mo.id),
                "barcode": barcode,
                "sequence_number": sequence_number,
            },
        )
        return AllocatedBarcode(
            mo_id=mo.id,
            barcode=barcode,
            sequence_number=sequence_number,
            panel_id=panel.id,
            allocated_at=now,
        )

    # ------------------------------------------------------------------
    # Uniqueness
    # ------------------------------------------------------------------

    def check_barcode_uniqueness(self, barcode: str) -> UniquenessResult:
        """Global check across all panels regardless of order."""
        conflict = self.session.execute(
            select(Panel.id).where(Panel.barcode == barcode)
        ).scalar_one_or_none()
        if conflict is None:
            return UniquenessResult(is_unique=True)
        return UniquenessResult(is_unique=False, conflicting_panel_id=conflict)

    def require_unique_barcode(self, barcode: str) -> None:
        result = self.check_barcode_uniqueness(barcode)
        if not result.is_unique:
            raise BarcodeDuplicateError(barcode, str(result.conflicting_panel_id))

    # ------------------------------------------------------------------
    # Barcode -> order matching
    # ------------------------------------------------------------------

    def _match(self, components: BarcodeComponents, mo: ManufacturingOrder) -> list[str]:
        errors = list(validate_against_spec(
            components,
            year_code=mo.year_code,
            panel_type=mo.panel_type,
            frame_type=mo.frame_type,
            backsheet_type=mo.backsheet_type,
        ).errors)
        range_check = validate_sequence_range(components, mo)
        if not range_check.is_valid:
            errors.append(range_check.error)
        return errors

    def validate_barcode_against_mo(
        self,
        barcode: str,
        mo_id: UUID | None = None,
    ) -> BarcodeValidationResult:
        """
        Decide whether ``barcode`` belongs to ``mo_id`` (or to any order).

        Raises:
            InvalidBarcodeError: malformed barcode.
            MONotFoundError: ``mo_id`` given but unknown.
        """
        components = parse(barcode)
        now = self._clock.now()

        if mo_id is not None:
            mo = self.session.get(ManufacturingOrder, mo_id)
            if mo is None:
                raise MONotFoundError(str(mo_id))
            errors = self._match(components, mo)
            error_code = None
            if errors:
                range_check = validate_sequence_range(components, mo)
                spec_ok = len(errors) == (0 if range_check.is_valid else 1)
                error_code = (
                    range_check.error_code if spec_ok else BarcodeMOMismatchError.code
                )
            return BarcodeValidationResult(
                barcode=barcode,
                is_valid=not errors,
                validated_at=now,
                mo_id=mo.id,
                order_number=mo.order_number,
                errors=tuple(errors),
                error_code=error_code,
            )

        candidates = self.session.execute(
            select(ManufacturingOrder)
            .where(
                ManufacturingOrder.status.in_(ALLOCATABLE_STATUSES),
                ManufacturingOrder.year_code == components.year_code,
                ManufacturingOrder.panel_type == components.panel_type,
                ManufacturingOrder.frame_type == components.frame_type,
                ManufacturingOrder.backsheet_type == components.backsheet_type,
            )
            .order_by(ManufacturingOrder.created_at, ManufacturingOrder.order_number)
        ).scalars().all()

        rejected: list[str] = []
        for mo in candidates:
            range_check = validate_sequence_range(components, mo)
            if range_check.is_valid:
                return BarcodeValidationResult(
                    barcode=barcode,
                    is_valid=True,
                    validated_at=now,
                    mo_id=mo.id,
                    order_number=mo.order_number,
                )
            rejected.append(f"{mo.order_number}: {range_check.error}")

        mismatch = BarcodeMOMismatchError(barcode, rejected)
        logger.info(
            "barcode_mo_mismatch",
            extra={"barcode": barcode, "candidates": len(candidates)},
        )
        return BarcodeValidationResult(
            barcode=barcode,
            is_valid=False,
            validated_at=now,
            errors=(str(mismatch), *rejected),
            error_code=mismatch.code,
        )
