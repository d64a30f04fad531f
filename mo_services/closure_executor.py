"""
mo_services.closure_executor -- transactional MO closure and rollback.

Responsibility:
    Closes a manufacturing order in one transaction: readiness gate, status
    COMPLETED, pallet finalization, completion report, closure audit
    record.  Reverses a closure (COMPLETED -> ACTIVE) with its own audit
    record.  Hands closure notifications to the post-commit outbox.

Architecture position:
    Services.  Owns the transaction: commits on success, rolls back and
    re-raises on any failure.  Composes OrderService, PalletService,
    ClosureReadinessEngine, ProgressTracker and ProgressSelector.

Invariants enforced:
    - The readiness gate runs before the first write.
    - The order row is locked FOR UPDATE and its status re-checked under
      the lock, so two concurrent closures cannot both succeed.
    - Pallet finalization is tolerant: each pallet closes inside its own
      savepoint and failures become per-item results.
    - Exactly one ClosureAuditRecord per closure and per rollback.
    - Notifications go out only after commit; their failure never fails
      the closure.

Failure modes:
    - MONotFoundError, MOAlreadyCompletedError, ClosureBlockedError,
      MONotCompletedError.
    - DatabaseError wrapping any SQLAlchemyError (original as __cause__).

Audit relevance:
    The closure audit record snapshots the assessment, the final progress
    statistics, pallet finalization results, the completion report and the
    options used, so every closure can be explained after the fact.
"""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mo_kernel.domain.clock import Clock, SystemClock
from mo_kernel.exceptions import (
    ClosureBlockedError,
    DatabaseError,
    ManufacturingError,
    MOAlreadyCompletedError,
    MONotCompletedError,
    MONotFoundError,
)
from mo_kernel.logging_config import LogContext, get_logger
from mo_kernel.models.closure_audit import ClosureAuditRecord, ClosureType
from mo_kernel.models.manufacturing_order import ManufacturingOrder, MOStatus
from mo_kernel.selectors.progress_selector import ProgressSelector
from mo_kernel.services.order_service import OrderService
from mo_kernel.services.pallet_service import PalletService
from mo_services._closure_types import (
    ClosureAssessment,
    ClosureAuditView,
    ClosureOptions,
    ClosureResult,
    CompletionReport,
    PalletFinalizationItem,
    PalletFinalizationResult,
    ProgressSnapshot,
    RollbackResult,
    to_json_safe,
)
from mo_services.closure_readiness import ClosureReadinessEngine
from mo_services.notifications import (
    EVENT_MO_CLOSURE,
    EVENT_MO_CLOSURE_ROLLED_BACK,
    EVENT_MO_COMPLETED,
    LoggingNotificationSink,
    OutboundEvent,
    PostCommitOutbox,
)
from mo_services.progress_tracker import ProgressTracker

logger = get_logger("services.closure_executor")


class ClosureExecutor:
    """
    Executes and reverses manufacturing order closure.

    Contract:
        Receives every collaborator via constructor injection.  Each public
        method is one unit of work on the injected session.

    Guarantees:
        - On any raised error the session has been rolled back and nothing
          was published.
        - ``execute_closure`` never re-runs closure side effects on an
          order that is already COMPLETED.

    Non-goals:
        - Rollback does not reopen pallets or touch counters.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        readiness: ClosureReadinessEngine | None = None,
        tracker: ProgressTracker | None = None,
        order_service: OrderService | None = None,
        pallet_service: PalletService | None = None,
        selector: ProgressSelector | None = None,
        outbox: PostCommitOutbox | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._selector = selector or ProgressSelector(session)
        self._tracker = tracker or ProgressTracker(session, self._clock, selector=self._selector)
        self._readiness = readiness or ClosureReadinessEngine(
            session, self._clock, tracker=self._tracker, selector=self._selector,
        )
        self._orders = order_service or OrderService(session, self._clock)
        self._pallets = pallet_service or PalletService(
            session, self._clock, order_service=self._orders,
        )
        self._outbox = outbox or PostCommitOutbox(LoggingNotificationSink())

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    def execute_closure(
        self,
        mo_id: UUID,
        closed_by: UUID,
        options: ClosureOptions | None = None,
    ) -> ClosureResult:
        """
        Close ``mo_id``.

        Raises:
            MONotFoundError: unknown order.
            MOAlreadyCompletedError: order already COMPLETED.
            ClosureBlockedError: not ready and not forced.
            DatabaseError: persistence failure.
        """
        options = options or ClosureOptions()

        with LogContext.bind(mo_id=mo_id, actor_id=closed_by, operation="execute_closure"):
            try:
                result = self._close(mo_id, closed_by, options)
                self._session.commit()
            except SQLAlchemyError as exc:
                self._abort()
                raise DatabaseError("execute_closure", str(exc)) from exc
            except Exception:
                self._abort()
                raise

            self._tracker.invalidate(mo_id)

            logger.info(
                "mo_closed",
                extra={
                    "mo_id": str(mo_id),
                    "order_number": result.order_number,
                    "closed_by": str(closed_by),
                    "forced": options.force,
                    "pallets_finalized": (
                        result.pallet_finalization.finalized_count
                        if result.pallet_finalization else 0
                    ),
                },
            )

            self._queue_closure_events(result)
            self._outbox.dispatch()
            return result

    def _abort(self) -> None:
        self._session.rollback()
        self._outbox.discard()

    def _close(self, mo_id: UUID, closed_by: UUID, options: ClosureOptions) -> ClosureResult:
        mo = self._session.get(ManufacturingOrder, mo_id)
        if mo is None:
            raise MONotFoundError(str(mo_id))
        if MOStatus(mo.status) == MOStatus.COMPLETED:
            raise MOAlreadyCompletedError(str(mo_id))

        assessment: ClosureAssessment | None = None
        if not options.skip_validation:
            assessment = self._readiness.assess(mo_id)
            if not assessment.is_ready and not options.force:
                logger.info(
                    "closure_blocked",
                    extra={
                        "mo_id": str(mo_id),
                        "blockers": [b.name for b in assessment.blockers],
                    },
                )
                raise ClosureBlockedError(str(mo_id), assessment.blocker_dicts())

        mo = self._orders.get_order_for_update(mo_id)
        if MOStatus(mo.status) == MOStatus.COMPLETED:
            raise MOAlreadyCompletedError(str(mo_id))

        self._orders.complete(mo, closed_by)
        final_progress = self._tracker.calculate_mo_progress(mo_id, fresh=True)

        pallet_result = None
        if options.finalize_pallets:
            pallet_result = self._finalize_pallets(mo_id, closed_by)

        report = None
        if options.generate_report:
            report = self._completion_report(mo, final_progress)

        final_statistics = to_json_safe(final_progress)
        record = ClosureAuditRecord(
            mo_id=mo.id,
            closed_by=closed_by,
            closure_type=ClosureType.AUTOMATIC,
            assessment_data=to_json_safe(assessment) if assessment else None,
            final_statistics=final_statistics,
            pallet_finalization=to_json_safe(pallet_result) if pallet_result else None,
            completion_report=to_json_safe(report) if report else None,
            closure_options=to_json_safe(options),
            created_at=self._clock.now(),
        )
        self._session.add(record)
        self._session.flush()

        return ClosureResult(
            mo_id=mo.id,
            order_number=mo.order_number,
            closed_by=closed_by,
            closed_at=mo.completed_at,
            final_statistics=final_statistics,
            audit_record_id=record.id,
            assessment=assessment,
            pallet_finalization=pallet_result,
            completion_report=report,
        )

    def _finalize_pallets(self, mo_id: UUID, closed_by: UUID) -> PalletFinalizationResult:
        pallets = [
            (p.id, p.pallet_number, p.current_panel_count)
            for p in self._pallets.list_open_pallets(mo_id)
        ]
        items: list[PalletFinalizationItem] = []

        for pallet_id, pallet_number, panel_count in pallets:
            try:
                with self._session.begin_nested():
                    self._pallets.close_pallet(pallet_id, closed_by)
            except (ManufacturingError, SQLAlchemyError) as exc:
                logger.warning(
                    "pallet_finalization_failed",
                    extra={
                        "mo_id": str(mo_id),
                        "pallet_id": str(pallet_id),
                        "pallet_number": pallet_number,
                        "error": str(exc),
                    },
                )
                items.append(PalletFinalizationItem(
                    pallet_id=pallet_id,
                    pallet_number=pallet_number,
                    panel_count=panel_count,
                    succeeded=False,
                    error=str(exc),
                ))
                continue
            items.append(PalletFinalizationItem(
                pallet_id=pallet_id,
                pallet_number=pallet_number,
                panel_count=panel_count,
                succeeded=True,
            ))

        result = PalletFinalizationResult(
            total_pallets=len(pallets),
            finalized_count=sum(1 for i in items if i.succeeded),
            items=tuple(items),
        )
        logger.info(
            "pallets_finalized",
            extra={
                "mo_id": str(mo_id),
                "total_pallets": result.total_pallets,
                "finalized_count": result.finalized_count,
                "failed_count": result.failed_count,
            },
        )
        return result

    def _completion_report(
        self,
        mo: ManufacturingOrder,
        final_progress: ProgressSnapshot,
    ) -> CompletionReport:
        quality = self._selector.quality_stats(mo.id)
        pallets = self._selector.pallet_summary(mo.id)

        duration_hours = None
        if mo.started_at is not None and mo.completed_at is not None:
            seconds = (mo.completed_at - mo.started_at).total_seconds()
            duration_hours = (Decimal(str(seconds)) / Decimal("3600")).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP,
            )

        return CompletionReport(
            mo_id=mo.id,
            order_number=mo.order_number,
            generated_at=self._clock.now(),
            summary={
                "target_quantity": mo.target_quantity,
                "completed_panels": final_progress.completed_quantity,
                "failed_panels": final_progress.failed_quantity,
                "rework_panels": final_progress.rework_panels,
                "completion_percentage": final_progress.progress_percentage,
                "failure_rate": final_progress.failure_rate,
            },
            quality_metrics={
                "avg_wattage": quality.average_wattage,
                "min_wattage": quality.min_wattage,
                "max_wattage": quality.max_wattage,
                "wattage_stddev": quality.stddev_wattage,
            },
            pallet_summary={
                "total_pallets": pallets.total_pallets,
                "by_status": pallets.by_status,
                "total_panels_in_pallets": pallets.panels_on_pallets,
            },
            performance_metrics=to_json_safe(final_progress.performance_metrics),
            timeline={
                "created_at": mo.created_at,
                "started_at": mo.started_at,
                "completed_at": mo.completed_at,
                "total_duration_hours": duration_hours,
            },
        )

    def _queue_closure_events(self, result: ClosureResult) -> None:
        now = self._clock.now()
        completion = result.final_statistics.get("progress_percentage")
        self._outbox.enqueue(OutboundEvent(
            event_type=EVENT_MO_COMPLETED,
            mo_id=result.mo_id,
            payload={
                "severity": "info",
                "title": f"MO {result.order_number} Completed",
                "message": (
                    f"Manufacturing order {result.order_number} has been automatically "
                    f"completed with {completion}% completion rate"
                ),
                "current_value": completion,
            },
            occurred_at=now,
        ))
        self._outbox.enqueue(OutboundEvent(
            event_type=EVENT_MO_CLOSURE,
            mo_id=result.mo_id,
            payload={
                "order_number": result.order_number,
                "completion_percentage": completion,
                "completed_at": result.closed_at.isoformat() if result.closed_at else None,
                "final_statistics": result.final_statistics,
            },
            occurred_at=now,
        ))

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback_closure(
        self,
        mo_id: UUID,
        rolled_back_by: UUID,
        reason: str,
    ) -> RollbackResult:
        """
        Reopen a COMPLETED order.

        Raises:
            MONotFoundError: unknown order.
            MONotCompletedError: order is not COMPLETED.
        """
        with LogContext.bind(mo_id=mo_id, actor_id=rolled_back_by, operation="rollback_closure"):
            try:
                result = self._rollback(mo_id, rolled_back_by, reason)
                self._session.commit()
            except SQLAlchemyError as exc:
                self._abort()
                raise DatabaseError("rollback_closure", str(exc)) from exc
            except Exception:
                self._abort()
                raise

            self._tracker.invalidate(mo_id)

            logger.info(
                "closure_rolled_back",
                extra={
                    "mo_id": str(mo_id),
                    "order_number": result.order_number,
                    "rolled_back_by": str(rolled_back_by),
                    "reason": reason,
                },
            )

            self._outbox.enqueue(OutboundEvent(
                event_type=EVENT_MO_CLOSURE_ROLLED_BACK,
                mo_id=mo_id,
                payload={"order_number": result.order_number, "reason": reason},
                occurred_at=result.rolled_back_at,
            ))
            self._outbox.dispatch()
            return result

    def _rollback(self, mo_id: UUID, rolled_back_by: UUID, reason: str) -> RollbackResult:
        mo = self._orders.get_order_for_update(mo_id)
        previous = MOStatus(mo.status)
        if previous != MOStatus.COMPLETED:
            raise MONotCompletedError(str(mo_id), previous.value)

        self._orders.reopen(mo, rolled_back_by, reason)
        now = self._clock.now()

        record = ClosureAuditRecord(
            mo_id=mo.id,
            closed_by=rolled_back_by,
            closure_type=ClosureType.ROLLBACK,
            assessment_data={"reason": reason, "rolled_back_at": now.isoformat()},
            created_at=now,
        )
        self._session.add(record)
        self._session.flush()

        return RollbackResult(
            mo_id=mo.id,
            order_number=mo.order_number,
            rolled_back_by=rolled_back_by,
            rolled_back_at=now,
            reason=reason,
            previous_status=previous.value,
            new_status=MOStatus(mo.status).value,
            audit_record_id=record.id,
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_closure_audit_history(self, mo_id: UUID) -> list[ClosureAuditView]:
        """Closure and rollback records of ``mo_id``, newest first."""
        if self._session.get(ManufacturingOrder, mo_id) is None:
            raise MONotFoundError(str(mo_id))
        records = self._session.execute(
            select(ClosureAuditRecord)
            .where(ClosureAuditRecord.mo_id == mo_id)
            .order_by(ClosureAuditRecord.created_at.desc(), ClosureAuditRecord.id.desc())
        ).scalars()
        return [_audit_view(r) for r in records]


def _audit_view(record: ClosureAuditRecord) -> ClosureAuditView:
    return ClosureAuditView(
        id=record.id,
        mo_id=record.mo_id,
        closure_type=ClosureType(record.closure_type).value,
        closed_by=record.closed_by,
        created_at=record.created_at,
        assessment_data=record.assessment_data,
        final_statistics=record.final_statistics,
        pallet_finalization=record.pallet_finalization,
        completion_report=record.completion_report,
        closure_options=record.closure_options,
    )
