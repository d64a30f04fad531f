"""
mo_services.closure_readiness -- multi-criterion closure readiness.

Responsibility:
    Decides whether a manufacturing order may be closed.  Runs five checks
    in a fixed order (panel completion, failure rate, pallet status,
    quality standards, documentation), scores them, collects blockers and
    derives recommendations.

Architecture position:
    Services.  Read-only: uses ProgressTracker (always fresh) and
    ProgressSelector; never writes, never commits.

Invariants enforced:
    - ``assess`` has no side effects; calling it twice on unchanged data
      yields equal assessments apart from ``assessed_at``.
    - readiness_percentage = sum(weight of passed checks) / number of
      checks * 100.  Weights affect the numerator only, so the value may
      exceed 100.
    - is_ready requires readiness_percentage >= min_readiness_percentage
      AND no failed check.

Failure modes:
    - MONotFoundError for an unknown order.

Audit relevance:
    The assessment is snapshotted into the closure audit record, so the
    exact blockers (or their absence) that allowed a closure are kept.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from mo_config.schema import ClosureRules
from mo_kernel.domain.clock import Clock, SystemClock
from mo_kernel.exceptions import MONotFoundError
from mo_kernel.logging_config import get_logger
from mo_kernel.models.manufacturing_order import ManufacturingOrder, MOStatus
from mo_kernel.selectors.progress_selector import ProgressSelector
from mo_services._closure_types import (
    ClosureAssessment,
    ReadinessCheck,
    ReadinessStatus,
    Recommendation,
    Severity,
)
from mo_services.progress_tracker import ProgressTracker

logger = get_logger("services.closure_readiness")

CHECK_PANEL_COMPLETION = "panel_completion"
CHECK_FAILURE_RATE = "failure_rate"
CHECK_PALLET_STATUS = "pallet_status"
CHECK_QUALITY_STANDARDS = "quality_standards"
CHECK_DOCUMENTATION = "documentation"

READINESS_CHECKS: tuple[str, ...] = (
    CHECK_PANEL_COMPLETION,
    CHECK_FAILURE_RATE,
    CHECK_PALLET_STATUS,
    CHECK_QUALITY_STANDARDS,
    CHECK_DOCUMENTATION,
)

# check name -> (type, priority, message)
_BLOCKER_RECOMMENDATIONS: dict[str, tuple[str, str, str]] = {
    CHECK_PANEL_COMPLETION: (
        "action_required", "high",
        "Complete remaining panels or adjust completion threshold",
    ),
    CHECK_FAILURE_RATE: (
        "quality_review", "high",
        "Review failure causes and quality processes",
    ),
    CHECK_PALLET_STATUS: (
        "action_required", "medium",
        "Finalize all pallets before closure",
    ),
    CHECK_QUALITY_STANDARDS: (
        "data_completion", "high",
        "Complete missing electrical data for panels",
    ),
    CHECK_DOCUMENTATION: (
        "documentation", "low",
        "Complete missing documentation fields",
    ),
}

_DOCUMENTATION_FIELDS = ("customer_name", "customer_po", "notes")


def _passed(name: str, reason: str, weight: int = 1, **details) -> ReadinessCheck:
    return ReadinessCheck(
        name=name, passed=True, reason=reason, severity=None, weight=weight, details=details,
    )


def _failed(name: str, reason: str, severity: Severity, weight: int, **details) -> ReadinessCheck:
    return ReadinessCheck(
        name=name, passed=False, reason=reason, severity=severity, weight=weight, details=details,
    )


class ClosureReadinessEngine:
    """
    Scores a manufacturing order against the closure rules.

    Contract:
        Receives session, clock, closure rules, progress tracker and
        selector via constructor injection.

    Guarantees:
        - Pure with respect to persistent state.
        - Checks appear in READINESS_CHECKS order.

    Non-goals:
        - Does not lock the order; the executor re-reads under lock.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rules: ClosureRules | None = None,
        tracker: ProgressTracker | None = None,
        selector: ProgressSelector | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._rules = rules or ClosureRules()
        self._selector = selector or ProgressSelector(session)
        self._tracker = tracker or ProgressTracker(session, self._clock, selector=self._selector)

    def assess(self, mo_id: UUID) -> ClosureAssessment:
        mo = self._session.get(ManufacturingOrder, mo_id)
        if mo is None:
            raise MONotFoundError(str(mo_id))

        progress = self._tracker.calculate_mo_progress(mo_id, fresh=True)

        checks = (
            self._check_panel_completion(mo),
            self._check_failure_rate(progress.failure_rate, mo),
            self._check_pallet_status(mo_id),
            self._check_quality_standards(mo_id),
            self._check_documentation(mo),
        )

        score = sum(c.weight for c in checks if c.passed)
        readiness_pct = Decimal(score) / Decimal(len(checks)) * Decimal("100")
        blockers = tuple(c for c in checks if not c.passed)
        is_ready = readiness_pct >= self._rules.min_readiness_percentage and not blockers

        assessment = ClosureAssessment(
            mo_id=mo.id,
            order_number=mo.order_number,
            mo_status=MOStatus(mo.status).value,
            status=ReadinessStatus.READY if is_ready else ReadinessStatus.NOT_READY,
            is_ready=is_ready,
            readiness_score=score,
            readiness_percentage=readiness_pct,
            checks=checks,
            blockers=blockers,
            recommendations=tuple(self._recommendations(blockers, is_ready, readiness_pct)),
            assessed_at=self._clock.now(),
        )

        logger.info(
            "closure_assessed",
            extra={
                "mo_id": str(mo.id),
                "is_ready": is_ready,
                "readiness_percentage": readiness_pct,
                "blockers_count": len(blockers),
            },
        )
        return assessment

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_panel_completion(self, mo: ManufacturingOrder) -> ReadinessCheck:
        processed = mo.completed_quantity + mo.failed_quantity
        completion_pct = Decimal(processed) / Decimal(mo.target_quantity) * Decimal("100")
        minimum = self._rules.min_completion_percentage

        if completion_pct < minimum:
            return _failed(
                CHECK_PANEL_COMPLETION,
                f"Completion percentage ({completion_pct:.1f}%) below minimum "
                f"threshold ({minimum}%)",
                Severity.CRITICAL, 2,
                completed_panels=mo.completed_quantity,
                failed_panels=mo.failed_quantity,
                target_quantity=mo.target_quantity,
                completion_percentage=completion_pct,
            )
        if mo.in_progress_quantity > 0:
            return _failed(
                CHECK_PANEL_COMPLETION,
                f"{mo.in_progress_quantity} panels still in progress",
                Severity.CRITICAL, 2,
                in_progress_panels=mo.in_progress_quantity,
            )
        return _passed(
            CHECK_PANEL_COMPLETION,
            "Panel completion requirements met",
            weight=2,
            completion_percentage=completion_pct,
        )

    def _check_failure_rate(self, failure_rate: Decimal, mo: ManufacturingOrder) -> ReadinessCheck:
        maximum = self._rules.max_failure_rate
        if failure_rate > maximum:
            return _failed(
                CHECK_FAILURE_RATE,
                f"Failure rate ({failure_rate}%) exceeds maximum threshold ({maximum}%)",
                Severity.CRITICAL, 2,
                failure_rate=failure_rate,
                completed_panels=mo.completed_quantity,
                failed_panels=mo.failed_quantity,
            )
        return _passed(
            CHECK_FAILURE_RATE,
            "Failure rate within acceptable limits",
            failure_rate=failure_rate,
        )

    def _check_pallet_status(self, mo_id: UUID) -> ReadinessCheck:
        if not self._rules.require_pallet_finalization:
            return _passed(CHECK_PALLET_STATUS, "Pallet finalization not required")

        summary = self._selector.pallet_summary(mo_id)
        if summary.unfinalized_pallets > 0:
            return _failed(
                CHECK_PALLET_STATUS,
                f"{summary.unfinalized_pallets} pallets not finalized",
                Severity.WARNING, 1,
                total_pallets=summary.total_pallets,
                by_status=summary.by_status,
            )
        return _passed(
            CHECK_PALLET_STATUS,
            "All pallets properly finalized",
            total_pallets=summary.total_pallets,
        )

    def _check_quality_standards(self, mo_id: UUID) -> ReadinessCheck:
        stats = self._selector.quality_stats(mo_id)
        details = {
            "total_completed": stats.completed_panels,
            "missing_wattage": stats.missing_wattage,
            "avg_wattage": stats.average_wattage,
            "min_wattage": stats.min_wattage,
            "max_wattage": stats.max_wattage,
        }

        if stats.missing_wattage > 0:
            return _failed(
                CHECK_QUALITY_STANDARDS,
                f"{stats.missing_wattage} completed panels missing electrical data",
                Severity.CRITICAL, 2,
                **details,
            )
        # No measured panels: nothing to range-check
        average = stats.average_wattage
        if average is not None and not (
            self._rules.wattage_min <= average <= self._rules.wattage_max
        ):
            return _failed(
                CHECK_QUALITY_STANDARDS,
                f"Average wattage ({average:.1f}W) outside expected range",
                Severity.WARNING, 1,
                **details,
            )
        return _passed(CHECK_QUALITY_STANDARDS, "Quality standards met", **details)

    def _check_documentation(self, mo: ManufacturingOrder) -> ReadinessCheck:
        missing = [f for f in _DOCUMENTATION_FIELDS if not getattr(mo, f)]
        if missing:
            return _failed(
                CHECK_DOCUMENTATION,
                f"Missing documentation: {', '.join(missing)}",
                Severity.WARNING, 1,
                missing_fields=missing,
            )
        return _passed(CHECK_DOCUMENTATION, "Documentation complete")

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    @staticmethod
    def _recommendations(
        blockers: tuple[ReadinessCheck, ...],
        is_ready: bool,
        readiness_pct: Decimal,
    ) -> list[Recommendation]:
        recommendations = []
        for blocker in blockers:
            rec_type, priority, message = _BLOCKER_RECOMMENDATIONS[blocker.name]
            recommendations.append(Recommendation(
                type=rec_type,
                priority=priority,
                message=message,
                details=blocker.reason,
                check=blocker.name,
            ))

        if is_ready:
            recommendations.append(Recommendation(
                type="ready_for_closure",
                priority="info",
                message="Manufacturing order is ready for automatic closure",
                details=f"Readiness score: {readiness_pct:.1f}%",
            ))
        else:
            recommendations.append(Recommendation(
                type="not_ready",
                priority="info",
                message="Manufacturing order requires additional work before closure",
                details=f"{len(blockers)} blockers must be resolved",
            ))
        return recommendations
