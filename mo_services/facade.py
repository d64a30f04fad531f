"""
mo_services.facade -- public operations of the manufacturing order engine.

Responsibility:
    Creates every kernel and orchestration service exactly once for a
    session and exposes the engine's operations: order creation, barcode
    allocation and validation, progress changes, progress snapshots,
    closure readiness, closure, closure rollback and the closure history,
    plus order, panel and pallet lifecycle operations.

Architecture position:
    Services -- top of the stack.  The only place where services are
    constructed and wired.  Each mutating method is one unit of work: it
    commits on success, rolls back and re-raises on failure.

Invariants enforced:
    - Single-instance lifecycle: one OrderService, ProgressAggregator,
      ProgressTracker etc. per facade, all sharing the session and clock.
    - The progress cache of an order is invalidated after every committed
      counter change.
    - SQLAlchemyError never escapes raw; it is wrapped in DatabaseError
      with the original as ``__cause__``.

Failure modes:
    - Typed ManufacturingError subclasses from the kernel and services.
    - DatabaseError on persistence failure.

Usage:
    with session_scope() as session:
        facade = ManufacturingOrderFacade(session)
        mo, window = facade.create_manufacturing_order(spec, actor_id)
        allocated = facade.generate_next_barcode(mo.id, actor_id)
"""

from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mo_config import get_active_config
from mo_config.schema import ProductionConfig
from mo_kernel.domain.barcode import BarcodeRange
from mo_kernel.domain.clock import Clock, SystemClock
from mo_kernel.domain.dtos import (
    AllocatedBarcode,
    BarcodeValidationResult,
    ProgressCounters,
    StatusChange,
)
from mo_kernel.domain.order_spec import OrderSpec, PanelType, ProductionLine
from mo_kernel.exceptions import DatabaseError
from mo_kernel.logging_config import LogContext, get_logger
from mo_kernel.models.manufacturing_order import ManufacturingOrder
from mo_kernel.models.pallet import Pallet
from mo_kernel.models.panel import Panel, PanelStatus
from mo_kernel.selectors.progress_selector import ProgressSelector
from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.order_service import OrderService
from mo_kernel.services.pallet_service import PalletService
from mo_kernel.services.panel_service import PanelService
from mo_kernel.services.progress_aggregator import ProgressAggregator
from mo_kernel.services.sequence_allocator import SequenceAllocator
from mo_kernel.services.sequence_service import SequenceService
from mo_services._closure_types import (
    ClosureAssessment,
    ClosureAuditView,
    ClosureOptions,
    ClosureResult,
    ProgressSnapshot,
    RollbackResult,
)
from mo_services.closure_executor import ClosureExecutor
from mo_services.closure_readiness import ClosureReadinessEngine
from mo_services.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    PostCommitOutbox,
)
from mo_services.progress_tracker import ProgressTracker

logger = get_logger("services.facade")


def line_assignments_from_config(config: ProductionConfig) -> dict[PanelType, ProductionLine]:
    """Translate the config's string mapping into kernel enums."""
    return {
        PanelType(panel_type): ProductionLine(line)
        for panel_type, line in config.line_assignments.items()
    }


class ManufacturingOrderFacade:
    """Entry point for every manufacturing order operation.

    Contract:
        Receives a Session and optional Clock, ProductionConfig and
        notification sink.  Constructs every service once, in dependency
        order, and exposes them as public attributes.

    Guarantees:
        - All services share the same Session and Clock instances.
        - Mutating operations commit exactly once on success.

    Non-goals:
        - Does NOT own the Session lifecycle (creation and close).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ProductionConfig | None = None,
        sink: NotificationSink | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.config = config or get_active_config()

        # Foundational services
        self.audit_log = AuditLogService(session, self._clock)
        self.sequences = SequenceService(session)
        self.orders = OrderService(
            session,
            self._clock,
            audit_log=self.audit_log,
            sequence_service=self.sequences,
            line_assignments=line_assignments_from_config(self.config) or None,
        )

        # Counter writes (depends on orders for DRAFT activation)
        self.progress = ProgressAggregator(
            session, self._clock, audit_log=self.audit_log, order_service=self.orders,
        )
        self.allocator = SequenceAllocator(
            session, self._clock, audit_log=self.audit_log, progress=self.progress,
        )
        self.panels = PanelService(
            session,
            self._clock,
            audit_log=self.audit_log,
            order_service=self.orders,
            progress=self.progress,
        )
        self.pallets = PalletService(
            session,
            self._clock,
            audit_log=self.audit_log,
            order_service=self.orders,
            sequence_service=self.sequences,
            default_capacity=self.config.pallets.default_capacity,
        )

        # Read side
        self.selector = ProgressSelector(session)
        self.tracker = ProgressTracker(
            session,
            self._clock,
            alerts=self.config.alerts,
            settings=self.config.progress,
            selector=self.selector,
        )
        self.readiness = ClosureReadinessEngine(
            session,
            self._clock,
            rules=self.config.closure,
            tracker=self.tracker,
            selector=self.selector,
        )

        # Closure (owns its own transaction and outbox)
        self.outbox = PostCommitOutbox(sink or LoggingNotificationSink())
        self.closure = ClosureExecutor(
            session,
            self._clock,
            readiness=self.readiness,
            tracker=self.tracker,
            order_service=self.orders,
            pallet_service=self.pallets,
            selector=self.selector,
            outbox=self.outbox,
        )

    @contextmanager
    def _unit_of_work(self, operation: str, mo_id: UUID | None = None) -> Iterator[None]:
        """Commit on success; rollback and re-raise on failure."""
        try:
            yield
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "unit_of_work_failed",
                extra={"operation": operation, "mo_id": str(mo_id) if mo_id else None},
            )
            raise DatabaseError(operation, str(exc)) from exc
        except Exception:
            self._session.rollback()
            raise
        if mo_id is not None:
            self.tracker.invalidate(mo_id)

    @contextmanager
    def _read_only(self, operation: str, mo_id: UUID | None = None) -> Iterator[None]:
        """Wrap persistence failures of a query-only operation; never commits."""
        try:
            yield
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "read_failed",
                extra={"operation": operation, "mo_id": str(mo_id) if mo_id else None},
            )
            raise DatabaseError(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_manufacturing_order(
        self,
        spec: OrderSpec,
        actor_id: UUID,
    ) -> tuple[ManufacturingOrder, BarcodeRange]:
        with LogContext.bind(actor_id=actor_id, operation="create_manufacturing_order"):
            with self._unit_of_work("create_manufacturing_order"):
                mo, window = self.orders.create_order(spec, actor_id)
            return mo, window

    def pause_order(self, mo_id: UUID, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        with LogContext.bind(mo_id=mo_id, actor_id=actor_id, operation="pause_order"):
            with self._unit_of_work("pause_order", mo_id):
                mo = self.orders.pause(mo_id, actor_id, reason)
            return mo

    def resume_order(self, mo_id: UUID, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        with LogContext.bind(mo_id=mo_id, actor_id=actor_id, operation="resume_order"):
            with self._unit_of_work("resume_order", mo_id):
                mo = self.orders.resume(mo_id, actor_id, reason)
            return mo

    def cancel_order(self, mo_id: UUID, actor_id: UUID, reason: str | None = None) -> ManufacturingOrder:
        with LogContext.bind(mo_id=mo_id, actor_id=actor_id, operation="cancel_order"):
            with self._unit_of_work("cancel_order", mo_id):
                mo = self.orders.cancel(mo_id, actor_id, reason)
            return mo

    # ------------------------------------------------------------------
    # Barcodes
    # ------------------------------------------------------------------

    def generate_next_barcode(self, mo_id: UUID, actor_id: UUID) -> AllocatedBarcode:
        with LogContext.bind(mo_id=mo_id, actor_id=actor_id, operation="generate_next_barcode"):
            with self._unit_of_work("generate_next_barcode", mo_id):
                allocated = self.allocator.generate_next_barcode(mo_id, actor_id)
            return allocated

    def validate_barcode_against_mo(
        self,
        barcode: str,
        mo_id: UUID | None = None,
    ) -> BarcodeValidationResult:
        """Read-only; never writes."""
        with self._read_only("validate_barcode_against_mo", mo_id):
            return self.allocator.validate_barcode_against_mo(barcode, mo_id)

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def apply_status_change(
        self,
        mo_id: UUID,
        change: StatusChange,
        actor_id: UUID,
    ) -> ProgressCounters:
        with LogContext.bind(mo_id=mo_id, actor_id=actor_id, operation="apply_status_change"):
            with self._unit_of_work("apply_status_change", mo_id):
                counters = self.progress.apply_status_change(mo_id, change, actor_id)
            return counters

    def calculate_mo_progress(self, mo_id: UUID, fresh: bool = False) -> ProgressSnapshot:
        with self._read_only("calculate_mo_progress", mo_id):
            return self.tracker.calculate_mo_progress(mo_id, fresh=fresh)

    # ------------------------------------------------------------------
    # Panels
    # ------------------------------------------------------------------

    def transition_panel(
        self,
        panel_id: UUID,
        new_status: PanelStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Panel:
        with LogContext.bind(actor_id=actor_id, operation="transition_panel"):
            panel = self.panels.get_panel(panel_id)
            with self._unit_of_work("transition_panel", panel.mo_id):
                panel = self.panels.transition_panel(panel_id, new_status, actor_id, reason)
            return panel

    def record_station_completion(
        self,
        panel_id: UUID,
        station: int,
        actor_id: UUID | None = None,
    ) -> Panel:
        panel = self.panels.get_panel(panel_id)
        with self._unit_of_work("record_station_completion", panel.mo_id):
            panel = self.panels.record_station_completion(panel_id, station, actor_id)
        return panel

    def record_measurements(
        self,
        panel_id: UUID,
        wattage_pmax: Decimal | float | str,
        vmp: Decimal | float | str | None = None,
        imp: Decimal | float | str | None = None,
        actor_id: UUID | None = None,
    ) -> Panel:
        panel = self.panels.get_panel(panel_id)
        with self._unit_of_work("record_measurements", panel.mo_id):
            panel = self.panels.record_measurements(
                panel_id, wattage_pmax, vmp=vmp, imp=imp, actor_id=actor_id,
            )
        return panel

    # ------------------------------------------------------------------
    # Pallets
    # ------------------------------------------------------------------

    def create_pallet(
        self,
        mo_id: UUID,
        actor_id: UUID,
        max_capacity: int | None = None,
    ) -> Pallet:
        with self._unit_of_work("create_pallet", mo_id):
            pallet = self.pallets.create_pallet(mo_id, actor_id, max_capacity)
        return pallet

    def assign_panel_to_pallet(self, pallet_id: UUID, panel_id: UUID, actor_id: UUID) -> Pallet:
        with self._unit_of_work("assign_panel_to_pallet"):
            pallet = self.pallets.assign_panel(pallet_id, panel_id, actor_id)
        return pallet

    def close_pallet(self, pallet_id: UUID, actor_id: UUID) -> Pallet:
        with self._unit_of_work("close_pallet"):
            pallet = self.pallets.close_pallet(pallet_id, actor_id)
        return pallet

    def ship_pallet(self, pallet_id: UUID, actor_id: UUID) -> Pallet:
        with self._unit_of_work("ship_pallet"):
            pallet = self.pallets.ship_pallet(pallet_id, actor_id)
        return pallet

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    def assess_closure_readiness(self, mo_id: UUID) -> ClosureAssessment:
        with self._read_only("assess_closure_readiness", mo_id):
            return self.readiness.assess(mo_id)

    def execute_closure(
        self,
        mo_id: UUID,
        closed_by: UUID,
        options: ClosureOptions | None = None,
    ) -> ClosureResult:
        return self.closure.execute_closure(mo_id, closed_by, options)

    def rollback_closure(self, mo_id: UUID, rolled_back_by: UUID, reason: str) -> RollbackResult:
        return self.closure.rollback_closure(mo_id, rolled_back_by, reason)

    def get_closure_audit_history(self, mo_id: UUID) -> list[ClosureAuditView]:
        with self._read_only("get_closure_audit_history", mo_id):
            return self.closure.get_closure_audit_history(mo_id)
