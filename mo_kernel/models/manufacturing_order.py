"""
Module: mo_kernel.models.manufacturing_order
Responsibility: ORM persistence for manufacturing orders -- the production
    work order that owns a sequence counter, progress counters and a lifecycle
    status.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.

Invariants enforced:
    - order_number is unique (uq_mo_order_number).
    - next_sequence_number > 0 and only ever increases (allocator).
    - Counters are non-negative (CHECK constraints); their sum never exceeds
      target_quantity (ProgressAggregator checks before mutation).
    - Status moves follow VALID_MO_TRANSITIONS.

Failure modes:
    - IntegrityError on duplicate order_number or a CHECK violation.

Audit relevance:
    The row is the single point of contention: allocation, progress updates
    and closure all lock it FOR UPDATE.  Every mutation is mirrored by an
    audit_log row, closure and rollback by a mo_closure_audit row.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mo_kernel.db.base import TrackedBase, enum_column
from mo_kernel.domain.order_spec import (
    BacksheetType,
    FrameType,
    OrderPriority,
    PanelType,
    ProductionLine,
)


class MOStatus(str, Enum):
    """Lifecycle status of a manufacturing order.

    Contract: DRAFT -> ACTIVE <-> PAUSED -> COMPLETED, any open state ->
    CANCELLED.  COMPLETED -> ACTIVE only through closure rollback.
    """

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses in which new barcodes may be allocated
ALLOCATABLE_STATUSES: frozenset[MOStatus] = frozenset({
    MOStatus.DRAFT, MOStatus.ACTIVE, MOStatus.PAUSED,
})

VALID_MO_TRANSITIONS: dict[MOStatus, frozenset[MOStatus]] = {
    MOStatus.DRAFT: frozenset({MOStatus.ACTIVE, MOStatus.CANCELLED}),
    MOStatus.ACTIVE: frozenset({
        MOStatus.PAUSED, MOStatus.COMPLETED, MOStatus.CANCELLED,
    }),
    MOStatus.PAUSED: frozenset({
        MOStatus.ACTIVE, MOStatus.COMPLETED, MOStatus.CANCELLED,
    }),
    # Closure rollback is the one way out of COMPLETED
    MOStatus.COMPLETED: frozenset({MOStatus.ACTIVE}),
    MOStatus.CANCELLED: frozenset(),
}


class ManufacturingOrder(TrackedBase):
    """
    Manufacturing order for a batch of identical panels.

    Contract:
        Counters are only modified through ProgressAggregator; the sequence
        counter only through SequenceAllocator; status only through
        OrderService transitions and the closure executor.

    Guarantees:
        - order_number is unique.
        - Quantities are non-negative integers.

    Non-goals:
        - The model does not check transitions itself; services do.
    """

    __tablename__ = "manufacturing_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_mo_order_number"),
        CheckConstraint("target_quantity > 0", name="ck_mo_target_positive"),
        CheckConstraint("next_sequence_number > 0", name="ck_mo_next_sequence_positive"),
        CheckConstraint("completed_quantity >= 0", name="ck_mo_completed_nonneg"),
        CheckConstraint("failed_quantity >= 0", name="ck_mo_failed_nonneg"),
        CheckConstraint("in_progress_quantity >= 0", name="ck_mo_in_progress_nonneg"),
        Index("idx_mo_status", "status"),
        Index("idx_mo_spec", "year_code", "panel_type", "frame_type", "backsheet_type"),
    )

    # Externally visible identifier, MO<YY><seq>
    order_number: Mapped[str] = mapped_column(String(20), nullable=False)

    panel_type: Mapped[PanelType] = mapped_column(enum_column(PanelType), nullable=False)
    frame_type: Mapped[FrameType] = mapped_column(enum_column(FrameType), nullable=False)
    backsheet_type: Mapped[BacksheetType] = mapped_column(enum_column(BacksheetType), nullable=False)
    year_code: Mapped[str] = mapped_column(String(2), nullable=False)
    line_assignment: Mapped[ProductionLine] = mapped_column(enum_column(ProductionLine, 10), nullable=False)

    target_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    in_progress_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Next unused sequence number for this order's barcodes
    next_sequence_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[MOStatus] = mapped_column(
        enum_column(MOStatus), nullable=False, default=MOStatus.DRAFT,
    )
    priority: Mapped[OrderPriority] = mapped_column(
        enum_column(OrderPriority, 10), nullable=False, default=OrderPriority.NORMAL,
    )

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_po: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    estimated_completion_date: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_completion_date: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ManufacturingOrder {self.order_number} [{self.status}]>"

    @property
    def total_produced(self) -> int:
        return self.completed_quantity + self.failed_quantity + self.in_progress_quantity

    @property
    def remaining_capacity(self) -> int:
        """Sequence numbers still allowed: target minus terminal units."""
        return self.target_quantity - self.completed_quantity - self.failed_quantity

    def can_transition_to(self, new_status: MOStatus) -> bool:
        return MOStatus(new_status) in VALID_MO_TRANSITIONS[MOStatus(self.status)]
