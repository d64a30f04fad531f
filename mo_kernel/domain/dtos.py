"""
DTOs -- immutable results handed across the kernel boundary.

Responsibility:
    Frozen dataclasses returned by allocator, aggregator and selectors so
    callers never hold live ORM rows.  Every operation result carries an
    explicit timestamp.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model`` converters are only
    called from the service/selector layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from mo_kernel.models.manufacturing_order import ManufacturingOrder


class ChangeType(str, Enum):
    """Panel events that move manufacturing order counters."""

    PANEL_STARTED = "PANEL_STARTED"
    PANEL_COMPLETED = "PANEL_COMPLETED"
    PANEL_FAILED = "PANEL_FAILED"
    PANEL_REWORK = "PANEL_REWORK"


@dataclass(frozen=True)
class StatusChange:
    """One progress event; ``type`` may be a ChangeType or its string value."""

    type: Any
    count: int = 1
    panel_id: UUID | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ProgressCounters:
    """Counter values of an order after a status change."""

    mo_id: UUID
    status: str
    target_quantity: int
    completed_quantity: int
    failed_quantity: int
    in_progress_quantity: int
    updated_at: datetime

    @property
    def total_produced(self) -> int:
        return self.completed_quantity + self.failed_quantity + self.in_progress_quantity

    @classmethod
    def from_model(cls, mo: "ManufacturingOrder", updated_at: datetime) -> "ProgressCounters":
        return cls(
            mo_id=mo.id,
            status=mo.status.value if hasattr(mo.status, "value") else str(mo.status),
            target_quantity=mo.target_quantity,
            completed_quantity=mo.completed_quantity,
            failed_quantity=mo.failed_quantity,
            in_progress_quantity=mo.in_progress_quantity,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class OrderInfo:
    """Read-only view of a manufacturing order."""

    id: UUID
    order_number: str
    panel_type: str
    frame_type: str
    backsheet_type: str
    year_code: str
    line_assignment: str
    target_quantity: int
    completed_quantity: int
    failed_quantity: int
    in_progress_quantity: int
    next_sequence_number: int
    status: str
    priority: str
    customer_name: str | None
    customer_po: str | None
    notes: str | None
    created_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    estimated_completion_date: datetime | None
    actual_completion_date: datetime | None

    @classmethod
    def from_model(cls, mo: "ManufacturingOrder") -> "OrderInfo":
        return cls(
            id=mo.id,
            order_number=mo.order_number,
            panel_type=mo.panel_type.value,
            frame_type=mo.frame_type.value,
            backsheet_type=mo.backsheet_type.value,
            year_code=mo.year_code,
            line_assignment=mo.line_assignment.value,
            target_quantity=mo.target_quantity,
            completed_quantity=mo.completed_quantity,
            failed_quantity=mo.failed_quantity,
            in_progress_quantity=mo.in_progress_quantity,
            next_sequence_number=mo.next_sequence_number,
            status=mo.status.value,
            priority=mo.priority.value,
            customer_name=mo.customer_name,
            customer_po=mo.customer_po,
            notes=mo.notes,
            created_at=mo.created_at,
            started_at=mo.started_at,
            completed_at=mo.completed_at,
            estimated_completion_date=mo.estimated_completion_date,
            actual_completion_date=mo.actual_completion_date,
        )


@dataclass(frozen=True)
class AllocatedBarcode:
    """Result of a successful sequence allocation."""

    mo_id: UUID
    barcode: str
    sequence_number: int
    panel_id: UUID | None
    allocated_at: datetime


@dataclass(frozen=True)
class RangeValidation:
    """Whether an embedded sequence number lies in the order's live window."""

    is_valid: bool
    error_code: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class UniquenessResult:
    is_unique: bool
    conflicting_panel_id: UUID | None = None


@dataclass(frozen=True)
class BarcodeValidationResult:
    """Outcome of matching an externally presented barcode to an order."""

    barcode: str
    is_valid: bool
    validated_at: datetime
    mo_id: UUID | None = None
    order_number: str | None = None
    errors: tuple[str, ...] = ()
    error_code: str | None = None
