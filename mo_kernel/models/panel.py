"""
Module: mo_kernel.models.panel
Responsibility: ORM persistence for individual panels moving through the
    four production stations.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.

Invariants enforced:
    - barcode is globally unique across all orders (uq_panel_barcode).
    - (mo_id, sequence_number) is unique: one panel per consumed sequence.
    - Panels are never deleted; terminal states are COMPLETED and FAILED.

Failure modes:
    - IntegrityError on duplicate barcode or sequence.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mo_kernel.db.base import TrackedBase, UUIDString, enum_column
from mo_kernel.domain.order_spec import (
    BacksheetType,
    FrameType,
    PanelType,
    ProductionLine,
)

STATION_COUNT = 4

STATION_NAMES: dict[int, str] = {
    1: "Assembly & EL",
    2: "Framing",
    3: "Junction Box",
    4: "Performance & Final",
}


class PanelStatus(str, Enum):
    """Production status of a single panel."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REWORK = "REWORK"


class Panel(TrackedBase):
    """
    One physical panel, identified by its barcode.

    Contract:
        Status changes go through PanelService so the owning order's
        counters stay in step with panel reality.
    """

    __tablename__ = "panels"

    __table_args__ = (
        UniqueConstraint("barcode", name="uq_panel_barcode"),
        UniqueConstraint("mo_id", "sequence_number", name="uq_panel_mo_sequence"),
        Index("idx_panel_mo_status", "mo_id", "status"),
        Index("idx_panel_station", "mo_id", "current_station_id"),
    )

    barcode: Mapped[str] = mapped_column(String(20), nullable=False)

    mo_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("manufacturing_orders.id"),
        nullable=False,
    )

    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    panel_type: Mapped[PanelType] = mapped_column(enum_column(PanelType), nullable=False)
    frame_type: Mapped[FrameType] = mapped_column(enum_column(FrameType), nullable=False)
    backsheet_type: Mapped[BacksheetType] = mapped_column(
        enum_column(BacksheetType), nullable=False,
    )
    line_assignment: Mapped[ProductionLine] = mapped_column(
        enum_column(ProductionLine, 10), nullable=False,
    )

    # 1..4 while in production; None once the panel left the line
    current_station_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[PanelStatus] = mapped_column(
        enum_column(PanelStatus), nullable=False, default=PanelStatus.PENDING,
    )

    # Electrical measurements from station 4
    wattage_pmax: Mapped[Decimal | None] = mapped_column(nullable=True)
    vmp: Mapped[Decimal | None] = mapped_column(nullable=True)
    imp: Mapped[Decimal | None] = mapped_column(nullable=True)

    station_1_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    station_2_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    station_3_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    station_4_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rework_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rework_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    pallet_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("pallets.id"),
        nullable=True,
    )

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Panel {self.barcode} [{self.status}]>"

    def station_completed_at(self, station: int) -> datetime | None:
        return getattr(self, f"station_{station}_completed_at")
