"""
Module: mo_kernel.models.pallet
Responsibility: ORM persistence for pallets grouping finished panels of one
    manufacturing order for shipment.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - pallet_number is unique (uq_pallet_number).
    - current_panel_count <= max_capacity (PalletService).
    - Status moves OPEN -> FULL -> CLOSED -> SHIPPED (OPEN -> CLOSED allowed).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mo_kernel.db.base import TrackedBase, UUIDString, enum_column


class PalletStatus(str, Enum):
    OPEN = "OPEN"
    FULL = "FULL"
    CLOSED = "CLOSED"
    SHIPPED = "SHIPPED"


# Pallets still accepting or awaiting finalization
UNFINALIZED_PALLET_STATUSES: frozenset[PalletStatus] = frozenset({
    PalletStatus.OPEN, PalletStatus.FULL,
})

VALID_PALLET_TRANSITIONS: dict[PalletStatus, frozenset[PalletStatus]] = {
    PalletStatus.OPEN: frozenset({PalletStatus.FULL, PalletStatus.CLOSED}),
    PalletStatus.FULL: frozenset({PalletStatus.CLOSED}),
    PalletStatus.CLOSED: frozenset({PalletStatus.SHIPPED}),
    PalletStatus.SHIPPED: frozenset(),
}


class Pallet(TrackedBase):
    """Pallet of finished panels belonging to one manufacturing order."""

    __tablename__ = "pallets"

    __table_args__ = (
        UniqueConstraint("pallet_number", name="uq_pallet_number"),
        CheckConstraint("max_capacity > 0", name="ck_pallet_capacity_positive"),
        CheckConstraint("current_panel_count >= 0", name="ck_pallet_count_nonneg"),
        Index("idx_pallet_mo_status", "mo_id", "status"),
    )

    pallet_number: Mapped[str] = mapped_column(String(40), nullable=False)

    mo_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("manufacturing_orders.id"),
        nullable=False,
    )

    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    current_panel_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[PalletStatus] = mapped_column(
        enum_column(PalletStatus), nullable=False, default=PalletStatus.OPEN,
    )

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Pallet {self.pallet_number} [{self.status}] {self.current_panel_count}/{self.max_capacity}>"
