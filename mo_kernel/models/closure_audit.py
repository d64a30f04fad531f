"""
Module: mo_kernel.models.closure_audit
Responsibility: Append-only compliance trail for manufacturing order closure
    and closure rollback.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (ORM listeners in
      db/immutability.py).
    - Exactly one row per closure or rollback, written in the same
      transaction as the status change it records.

Audit relevance:
    Each row snapshots the readiness assessment, final statistics, pallet
    finalization results and completion report as they were at closure,
    so the decision can be reconstructed after later changes to the order.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from mo_kernel.db.base import Base, UUIDString, enum_column


class ClosureType(str, Enum):
    AUTOMATIC = "AUTOMATIC"
    ROLLBACK = "ROLLBACK"


class ClosureAuditRecord(Base):
    """
    Closure audit row.

    Contract:
        Append-only.  ``assessment_data`` holds the readiness assessment for
        AUTOMATIC rows and ``{reason, rolled_back_at}`` for ROLLBACK rows.
    """

    __tablename__ = "mo_closure_audit"

    __table_args__ = (
        Index("idx_closure_audit_mo", "mo_id", "created_at"),
    )

    mo_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("manufacturing_orders.id"),
        nullable=False,
    )

    closed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    closure_type: Mapped[ClosureType] = mapped_column(
        enum_column(ClosureType), nullable=False,
    )

    assessment_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    final_statistics: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    pallet_finalization: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    completion_report: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    closure_options: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ClosureAuditRecord {self.closure_type} mo={self.mo_id}>"
