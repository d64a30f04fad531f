"""
Module: mo_kernel.models.audit_log
Responsibility: Generic append-only audit rows for manufacturing order
    entities (creation, lifecycle transitions, progress counter changes).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (ORM listeners in
      db/immutability.py).
    - Progress rows carry old and new counter values plus the triggering
      change and are flushed with the counter update itself.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mo_kernel.db.base import Base, UUIDString, enum_column


class AuditAction(str, Enum):
    """Kinds of entity changes recorded in the audit log."""

    MO_CREATED = "MO_CREATED"
    MO_STATUS_CHANGED = "MO_STATUS_CHANGED"
    PROGRESS_UPDATED = "PROGRESS_UPDATED"
    BARCODE_ALLOCATED = "BARCODE_ALLOCATED"
    PANEL_STATUS_CHANGED = "PANEL_STATUS_CHANGED"
    PALLET_STATUS_CHANGED = "PALLET_STATUS_CHANGED"


class AuditLogEntry(Base):
    """One audited change to an entity."""

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_log_entity", "entity_type", "entity_id"),
        Index("idx_audit_log_occurred", "occurred_at"),
    )

    # e.g. "ManufacturingOrder", "Panel", "Pallet"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(enum_column(AuditAction, 40), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action} on {self.entity_type}:{self.entity_id}>"
