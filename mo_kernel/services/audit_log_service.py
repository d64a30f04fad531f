"""
AuditLogService -- generic entity audit rows.

Responsibility:
    Writes append-only ``audit_log`` rows for order creation, lifecycle
    transitions, barcode allocation and progress counter changes.

Architecture position:
    Kernel > Services.  Called by OrderService, ProgressAggregator,
    SequenceAllocator, PanelService and PalletService inside their own
    flush, so the audit row commits with the change it describes.

Failure modes:
    - ImmutabilityViolationError if anything later tries to edit a row.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mo_kernel.domain.clock import Clock
from mo_kernel.logging_config import get_logger
from mo_kernel.models.audit_log import AuditAction, AuditLogEntry
from mo_kernel.services.base import BaseService

logger = get_logger("services.audit_log")


class AuditLogService(BaseService):
    """
    Records audit rows in the caller's transaction.

    Guarantees:
        - One row per call, flushed immediately.
        - ``occurred_at`` comes from the injected clock.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            occurred_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "audit_log_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
            },
        )
        return entry

    def entries_for(self, entity_type: str, entity_id: UUID) -> list[AuditLogEntry]:
        """Audit rows for one entity, oldest first."""
        return list(
            self.session.execute(
                select(AuditLogEntry)
                .where(
                    AuditLogEntry.entity_type == entity_type,
                    AuditLogEntry.entity_id == entity_id,
                )
                .order_by(AuditLogEntry.occurred_at, AuditLogEntry.id)
            ).scalars()
        )
