"""
ORM-level append-only enforcement for audit tables.

===============================================================================
WHY THIS EXISTS
===============================================================================

The closure audit trail and the generic audit log are the compliance record
of what happened to a manufacturing order.  Corrections are new rows (a
ROLLBACK closure record, a new progress row), never edits.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _reject_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _reject_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable | Why
---------------------|----------------|---------------------------------------
ClosureAuditRecord   | ALWAYS         | Closure/rollback compliance trail
AuditLogEntry        | ALWAYS         | Counter and lifecycle history

Bulk ``update()``/``delete()`` statements bypass mapper events; kernel code
never issues them against these tables.
"""

from sqlalchemy import event

from mo_kernel.exceptions import ImmutabilityViolationError
from mo_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(operation: str, target) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} rows are append-only ({operation} rejected)",
    )


def _reject_update(mapper, connection, target):
    _reject("UPDATE", target)


def _reject_delete(mapper, connection, target):
    _reject("DELETE", target)


def _protected_models():
    from mo_kernel.models.audit_log import AuditLogEntry
    from mo_kernel.models.closure_audit import ClosureAuditRecord

    return (ClosureAuditRecord, AuditLogEntry)


def register_immutability_listeners():
    """
    Register append-only listeners on the audit models.

    Idempotent.  Call during application start, after models are imported.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests.
    """
    for model in _protected_models():
        if event.contains(model, "before_update", _reject_update):
            event.remove(model, "before_update", _reject_update)
        if event.contains(model, "before_delete", _reject_delete):
            event.remove(model, "before_delete", _reject_delete)
