"""
mo_services.notifications -- post-commit outbound events.

Responsibility:
    Carries side effects that must happen only after a transaction
    committed (closure alerts, broadcasts) to a pluggable sink.  Events are
    queued in a PostCommitOutbox during the operation and dispatched after
    ``session.commit()`` returned.

Architecture position:
    Services.  The facade and closure executor own an outbox; the sink is
    injected (logging sink by default, a recording sink in tests, a message
    queue adapter in deployments).

Invariants enforced:
    - Nothing is dispatched for a rolled-back transaction: callers
      ``discard()`` on rollback.
    - A failing sink never propagates: each failure is logged as
      ``post_commit_dispatch_failed`` and the remaining events still go out.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from mo_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

EVENT_MO_COMPLETED = "mo_completed"
EVENT_MO_CLOSURE = "MO_CLOSURE"
EVENT_MO_CLOSURE_ROLLED_BACK = "MO_CLOSURE_ROLLED_BACK"


@dataclass(frozen=True)
class OutboundEvent:
    event_type: str
    mo_id: UUID
    payload: dict[str, Any]
    occurred_at: datetime


class NotificationSink(Protocol):
    """Anything that accepts outbound events."""

    def publish(self, event: OutboundEvent) -> None: ...


class LoggingNotificationSink:
    """Default sink: writes each event to the structured log."""

    def publish(self, event: OutboundEvent) -> None:
        logger.info(
            "outbound_event_published",
            extra={
                "event_type": event.event_type,
                "mo_id": str(event.mo_id),
                "payload": event.payload,
                "occurred_at": event.occurred_at,
            },
        )


@dataclass
class PostCommitOutbox:
    """
    Queue of events to publish once the surrounding transaction commits.

    Contract:
        ``enqueue`` during the unit of work; ``dispatch`` after commit;
        ``discard`` after rollback.
    """

    sink: NotificationSink
    _pending: list[OutboundEvent] = field(default_factory=list)

    @property
    def pending(self) -> tuple[OutboundEvent, ...]:
        return tuple(self._pending)

    def enqueue(self, event: OutboundEvent) -> None:
        self._pending.append(event)

    def discard(self) -> None:
        self._pending.clear()

    def dispatch(self) -> int:
        """Publish every pending event; returns how many were delivered."""
        events, self._pending = self._pending, []
        delivered = 0
        for event in events:
            try:
                self.sink.publish(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "post_commit_dispatch_failed",
                    extra={
                        "event_type": event.event_type,
                        "mo_id": str(event.mo_id),
                    },
                    exc_info=True,
                )
        return delivered
