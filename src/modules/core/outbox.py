"""Relay of committed domain events from the outbox to the event bus.

Services schedule ``relay_event`` with ``transaction.on_commit`` for every
outbox row they write.  A relayed row is flipped to ``PUBLISHED``; a bus
that raises leaves it ``FAILED`` with the error, ready for inspection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from modules.core.models import OutboxEvent
    from shared.domain.bus import IEventBus
    from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


def relay_event(bus: IEventBus, event: DomainEvent, outbox_event: OutboxEvent) -> None:
    log = logger.bind(
        outbox_id=str(outbox_event.id),
        event_name=event.event_name,
        aggregate_id=str(event.aggregate_id),
    )
    try:
        bus.publish(event)
    except Exception as exc:
        # The state change already committed; the row keeps the failure.
        log.exception("outbox.relay_failed")
        outbox_event.mark_as_failed(str(exc))
        return
    outbox_event.mark_as_published()
    log.info("outbox.relayed")
