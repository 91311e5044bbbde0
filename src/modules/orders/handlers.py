"""Event handlers for Orders domain events.

Subscribed to the process-wide bus in ``OrdersConfig.ready()``.  They run
after the transition's transaction commits.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    DeliveryOTPIssued,
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderOutForDelivery,
    OrderPickedUp,
    OrderReceived,
    OrderStatusChanged,
)
from modules.orders.tasks import (
    send_delivery_confirmation_email,
    send_out_for_delivery_email,
)
from shared.domain.bus import IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class OrderActivityLogHandler(IEventHandler[DomainEvent]):
    """Writes one structured log line per order event."""

    def handle(self, event: DomainEvent) -> None:
        logger.info(
            "order.activity",
            event_name=event.event_name,
            order_id=str(event.aggregate_id),
            actor_id=str(event.actor_id) if event.actor_id else None,
        )


class OrderOutForDeliveryHandler(IEventHandler[OrderOutForDelivery]):
    def handle(self, event: OrderOutForDelivery) -> None:
        send_out_for_delivery_email.delay(str(event.aggregate_id))


class OrderDeliveredHandler(IEventHandler[OrderDelivered]):
    def handle(self, event: OrderDelivered) -> None:
        send_delivery_confirmation_email.delay(str(event.aggregate_id))


ORDER_EVENTS = (
    OrderCreated,
    OrderCancelled,
    OrderStatusChanged,
    OrderOutForDelivery,
    DeliveryOTPIssued,
    OrderDelivered,
    OrderPickedUp,
    OrderReceived,
)

order_activity_log_handler = OrderActivityLogHandler()
order_out_for_delivery_handler = OrderOutForDeliveryHandler()
order_delivered_handler = OrderDeliveredHandler()
