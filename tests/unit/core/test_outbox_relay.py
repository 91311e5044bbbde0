"""Unit tests for relaying outbox rows to the event bus after commit."""

from __future__ import annotations

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.outbox import relay_event
from modules.orders.events import OrderCreated, OrderStatusChanged
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.repositories import ProductDjangoRepository
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


def _row(event) -> OutboxEvent:
    return OutboxEvent.objects.create(
        event_type=event.event_name,
        aggregate_id=str(event.aggregate_id),
        payload={"aggregate_id": str(event.aggregate_id)},
        topic="orders",
    )


class TestRelayEvent:
    def test_published_row_after_bus_accepts(self):
        bus = InMemoryEventBus()
        handler = MagicMock()
        bus.subscribe(OrderCreated, handler)
        event = OrderCreated(aggregate_id=uuid4())
        row = _row(event)

        relay_event(bus, event, row)

        handler.handle.assert_called_once_with(event)
        row.refresh_from_db()
        assert row.status == EventStatus.PUBLISHED
        assert row.processed_at is not None

    def test_failing_bus_marks_row_failed(self):
        bus = MagicMock()
        bus.publish.side_effect = ConnectionError("broker down")
        event = OrderCreated(aggregate_id=uuid4())
        row = _row(event)

        relay_event(bus, event, row)

        row.refresh_from_db()
        assert row.status == EventStatus.FAILED
        assert row.error_message == "broker down"
        assert row.retry_count == 1


class TestServiceRelaysOnCommit:
    def test_rows_stay_pending_until_commit(
        self, order, retailer, order_service, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=False):
            order_service.set_order_status(order.id, "delivered", retailer)

        row = OutboxEvent.objects.get(event_type="OrderStatusChanged")
        assert row.status == EventStatus.PENDING

    def test_rows_published_after_commit(
        self, order, retailer, django_capture_on_commit_callbacks
    ):
        bus = InMemoryEventBus()
        handler = MagicMock()
        bus.subscribe(OrderStatusChanged, handler)
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            event_bus=bus,
        )

        with django_capture_on_commit_callbacks(execute=True):
            service.set_order_status(order.id, "delivered", retailer)

        row = OutboxEvent.objects.get(event_type="OrderStatusChanged")
        assert row.status == EventStatus.PUBLISHED
        handler.handle.assert_called_once()
