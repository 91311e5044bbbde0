"""Integration tests for OutboxEvent rows written by order transitions."""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.exceptions import OrderAccessDenied

pytestmark = pytest.mark.integration


def _events_for(order) -> list[str]:
    return list(
        OutboxEvent.objects.filter(aggregate_id=str(order.id))
        .order_by("created_at", "id")
        .values_list("event_type", flat=True)
    )


def test_create_order_writes_outbox_event(order):
    event = OutboxEvent.objects.get(event_type="OrderCreated", aggregate_id=str(order.id))
    assert event.topic == "orders"
    assert event.status == EventStatus.PENDING
    assert event.payload["aggregate_id"] == str(order.id)


def test_delivery_lifecycle_writes_one_event_per_transition(
    delivery_service, dispatched_order, courier, customer, mailoutbox
):
    order = delivery_service.request_delivery_otp(dispatched_order.id, courier)
    order.refresh_from_db()
    delivery_service.mark_delivered(order.id, courier, order.delivery_otp)
    delivery_service.mark_received(order.id, customer)

    assert _events_for(order) == [
        "OrderCreated",
        "OrderOutForDelivery",
        "DeliveryOTPIssued",
        "OrderDelivered",
        "OrderReceived",
    ]


def test_out_for_delivery_payload_names_courier(dispatched_order, courier):
    event = OutboxEvent.objects.get(event_type="OrderOutForDelivery")
    assert event.payload["delivery_person_id"] == str(courier.id)


def test_otp_payload_has_expiry_but_no_code(
    delivery_service, dispatched_order, courier, mailoutbox
):
    order = delivery_service.request_delivery_otp(dispatched_order.id, courier)
    order.refresh_from_db()

    event = OutboxEvent.objects.get(event_type="DeliveryOTPIssued")
    assert event.payload["expires_at"] == order.delivery_otp_expires_at.isoformat()
    assert set(event.payload) == {
        "aggregate_id",
        "actor_id",
        "event_id",
        "occurred_on",
        "event_name",
        "expires_at",
    }


def test_failed_transition_writes_nothing(delivery_service, order, customer):
    with pytest.raises(OrderAccessDenied):
        delivery_service.mark_out_for_delivery(order.id, customer)
    assert _events_for(order) == ["OrderCreated"]


def test_pickup_writes_picked_up_event(delivery_service, pickup_order, retailer):
    delivery_service.mark_picked_up(pickup_order.id, retailer)
    assert _events_for(pickup_order)[-1] == "OrderPickedUp"
