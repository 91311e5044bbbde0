"""Integration tests for the OrderStatusHistory audit trail.

Both axes are recorded: the seller-controlled ``status`` and the delivery
``tracking_status``, each with the acting user.
"""

from __future__ import annotations

import pytest

from modules.orders.constants import HistoryField, OrderStatus, TrackingStatus
from modules.orders.models import OrderStatusHistory

pytestmark = pytest.mark.integration


def _trail(order) -> list[tuple[str, str | None, str]]:
    return list(
        OrderStatusHistory.objects.filter(order=order)
        .order_by("created_at", "id")
        .values_list("field", "old_value", "new_value")
    )


def test_full_delivery_trail(delivery_service, dispatched_order, courier, customer, mailoutbox):
    order = delivery_service.request_delivery_otp(dispatched_order.id, courier)
    order.refresh_from_db()
    delivery_service.mark_delivered(order.id, courier, order.delivery_otp)
    delivery_service.mark_received(order.id, customer)

    assert _trail(order) == [
        (HistoryField.STATUS, None, OrderStatus.CONFIRMED),
        (HistoryField.TRACKING_STATUS, TrackingStatus.PENDING, TrackingStatus.OUT_FOR_DELIVERY),
        (HistoryField.TRACKING_STATUS, TrackingStatus.OUT_FOR_DELIVERY, TrackingStatus.DELIVERED),
        (HistoryField.STATUS, OrderStatus.CONFIRMED, OrderStatus.FULFILLED),
    ]


def test_actor_recorded(dispatched_order, retailer, courier):
    entry = OrderStatusHistory.objects.get(
        order=dispatched_order, field=HistoryField.TRACKING_STATUS
    )
    assert entry.user_id == retailer.id
    assert entry.notes == f"Assigned to {courier.display_name}"


def test_otp_request_is_not_a_transition(
    delivery_service, dispatched_order, courier, mailoutbox
):
    before = OrderStatusHistory.objects.filter(order=dispatched_order).count()
    delivery_service.request_delivery_otp(dispatched_order.id, courier)
    assert OrderStatusHistory.objects.filter(order=dispatched_order).count() == before


def test_history_exposed_through_api(client_for, dispatched_order, customer):
    response = client_for(customer).get(f"/api/v1/orders/{dispatched_order.id}/")
    history = response.json()["status_history"]
    assert [h["new_value"] for h in history] == [
        TrackingStatus.OUT_FOR_DELIVERY,
        OrderStatus.CONFIRMED,
    ]
