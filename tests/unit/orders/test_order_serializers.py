from __future__ import annotations

import pytest
from rest_framework.renderers import JSONRenderer

from modules.orders.serializers import (
    MarkDeliveredSerializer,
    OrderSerializer,
    OutForDeliverySerializer,
    SetOrderStatusSerializer,
)

pytestmark = pytest.mark.unit


def _stored_otp(order) -> str:
    order.refresh_from_db()
    return order.delivery_otp


class TestOrderSerializer:
    def test_nested_parties_and_items(self, dispatched_order, customer, courier):
        data = OrderSerializer(dispatched_order).data

        assert data["customer"]["id"] == str(customer.id)
        assert data["customer"]["name"] == "Asha Verma"
        assert data["delivery_person"]["name"] == "Vikram Singh"
        assert data["delivery_person"]["phone"] == courier.phone
        assert data["items"][0]["product_name"] == "Basmati Rice 5kg"
        assert data["items"][0]["quantity"] == 2
        assert data["is_pickup"] is False

    def test_history_is_included(self, dispatched_order):
        data = OrderSerializer(dispatched_order).data
        fields = {entry["field"] for entry in data["status_history"]}
        assert fields == {"status", "tracking_status"}

    def test_no_otp_before_request(self, dispatched_order):
        data = OrderSerializer(dispatched_order).data
        assert data["has_active_otp"] is False
        assert data["delivery_otp_expires_at"] is None

    def test_code_never_serialized(self, delivery_service, dispatched_order, courier, mailoutbox):
        order = delivery_service.request_delivery_otp(dispatched_order.id, courier)
        code = _stored_otp(order)

        data = OrderSerializer(order).data
        rendered = JSONRenderer().render(data).decode()

        assert "delivery_otp" not in data
        assert data["has_active_otp"] is True
        assert data["delivery_otp_expires_at"] is not None
        assert code not in JSONRenderer().render(data["status_history"]).decode()
        assert f'"{code}"' not in rendered

    def test_pickup_flag(self, pickup_order):
        data = OrderSerializer(pickup_order).data
        assert data["is_pickup"] is True
        assert data["delivery_person"] is None


class TestInputSerializers:
    def test_status_is_required(self):
        serializer = SetOrderStatusSerializer(data={})
        assert not serializer.is_valid()
        assert "status" in serializer.errors

    def test_delivery_person_is_optional(self):
        serializer = OutForDeliverySerializer(data={})
        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data.get("delivery_person_id") is None

    def test_delivery_person_camel_case_key(self, courier):
        serializer = OutForDeliverySerializer(data={"deliveryPersonId": str(courier.id)})
        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["delivery_person_id"] == courier.id

    def test_malformed_delivery_person_rejected(self):
        serializer = OutForDeliverySerializer(data={"deliveryPersonId": "nope"})
        assert not serializer.is_valid()

    def test_otp_is_required(self):
        serializer = MarkDeliveredSerializer(data={})
        assert not serializer.is_valid()
        assert "otp" in serializer.errors
