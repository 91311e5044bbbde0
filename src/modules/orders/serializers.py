"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.

Request bodies for the tracking endpoints use the mobile client's
camelCase keys (``deliveryPersonId``).  The delivery OTP is never part
of any output serializer.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.accounts.models import User
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single item in an order creation request."""

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    address = serializers.CharField(required=False, default="", allow_blank=True)
    scheduled_pickup_time = serializers.DateTimeField(required=False, allow_null=True)
    payment_order_id = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )
    payment_id = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class SetOrderStatusSerializer(serializers.Serializer):
    # Free text: unsupported values are rejected by the service with
    # ``invalid_status`` rather than a generic validation error.
    status = serializers.CharField()


class OutForDeliverySerializer(serializers.Serializer):
    deliveryPersonId = serializers.UUIDField(
        required=False, allow_null=True, source="delivery_person_id"
    )


class MarkDeliveredSerializer(serializers.Serializer):
    otp = serializers.CharField(max_length=12)


class CancelOrderSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class UserSummarySerializer(serializers.ModelSerializer):
    """Contact card for the buyer or the delivery person."""

    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "email", "phone", "address"]
        read_only_fields = fields


class DeliveryPersonSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "phone", "email"]
        read_only_fields = fields


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with product snapshot."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "quantity",
            "unit_price",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "field",
            "old_value",
            "new_value",
            "user_id",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items, parties and history."""

    customer = UserSummarySerializer(read_only=True)
    delivery_person = DeliveryPersonSerializer(read_only=True, allow_null=True)
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    is_pickup = serializers.BooleanField(read_only=True)
    has_active_otp = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "tracking_status",
            "delivery_type",
            "customer",
            "delivery_person",
            "total_amount",
            "address",
            "is_pickup",
            "scheduled_pickup_time",
            "out_for_delivery_at",
            "delivered_at",
            "received_at",
            "has_active_otp",
            "delivery_otp_expires_at",
            "payment_order_id",
            "payment_id",
            "notes",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields

    def get_has_active_otp(self, obj: Order) -> bool:
        return obj.has_active_otp()


class SellerOrderSerializer(OrderSerializer):
    """Order as a seller sees it: own lines only, plus their subtotal."""

    seller_subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["seller_subtotal"]
        read_only_fields = fields
