"""Order domain constants.

An order carries two independent state machines:

- ``status``: the seller-controlled confirmation status.  Sellers may toggle
  ``confirmed`` <-> ``delivered``; ``cancelled`` and ``fulfilled`` are
  terminal.
- ``tracking_status``: physical delivery progress.  It only moves forward,
  ``pending -> out_for_delivery -> delivered``.  Store-pickup orders jump
  straight from ``pending`` to ``delivered`` ("picked up").
"""

from django.db import models


class OrderStatus(models.TextChoices):
    CONFIRMED = "confirmed", "Confirmed"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    FULFILLED = "fulfilled", "Fulfilled"


class TrackingStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"


class DeliveryType(models.TextChoices):
    RETAILER_TO_CONSUMER = "retailer_to_consumer", "Retailer to consumer"
    WHOLESALER_TO_RETAILER = "wholesaler_to_retailer", "Wholesaler to retailer"


class HistoryField(models.TextChoices):
    STATUS = "status", "Status"
    TRACKING_STATUS = "tracking_status", "Tracking status"


STATUS_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.CONFIRMED: {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.FULFILLED,
    },
    OrderStatus.DELIVERED: {OrderStatus.CONFIRMED, OrderStatus.FULFILLED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.FULFILLED: set(),
}

TRACKING_TRANSITIONS: dict[str, set[str]] = {
    TrackingStatus.PENDING: {TrackingStatus.OUT_FOR_DELIVERY, TrackingStatus.DELIVERED},
    TrackingStatus.OUT_FOR_DELIVERY: {TrackingStatus.DELIVERED},
    TrackingStatus.DELIVERED: set(),
}

TERMINAL_STATUSES: set[str] = {OrderStatus.CANCELLED, OrderStatus.FULFILLED}

# Values a seller may set through ``PUT /orders/{id}/status``.
SELLER_SETTABLE_STATUSES: set[str] = {OrderStatus.CONFIRMED, OrderStatus.DELIVERED}

# Tier of the selling products -> delivery type of the order.
DELIVERY_TYPE_BY_SELLER_TIER: dict[str, str] = {
    "retailer": DeliveryType.RETAILER_TO_CONSUMER,
    "wholesaler": DeliveryType.WHOLESALER_TO_RETAILER,
}

# Who buys, and later confirms receipt, for each delivery type.
BUYER_ROLE_BY_DELIVERY_TYPE: dict[str, str] = {
    DeliveryType.RETAILER_TO_CONSUMER: "customer",
    DeliveryType.WHOLESALER_TO_RETAILER: "retailer",
}

ORDER_NUMBER_MAX_RETRIES = 5
