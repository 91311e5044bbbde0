"""Unit tests for OrderService.

Covers:
- Checkout: stock reservation, price snapshot, delivery type derivation,
  buyer role rules, idempotency.
- Seller status toggle: ownership, allowed values, terminal guard,
  idempotent no-op, independence from tracking.
- Cancellation: stock release and state guards.
- Read side: visibility and the seller listing.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from freezegun import freeze_time

from modules.accounts.models import UserRole
from modules.core.models import OutboxEvent
from modules.orders.constants import DeliveryType, HistoryField, OrderStatus, TrackingStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.exceptions import (
    IdempotencyKeyConflict,
    InactiveProduct,
    InsufficientStock,
    InvalidBuyer,
    InvalidOrderState,
    InvalidStatusValue,
    MixedDeliveryTypes,
    OrderAccessDenied,
    OrderNotFound,
    ProductNotFound,
)
from modules.orders.models import Order, OrderStatusHistory
from modules.products.models import ProductStatus

pytestmark = pytest.mark.unit


# ===========================================================================
# create_order
# ===========================================================================


class TestCreateOrder:
    def test_reserves_stock_and_snapshots_price(self, place_order, customer, retail_product):
        order = place_order(customer, [retail_product], quantity=3)

        retail_product.refresh_from_db()
        assert retail_product.stock_quantity == 47
        assert order.total_amount == Decimal("750.00")
        assert order.items.get().unit_price == Decimal("250.00")

    def test_retail_purchase_is_retailer_to_consumer(self, place_order, customer, retail_product):
        order = place_order(customer, [retail_product])
        assert order.delivery_type == DeliveryType.RETAILER_TO_CONSUMER
        assert order.status == OrderStatus.CONFIRMED
        assert order.tracking_status == TrackingStatus.PENDING

    def test_wholesale_purchase_is_wholesaler_to_retailer(
        self, place_order, retailer, wholesale_product
    ):
        order = place_order(retailer, [wholesale_product])
        assert order.delivery_type == DeliveryType.WHOLESALER_TO_RETAILER

    def test_customer_cannot_buy_wholesale(self, place_order, customer, wholesale_product):
        with pytest.raises(InvalidBuyer):
            place_order(customer, [wholesale_product])
        wholesale_product.refresh_from_db()
        assert wholesale_product.stock_quantity == 50

    def test_delivery_person_cannot_buy(self, place_order, courier, retail_product):
        with pytest.raises(InvalidBuyer):
            place_order(courier, [retail_product])

    def test_seller_cannot_buy_own_product(self, place_order, retailer, make_product):
        own = make_product(retailer)
        with pytest.raises(InvalidBuyer):
            place_order(retailer, [own])

    def test_mixed_tiers_rejected(
        self, place_order, retailer, other_retailer, make_product, wholesale_product
    ):
        other_shop_product = make_product(other_retailer)
        with pytest.raises(MixedDeliveryTypes):
            place_order(retailer, [other_shop_product, wholesale_product])
        wholesale_product.refresh_from_db()
        assert wholesale_product.stock_quantity == 50

    def test_insufficient_stock_rolls_back_everything(
        self, place_order, customer, retail_product, make_product, retailer
    ):
        scarce = make_product(retailer, stock=1)
        with pytest.raises(InsufficientStock):
            place_order(customer, [retail_product, scarce], quantity=2)

        retail_product.refresh_from_db()
        assert retail_product.stock_quantity == 50
        assert not Order.objects.exists()

    def test_inactive_product(self, place_order, customer, make_product, retailer):
        shelved = make_product(retailer, status=ProductStatus.INACTIVE)
        with pytest.raises(InactiveProduct):
            place_order(customer, [shelved])

    def test_unknown_product(self, order_service, customer):
        dto = CreateOrderDTO(
            items=[
                CreateOrderItemDTO(
                    product_id="00000000-0000-7000-8000-000000000000", quantity=1
                )
            ],
            address=customer.address,
        )
        with pytest.raises(ProductNotFound):
            order_service.create_order(dto, customer)

    def test_idempotency_key_replays_order(self, place_order, customer, retail_product):
        first = place_order(customer, [retail_product], idempotency_key="checkout-1")
        second = place_order(customer, [retail_product], idempotency_key="checkout-1")

        assert first.id == second.id
        retail_product.refresh_from_db()
        assert retail_product.stock_quantity == 49

    def test_idempotency_key_of_another_buyer_rejected(
        self, place_order, customer, make_user, retail_product
    ):
        place_order(customer, [retail_product], idempotency_key="checkout-1")

        with pytest.raises(IdempotencyKeyConflict):
            place_order(make_user(), [retail_product], idempotency_key="checkout-1")
        assert Order.objects.count() == 1

    def test_pickup_order_needs_no_address(self, place_order, customer, retail_product):
        order = place_order(
            customer,
            [retail_product],
            address="",
            scheduled_pickup_time=timezone.now() + timedelta(hours=1),
        )
        assert order.is_pickup

    def test_records_history_and_outbox(self, place_order, customer, retail_product):
        order = place_order(customer, [retail_product])
        history = OrderStatusHistory.objects.get(order=order)
        assert history.old_value is None
        assert history.new_value == OrderStatus.CONFIRMED
        assert history.user_id == customer.id
        assert OutboxEvent.objects.filter(
            event_type="OrderCreated", aggregate_id=str(order.id)
        ).exists()


# ===========================================================================
# set_order_status
# ===========================================================================


class TestSetOrderStatus:
    def test_seller_marks_delivered(self, order_service, order, retailer):
        result = order_service.set_order_status(order.id, OrderStatus.DELIVERED, retailer)
        assert result.status == OrderStatus.DELIVERED

    def test_seller_toggles_back_to_confirmed(self, order_service, order, retailer):
        order_service.set_order_status(order.id, OrderStatus.DELIVERED, retailer)
        result = order_service.set_order_status(order.id, OrderStatus.CONFIRMED, retailer)
        assert result.status == OrderStatus.CONFIRMED

    def test_tracking_status_untouched(self, order_service, dispatched_order, retailer):
        result = order_service.set_order_status(
            dispatched_order.id, OrderStatus.DELIVERED, retailer
        )
        assert result.tracking_status == TrackingStatus.OUT_FOR_DELIVERY
        assert result.delivered_at is None

    def test_same_status_is_noop(self, order_service, order, retailer):
        result = order_service.set_order_status(order.id, OrderStatus.CONFIRMED, retailer)
        assert result.status == OrderStatus.CONFIRMED
        assert not OrderStatusHistory.objects.filter(
            order=order, old_value=OrderStatus.CONFIRMED
        ).exists()
        assert not OutboxEvent.objects.filter(event_type="OrderStatusChanged").exists()

    @pytest.mark.parametrize("value", ["shipped", "cancelled", "fulfilled", "", "DELIVERED"])
    def test_unsupported_values_rejected(self, order_service, order, retailer, value):
        with pytest.raises(InvalidStatusValue):
            order_service.set_order_status(order.id, value, retailer)
        assert Order.objects.get(id=order.id).status == OrderStatus.CONFIRMED

    def test_customer_rejected(self, order_service, order, customer):
        with pytest.raises(OrderAccessDenied):
            order_service.set_order_status(order.id, OrderStatus.DELIVERED, customer)

    def test_courier_rejected(self, order_service, order, courier):
        with pytest.raises(OrderAccessDenied):
            order_service.set_order_status(order.id, OrderStatus.DELIVERED, courier)

    def test_other_seller_rejected(self, order_service, order, other_retailer):
        with pytest.raises(OrderAccessDenied):
            order_service.set_order_status(order.id, OrderStatus.DELIVERED, other_retailer)

    def test_unknown_order(self, order_service, retailer):
        with pytest.raises(OrderNotFound):
            order_service.set_order_status(
                "00000000-0000-7000-8000-000000000000", OrderStatus.DELIVERED, retailer
            )

    def test_cancelled_order_is_frozen(self, order_service, order, retailer):
        order_service.cancel_order(order.id, retailer)
        with pytest.raises(InvalidOrderState):
            order_service.set_order_status(order.id, OrderStatus.DELIVERED, retailer)

    def test_records_history_and_event(self, order_service, order, retailer):
        order_service.set_order_status(order.id, OrderStatus.DELIVERED, retailer)

        history = OrderStatusHistory.objects.get(
            order=order, field=HistoryField.STATUS, new_value=OrderStatus.DELIVERED
        )
        assert history.old_value == OrderStatus.CONFIRMED
        assert history.user_id == retailer.id
        event = OutboxEvent.objects.get(event_type="OrderStatusChanged")
        assert event.payload["old_status"] == OrderStatus.CONFIRMED
        assert event.payload["new_status"] == OrderStatus.DELIVERED
        assert event.payload["actor_id"] == str(retailer.id)


# ===========================================================================
# cancel_order
# ===========================================================================


class TestCancelOrder:
    def test_buyer_cancels_and_stock_is_released(
        self, order_service, order, customer, retail_product
    ):
        result = order_service.cancel_order(order.id, customer, notes="Changed my mind")

        assert result.status == OrderStatus.CANCELLED
        retail_product.refresh_from_db()
        assert retail_product.stock_quantity == 50
        history = OrderStatusHistory.objects.get(order=order, new_value=OrderStatus.CANCELLED)
        assert history.notes == "Changed my mind"

    def test_seller_may_cancel(self, order_service, order, retailer):
        assert order_service.cancel_order(order.id, retailer).status == OrderStatus.CANCELLED

    def test_stranger_rejected(self, order_service, order, other_retailer):
        with pytest.raises(OrderAccessDenied):
            order_service.cancel_order(order.id, other_retailer)

    def test_dispatched_order_cannot_be_cancelled(self, order_service, dispatched_order, customer):
        with pytest.raises(InvalidOrderState):
            order_service.cancel_order(dispatched_order.id, customer)

    def test_cannot_cancel_twice(self, order_service, order, customer, retail_product):
        order_service.cancel_order(order.id, customer)
        with pytest.raises(InvalidOrderState):
            order_service.cancel_order(order.id, customer)
        retail_product.refresh_from_db()
        assert retail_product.stock_quantity == 50


# ===========================================================================
# Queries
# ===========================================================================


class TestOrderQueries:
    def test_buyer_seller_and_courier_can_view(
        self, order_service, dispatched_order, customer, retailer, courier
    ):
        for viewer in (customer, retailer, courier):
            found = order_service.get_order(str(dispatched_order.id), viewer)
            assert found.id == dispatched_order.id

    def test_stranger_cannot_view(self, order_service, order, other_retailer):
        with pytest.raises(OrderAccessDenied):
            order_service.get_order(str(order.id), other_retailer)

    def test_malformed_id_is_not_found(self, order_service, customer):
        with pytest.raises(OrderNotFound):
            order_service.get_order("not-a-uuid", customer)

    def test_seller_listing_newest_first(
        self, order_service, place_order, customer, retail_product, retailer
    ):
        with freeze_time("2025-03-01 09:00:00"):
            older = place_order(customer, [retail_product])
        with freeze_time("2025-03-02 09:00:00"):
            newer = place_order(customer, [retail_product])

        ids = [o.id for o in order_service.list_seller_orders(retailer)]
        assert ids == [newer.id, older.id]

    def test_seller_listing_groups_only_own_items(
        self, order_service, place_order, customer, retailer, other_retailer, make_product
    ):
        mine_a = make_product(retailer, name="Rice")
        mine_b = make_product(retailer, name="Dal")
        theirs = make_product(other_retailer)
        order = place_order(customer, [mine_a, mine_b, theirs])

        listed = list(order_service.list_seller_orders(retailer))
        assert [o.id for o in listed] == [order.id]
        assert {item.product_id for item in listed[0].items.all()} == {mine_a.id, mine_b.id}

    def test_seller_listing_denied_to_customers(self, order_service, customer):
        with pytest.raises(OrderAccessDenied):
            order_service.list_seller_orders(customer)

    def test_customer_listing_is_own_orders(
        self, order_service, place_order, customer, make_user, retail_product
    ):
        mine = place_order(customer, [retail_product])
        someone_else = make_user(UserRole.CUSTOMER)
        place_order(someone_else, [retail_product])

        assert [o.id for o in order_service.list_customer_orders(customer)] == [mine.id]
