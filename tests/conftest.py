from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from itertools import count

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from modules.accounts.models import UserRole
from modules.accounts.repositories import UserDjangoRepository
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.notifications import EmailDeliveryNotifier
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import DeliveryService, OrderService
from modules.products.models import Product, ProductStatus
from modules.products.repositories import ProductDjangoRepository

User = get_user_model()

_sequence = count(1)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_user():
    def _make(role: str = UserRole.CUSTOMER, **extra):
        n = next(_sequence)
        username = extra.pop("username", f"{role}{n}")
        defaults = {
            "email": f"{username}@livemart.test",
            "name": f"{role.title()} {n}",
            "phone": f"+91 90000 {n:05d}",
            "address": f"{n} Residency Road, Bengaluru",
        }
        defaults.update(extra)
        return User.objects.create_user(username, password="testpass123", role=role, **defaults)

    return _make


@pytest.fixture()
def customer(make_user):
    return make_user(UserRole.CUSTOMER, name="Asha Verma")


@pytest.fixture()
def retailer(make_user):
    return make_user(UserRole.RETAILER, name="FreshMart")


@pytest.fixture()
def other_retailer(make_user):
    return make_user(UserRole.RETAILER, name="CornerShop")


@pytest.fixture()
def wholesaler(make_user):
    return make_user(UserRole.WHOLESALER, name="AgroBulk")


@pytest.fixture()
def courier(make_user):
    return make_user(UserRole.DELIVERY, name="Vikram Singh", phone="+91 98100 00030")


@pytest.fixture()
def other_courier(make_user):
    return make_user(UserRole.DELIVERY, name="Meena Iyer")


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    def _make(owner, price: str = "100.00", stock: int = 50, **extra):
        n = next(_sequence)
        return Product.objects.create(
            sku=extra.pop("sku", f"SKU-{n}"),
            name=extra.pop("name", f"Product {n}"),
            price=Decimal(price),
            stock_quantity=stock,
            status=extra.pop("status", ProductStatus.ACTIVE),
            owner=owner,
            owner_type=extra.pop("owner_type", owner.role),
            **extra,
        )

    return _make


@pytest.fixture()
def retail_product(make_product, retailer):
    return make_product(retailer, price="250.00", name="Basmati Rice 5kg")


@pytest.fixture()
def wholesale_product(make_product, wholesaler):
    return make_product(wholesaler, price="5400.00", name="Basmati Rice 50kg")


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


@pytest.fixture()
def delivery_service():
    return DeliveryService(
        order_repository=OrderDjangoRepository(),
        user_repository=UserDjangoRepository(),
        notifier=EmailDeliveryNotifier(),
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def place_order(order_service):
    """Place an order through the service, the way checkout does."""

    def _place(buyer, products, quantity: int = 1, **extra):
        dto = CreateOrderDTO(
            items=[
                CreateOrderItemDTO(product_id=product.id, quantity=quantity)
                for product in products
            ],
            address=extra.pop("address", buyer.address),
            **extra,
        )
        return order_service.create_order(dto, buyer)

    return _place


@pytest.fixture()
def order(place_order, customer, retail_product):
    """A confirmed, pending retail order."""
    return place_order(customer, [retail_product], quantity=2)


@pytest.fixture()
def dispatched_order(order, delivery_service, retailer, courier):
    """A retail order out for delivery with an assigned courier."""
    return delivery_service.mark_out_for_delivery(order.id, retailer, courier.id)


@pytest.fixture()
def self_delivered_order(order, delivery_service, retailer):
    """A retail order the seller delivers personally."""
    return delivery_service.mark_out_for_delivery(order.id, retailer)


@pytest.fixture()
def pickup_order(place_order, customer, retail_product):
    return place_order(
        customer,
        [retail_product],
        scheduled_pickup_time=timezone.now() + timedelta(hours=2),
    )


# ---------------------------------------------------------------------------
# API clients
# ---------------------------------------------------------------------------


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def client_for():
    """Build an APIClient force-authenticated as the given user."""

    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid
