"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Write operations are wrapped in ``transaction.atomic()`` so the Order
aggregate (Order + OrderItems + outbox rows) is persisted atomically.

Concurrency control on transitions uses ``select_for_update()``; the lock
query joins only non-nullable relations so it stays valid on PostgreSQL.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import DecimalField, OuterRef, Prefetch, QuerySet, Subquery, Sum

from modules.core.models import OutboxEvent
from modules.orders.constants import TrackingStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_id=data["customer_id"],
            delivery_type=data["delivery_type"],
            address=data.get("address", ""),
            scheduled_pickup_time=data.get("scheduled_pickup_time"),
            payment_order_id=data.get("payment_order_id", ""),
            payment_id=data.get("payment_id", ""),
            notes=data.get("notes", ""),
            idempotency_key=data.get("idempotency_key"),
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            item = OrderItem(
                order=order,
                product_id=item_data["product_id"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )
            item.save()
            total += item.subtotal

        order.total_amount = total
        order.save(update_fields=["total_amount"])

        logger.info("order.persisted", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent, soft-deleted or malformed IDs.
        """
        try:
            return self._with_relations(Order.objects.alive()).filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Eager-loads items (with product) so the caller can iterate
        over them while the row is locked.
        """
        try:
            return (
                Order.objects.alive()
                .select_for_update()
                .select_related("customer")
                .prefetch_related("items__product")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._with_relations(Order.objects.all()).filter(idempotency_key=key).first()

    def is_sold_by(self, order_id: UUID, seller_id: UUID) -> bool:
        return OrderItem.objects.filter(
            order_id=order_id,
            product__owner_id=seller_id,
        ).exists()

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def for_seller(self, seller_id: UUID) -> QuerySet:
        seller_items = OrderItem.objects.filter(
            product__owner_id=seller_id
        ).select_related("product")
        seller_subtotal = (
            OrderItem.objects.filter(order=OuterRef("pk"), product__owner_id=seller_id)
            .order_by()
            .values("order")
            .annotate(total=Sum("subtotal"))
            .values("total")
        )
        return (
            Order.objects.alive()
            .filter(items__product__owner_id=seller_id)
            .distinct()
            .annotate(
                seller_subtotal=Subquery(
                    seller_subtotal,
                    output_field=DecimalField(max_digits=12, decimal_places=2),
                )
            )
            .select_related("customer", "delivery_person")
            .prefetch_related(Prefetch("items", queryset=seller_items), "status_history")
            .order_by("-created_at")
        )

    def for_customer(self, customer_id: UUID) -> QuerySet:
        return (
            self._with_relations(Order.objects.alive())
            .filter(customer_id=customer_id)
            .order_by("-created_at")
        )

    def assigned_to(self, delivery_person_id: UUID) -> QuerySet:
        return (
            self._with_relations(Order.objects.alive())
            .filter(
                delivery_person_id=delivery_person_id,
                tracking_status__in=[
                    TrackingStatus.OUT_FOR_DELIVERY,
                    TrackingStatus.DELIVERED,
                ],
            )
            .order_by("-created_at")
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        self.save_with_outbox(entity)
        return entity

    @transaction.atomic
    def save_with_outbox(self, entity: Order) -> List[Tuple[DomainEvent, OutboxEvent]]:
        """Persist an order and write its pending domain events to the outbox."""
        entity.save()

        written = []
        for event in entity.domain_events:
            row = OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic="orders",
            )
            written.append((event, row))
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(written))
        return written

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: UUID,
        field: str,
        new_value: str,
        old_value: Optional[str] = None,
        user: Any = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            field=field,
            old_value=old_value,
            new_value=new_value,
            user=user,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            field=field,
            old_value=old_value,
            new_value=new_value,
        )
        return history

    @staticmethod
    def _with_relations(queryset: QuerySet) -> QuerySet:
        return queryset.select_related("customer", "delivery_person").prefetch_related(
            "items__product", "status_history"
        )


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
