"""Order repository interface.

Extends ``IRepository[Order]`` with what the order workflow needs: atomic
creation with items, row locking, history tracking, idempotency-key
look-up and the per-role listings.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.core.models import OutboxEvent
    from modules.orders.models import Order, OrderStatusHistory
    from shared.domain.events import DomainEvent


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``customer_id``, ``delivery_type`` and
        ``items`` (list of dicts with ``product_id``, ``quantity``,
        ``unit_price``).  Optional keys: ``address``,
        ``scheduled_pickup_time``, ``payment_order_id``, ``payment_id``,
        ``notes``, ``idempotency_key``.
        """

    @abstractmethod
    def save_with_outbox(self, entity: Order) -> List[Tuple[DomainEvent, OutboxEvent]]:
        """Save the order and write one outbox row per pending domain event.

        Returns each event paired with its row, in raise order.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        field: str,
        new_value: str,
        old_value: Optional[str] = None,
        user: Any = None,
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a transition in the order's audit trail."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def is_sold_by(self, order_id: UUID, seller_id: UUID) -> bool:
        """``True`` when at least one item of the order belongs to the seller."""

    @abstractmethod
    def for_seller(self, seller_id: UUID) -> QuerySet:
        """Orders containing the seller's products, newest first.

        Each order's ``items`` are narrowed to the seller's own lines and
        ``seller_subtotal`` sums them; ``total_amount`` stays the whole order's.
        """

    @abstractmethod
    def for_customer(self, customer_id: UUID) -> QuerySet:
        """Orders placed by the buyer, newest first."""

    @abstractmethod
    def assigned_to(self, delivery_person_id: UUID) -> QuerySet:
        """Orders carried by the delivery person that left the store."""
