"""Order service layer (Use Cases).

Two application services share one unit-of-work pattern: every command is a
``transaction.atomic`` block that re-reads the order with
``SELECT FOR UPDATE`` before validating, so racing actors serialize and the
loser sees the winner's state.

- ``OrderService``: checkout, cancellation, the seller status toggle and
  the read-side listings.
- ``DeliveryService``: dispatch, the OTP handoff, buyer receipt and store
  pickup.

Domain events are written to the outbox inside the transaction and handed
to the in-process bus only once it commits.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, List, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.accounts.models import UserRole
from modules.core.outbox import relay_event
from modules.orders import otp
from modules.orders.constants import (
    BUYER_ROLE_BY_DELIVERY_TYPE,
    DELIVERY_TYPE_BY_SELLER_TIER,
    SELLER_SETTABLE_STATUSES,
    HistoryField,
    OrderStatus,
    TrackingStatus,
)
from modules.orders.events import (
    DeliveryOTPIssued,
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderOutForDelivery,
    OrderPickedUp,
    OrderReceived,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    DeliveryPersonNotFound,
    IdempotencyKeyConflict,
    InactiveProduct,
    InsufficientStock,
    InvalidBuyer,
    InvalidOrderState,
    InvalidOTP,
    InvalidStatusValue,
    MixedDeliveryTypes,
    OrderAccessDenied,
    OrderNotFound,
    OTPExpired,
    ProductNotFound,
)
from shared.infrastructure.bus import event_bus as default_event_bus

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.accounts.models import User
    from modules.accounts.repositories.interfaces import IUserRepository
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.notifications import IDeliveryNotifier
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


class _OrderWorkflow:
    """Locking, authorisation and event plumbing shared by both services."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        self._order_repo = order_repository
        self._event_bus = event_bus or default_event_bus

    def _lock(self, order_id: Any) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _refetch(self, order: Order) -> Order:
        return self._order_repo.get_by_id(str(order.id)) or order

    def _persist(self, order: Order) -> None:
        """Save the order and relay its outbox rows after the transaction commits."""
        for event, outbox_event in self._order_repo.save_with_outbox(order):
            transaction.on_commit(
                partial(relay_event, self._event_bus, event, outbox_event)
            )

    def _is_seller_of(self, order: Order, user: User) -> bool:
        return user.is_seller and self._order_repo.is_sold_by(order.id, user.id)

    def _require_seller_of(self, order: Order, user: User) -> None:
        if not self._is_seller_of(order, user):
            raise OrderAccessDenied("Only the seller of this order can do that.")

    def _require_courier(self, order: Order, user: User) -> None:
        """The assigned delivery person, or the seller when self-delivering."""
        if order.delivery_person_id is not None:
            if order.delivery_person_id != user.id:
                raise OrderAccessDenied(
                    "This order is assigned to another delivery person."
                )
            return
        if not self._is_seller_of(order, user):
            raise OrderAccessDenied(
                "Only the seller or the assigned delivery person can do that."
            )


class OrderService(_OrderWorkflow):
    """Application service for checkout, cancellation and status toggling.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        super().__init__(order_repository, event_bus)
        self._product_repo = product_repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO, buyer: User) -> Order:
        """Place an order with atomic stock reservation.

        Steps:
        1. Replay a previous order with the same idempotency key.
        2. For each item (sorted by product PK to avoid deadlocks):
           lock the product, check it is on sale and in stock, snapshot
           its price and reserve the quantity.
        3. Derive the delivery type from the sellers' tier and check the
           buyer's role may buy on that tier.
        4. Persist order + items, record history, emit ``OrderCreated``.

        Raises:
            ProductNotFound, InactiveProduct, InsufficientStock,
            MixedDeliveryTypes, InvalidBuyer, IdempotencyKeyConflict.
        """
        log = logger.bind(buyer_id=str(buyer.id))
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                if existing.customer_id != buyer.id:
                    log.warning("order.idempotency_conflict")
                    raise IdempotencyKeyConflict(
                        "This idempotency key is already in use."
                    )
                log.info("order.idempotency_hit", order_id=str(existing.id))
                return existing

        if buyer.role not in BUYER_ROLE_BY_DELIVERY_TYPE.values():
            raise InvalidBuyer(f"{buyer.role.title()} accounts cannot place orders.")

        tiers = set()
        repo_items = []
        for item_dto in sorted(dto.items, key=lambda i: str(i.product_id)):
            product = self._product_repo.get_for_update(str(item_dto.product_id))
            if not product:
                raise ProductNotFound(f"Product {item_dto.product_id} not found.")
            if not product.is_active:
                raise InactiveProduct(f"Product {product.sku} is not on sale.")
            if product.owner_id == buyer.id:
                raise InvalidBuyer("You cannot order your own products.")
            if product.stock_quantity < item_dto.quantity:
                raise InsufficientStock(
                    f"Product {product.sku}: requested {item_dto.quantity}, "
                    f"available {product.stock_quantity}."
                )
            self._product_repo.adjust_stock(product, -item_dto.quantity)
            tiers.add(product.owner_type)
            repo_items.append(
                {
                    "product_id": product.id,
                    "quantity": item_dto.quantity,
                    "unit_price": product.price,
                }
            )

        if len(tiers) > 1:
            raise MixedDeliveryTypes(
                "Retail and wholesale products must be ordered separately."
            )
        delivery_type = DELIVERY_TYPE_BY_SELLER_TIER[tiers.pop()]
        if BUYER_ROLE_BY_DELIVERY_TYPE[delivery_type] != buyer.role:
            raise InvalidBuyer(
                f"{buyer.role.title()} accounts cannot buy these products."
            )

        order = self._order_repo.create(
            {
                "customer_id": buyer.id,
                "delivery_type": delivery_type,
                "items": repo_items,
                "address": dto.address or buyer.address,
                "scheduled_pickup_time": dto.scheduled_pickup_time,
                "payment_order_id": dto.payment_order_id,
                "payment_id": dto.payment_id,
                "notes": dto.notes,
                "idempotency_key": dto.idempotency_key,
            }
        )
        order.add_domain_event(OrderCreated(aggregate_id=order.id, actor_id=buyer.id))
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.STATUS,
            new_value=OrderStatus.CONFIRMED,
            user=buyer,
            notes="Order placed",
        )

        log.info("order.created", order_id=str(order.id), delivery_type=delivery_type)
        return self._refetch(order)

    @transaction.atomic
    def set_order_status(self, order_id: UUID, new_status: str, acting_user: User) -> Order:
        """Toggle the seller-controlled status between confirmed and delivered.

        Setting the current value again is a successful no-op.  The
        delivery tracking status is never touched.

        Raises:
            OrderAccessDenied: not a seller, or not this order's seller.
            InvalidStatusValue: ``new_status`` is not confirmed/delivered.
            OrderNotFound: order does not exist.
            InvalidOrderState: the order is cancelled or fulfilled.
        """
        if not acting_user.is_seller:
            raise OrderAccessDenied("Only sellers can update order status.")
        if new_status not in SELLER_SETTABLE_STATUSES:
            raise InvalidStatusValue("Invalid status.")

        order = self._lock(order_id)
        self._require_seller_of(order, acting_user)

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=new_status,
        )
        if order.status == new_status:
            log.info("order.status_unchanged")
            return self._refetch(order)
        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderState(
                f"Cannot change status of a {order.status} order."
            )

        old_status = order.status
        order.status = new_status
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                actor_id=acting_user.id,
                old_status=old_status,
                new_status=new_status,
            )
        )
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.STATUS,
            old_value=old_status,
            new_value=new_status,
            user=acting_user,
        )

        log.info("order.status_updated")
        return self._refetch(order)

    @transaction.atomic
    def cancel_order(self, order_id: UUID, acting_user: User, notes: str = "") -> Order:
        """Cancel an order that has not left the store and release its stock.

        Raises:
            OrderNotFound, OrderAccessDenied, InvalidOrderState.
        """
        order = self._lock(order_id)
        if order.customer_id != acting_user.id and not self._is_seller_of(
            order, acting_user
        ):
            raise OrderAccessDenied("Only the buyer or the seller can cancel this order.")

        log = logger.bind(order_id=str(order.id), current_status=order.status)
        if (
            not order.can_transition_to(OrderStatus.CANCELLED)
            or order.tracking_status != TrackingStatus.PENDING
        ):
            log.warning("order.cancel_not_allowed", tracking_status=order.tracking_status)
            raise InvalidOrderState(
                "Only confirmed orders that have not left the store can be cancelled."
            )

        for item in sorted(order.items.all(), key=lambda i: str(i.product_id)):
            product = self._product_repo.get_for_update(str(item.product_id))
            if product:
                self._product_repo.adjust_stock(product, item.quantity)

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.add_domain_event(
            OrderCancelled(aggregate_id=order.id, actor_id=acting_user.id)
        )
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.STATUS,
            old_value=old_status,
            new_value=OrderStatus.CANCELLED,
            user=acting_user,
            notes=notes or "Order cancelled",
        )

        log.info("order.cancelled")
        return self._refetch(order)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, user: User) -> Order:
        """Return an order visible to the buyer, its sellers, its courier or staff."""
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if (
            order.customer_id == user.id
            or order.delivery_person_id == user.id
            or user.is_staff
            or user.role == UserRole.ADMIN
            or self._is_seller_of(order, user)
        ):
            return order
        raise OrderAccessDenied("You do not have access to this order.")

    def list_seller_orders(self, seller: User) -> QuerySet:
        if not seller.is_seller:
            raise OrderAccessDenied("Only sellers can access this endpoint.")
        return self._order_repo.for_seller(seller.id)

    def list_customer_orders(self, user: User) -> QuerySet:
        return self._order_repo.for_customer(user.id)


class DeliveryService(_OrderWorkflow):
    """Application service for delivery tracking and the OTP handoff."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        user_repository: IUserRepository,
        notifier: IDeliveryNotifier,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        super().__init__(order_repository, event_bus)
        self._user_repo = user_repository
        self._notifier = notifier

    @transaction.atomic
    def mark_out_for_delivery(
        self,
        order_id: UUID,
        acting_user: User,
        delivery_person_id: Optional[UUID] = None,
    ) -> Order:
        """Dispatch a confirmed order, optionally assigning a delivery person.

        Without a delivery person the seller delivers the order personally
        and runs the OTP handoff.

        Raises:
            OrderNotFound, OrderAccessDenied, InvalidOrderState,
            DeliveryPersonNotFound.
        """
        if not acting_user.is_seller:
            raise OrderAccessDenied("Only sellers can dispatch orders.")
        order = self._lock(order_id)
        self._require_seller_of(order, acting_user)

        log = logger.bind(order_id=str(order.id), tracking_status=order.tracking_status)
        if order.is_pickup:
            raise InvalidOrderState(
                "Store pickup orders are not delivered. Mark them picked up instead."
            )
        if order.status != OrderStatus.CONFIRMED:
            raise InvalidOrderState(f"Cannot dispatch a {order.status} order.")
        if not order.can_track_to(TrackingStatus.OUT_FOR_DELIVERY):
            log.warning("delivery.invalid_transition")
            raise InvalidOrderState(f"Order is already {order.tracking_status}.")

        courier = None
        if delivery_person_id:
            courier = self._user_repo.get_delivery_person(str(delivery_person_id))
            if not courier:
                raise DeliveryPersonNotFound(
                    f"Delivery person {delivery_person_id} not found."
                )

        old_tracking = order.tracking_status
        order.tracking_status = TrackingStatus.OUT_FOR_DELIVERY
        order.out_for_delivery_at = timezone.now()
        order.delivery_person = courier
        order.add_domain_event(
            OrderOutForDelivery(
                aggregate_id=order.id,
                actor_id=acting_user.id,
                delivery_person_id=courier.id if courier else None,
            )
        )
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.TRACKING_STATUS,
            old_value=old_tracking,
            new_value=TrackingStatus.OUT_FOR_DELIVERY,
            user=acting_user,
            notes=f"Assigned to {courier.display_name}" if courier else "Seller delivery",
        )

        log.info(
            "order.out_for_delivery",
            delivery_person_id=str(courier.id) if courier else None,
        )
        return self._refetch(order)

    @transaction.atomic
    def request_delivery_otp(self, order_id: UUID, acting_user: User) -> Order:
        """Issue a fresh OTP and email it to the buyer.

        A new code replaces any outstanding one in the same row update, so
        at most one code is ever valid.  If the email cannot be sent the
        transaction rolls back and the previous code (if any) survives.

        Raises:
            OrderNotFound, OrderAccessDenied, InvalidOrderState,
            NotificationFailed.
        """
        order = self._lock(order_id)
        self._require_courier(order, acting_user)
        if order.tracking_status != TrackingStatus.OUT_FOR_DELIVERY:
            raise InvalidOrderState(
                "An OTP can only be requested while the order is out for delivery."
            )

        code = otp.generate_otp()
        order.delivery_otp = code
        order.delivery_otp_expires_at = otp.expiry_from(timezone.now())
        order.add_domain_event(
            DeliveryOTPIssued(
                aggregate_id=order.id,
                actor_id=acting_user.id,
                expires_at=order.delivery_otp_expires_at,
            )
        )
        self._persist(order)
        self._notifier.send_delivery_otp(order, code)

        logger.info(
            "delivery.otp_issued",
            order_id=str(order.id),
            expires_at=order.delivery_otp_expires_at.isoformat(),
        )
        return order

    @transaction.atomic
    def mark_delivered(self, order_id: UUID, acting_user: User, submitted_otp: str) -> Order:
        """Verify the handoff OTP and complete the delivery.

        Raises:
            OrderNotFound, OrderAccessDenied, InvalidOrderState,
            InvalidOTP: no outstanding code, or the code does not match.
            OTPExpired: the outstanding code is past its expiry.
        """
        order = self._lock(order_id)
        self._require_courier(order, acting_user)
        if order.tracking_status != TrackingStatus.OUT_FOR_DELIVERY:
            raise InvalidOrderState(f"Order is {order.tracking_status}, not out for delivery.")

        log = logger.bind(order_id=str(order.id))
        now = timezone.now()
        if not order.delivery_otp:
            raise InvalidOTP("No delivery OTP has been requested for this order.")
        if otp.is_expired(order.delivery_otp_expires_at, now):
            log.info("delivery.otp_expired")
            raise OTPExpired("The delivery OTP has expired. Request a new one.")
        if not otp.otp_matches(order.delivery_otp, submitted_otp):
            log.warning("delivery.otp_mismatch")
            raise InvalidOTP("Invalid OTP.")

        old_tracking = order.tracking_status
        order.tracking_status = TrackingStatus.DELIVERED
        order.delivered_at = now
        order.clear_delivery_otp()
        order.add_domain_event(
            OrderDelivered(aggregate_id=order.id, actor_id=acting_user.id)
        )
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.TRACKING_STATUS,
            old_value=old_tracking,
            new_value=TrackingStatus.DELIVERED,
            user=acting_user,
            notes="Delivery confirmed with OTP",
        )

        log.info("order.delivered")
        return self._refetch(order)

    @transaction.atomic
    def mark_received(self, order_id: UUID, acting_user: User) -> Order:
        """Buyer acknowledges receipt; closes the order as fulfilled.

        Raises:
            OrderNotFound, OrderAccessDenied, InvalidOrderState.
        """
        order = self._lock(order_id)
        expected_role = BUYER_ROLE_BY_DELIVERY_TYPE.get(order.delivery_type)
        if order.customer_id != acting_user.id or acting_user.role != expected_role:
            raise OrderAccessDenied("Only the buyer can confirm receipt of this order.")
        if order.tracking_status != TrackingStatus.DELIVERED:
            raise InvalidOrderState("Order has not been delivered yet.")
        if order.received_at is not None or not order.can_transition_to(
            OrderStatus.FULFILLED
        ):
            raise InvalidOrderState("Receipt of this order was already confirmed.")

        old_status = order.status
        order.received_at = timezone.now()
        order.status = OrderStatus.FULFILLED
        order.add_domain_event(
            OrderReceived(aggregate_id=order.id, actor_id=acting_user.id)
        )
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.STATUS,
            old_value=old_status,
            new_value=OrderStatus.FULFILLED,
            user=acting_user,
            notes="Receipt confirmed by buyer",
        )

        logger.info("order.received", order_id=str(order.id))
        return self._refetch(order)

    @transaction.atomic
    def mark_picked_up(self, order_id: UUID, acting_user: User) -> Order:
        """Seller hands a store-pickup order over the counter.

        Raises:
            OrderNotFound, OrderAccessDenied, InvalidOrderState.
        """
        if not acting_user.is_seller:
            raise OrderAccessDenied("Only sellers can hand over pickup orders.")
        order = self._lock(order_id)
        self._require_seller_of(order, acting_user)
        if not order.is_pickup:
            raise InvalidOrderState("Only store pickup orders can be marked picked up.")
        if order.status != OrderStatus.CONFIRMED:
            raise InvalidOrderState(f"Cannot hand over a {order.status} order.")
        if order.tracking_status != TrackingStatus.PENDING:
            raise InvalidOrderState(f"Order is already {order.tracking_status}.")

        old_tracking = order.tracking_status
        order.tracking_status = TrackingStatus.DELIVERED
        order.delivered_at = timezone.now()
        order.add_domain_event(
            OrderPickedUp(aggregate_id=order.id, actor_id=acting_user.id)
        )
        self._persist(order)
        self._order_repo.add_history(
            order_id=order.id,
            field=HistoryField.TRACKING_STATUS,
            old_value=old_tracking,
            new_value=TrackingStatus.DELIVERED,
            user=acting_user,
            notes="Picked up in store",
        )

        logger.info("order.picked_up", order_id=str(order.id))
        return self._refetch(order)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_assigned_orders(self, user: User) -> QuerySet:
        if not user.is_delivery_person:
            raise OrderAccessDenied("Only delivery persons can access this endpoint.")
        return self._order_repo.assigned_to(user.id)

    def list_delivery_persons(self, user: User) -> List[User]:
        if not (user.is_seller or user.is_staff or user.role == UserRole.ADMIN):
            raise OrderAccessDenied("Only sellers can access this endpoint.")
        return self._user_repo.list_delivery_persons()
