"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- Seller status (``status``) and delivery progress (``tracking_status``) are
  separate state machines; transitions are validated at the service layer.
- Every change to either field generates a history record naming the field.
- ``delivered_at`` is stamped once, when tracking first reaches ``delivered``.
- The delivery OTP is stored on the order with an absolute expiry and is
  cleared as soon as delivery is confirmed.
- Idempotency via ``idempotency_key`` unique constraint.
- OrderItem snapshots product price at creation time (``unit_price``).
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, SoftDeleteModel
from modules.orders import otp
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    TRACKING_TRANSITIONS,
    DeliveryType,
    HistoryField,
    OrderStatus,
    TrackingStatus,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``LM-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.

    An order with a ``scheduled_pickup_time`` is a store-pickup order: it is
    never sent out for delivery and has no OTP handshake.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.CONFIRMED,
    )
    tracking_status: models.CharField = models.CharField(
        max_length=20,
        choices=TrackingStatus.choices,
        default=TrackingStatus.PENDING,
    )
    delivery_type: models.CharField = models.CharField(
        max_length=30,
        choices=DeliveryType.choices,
        default=DeliveryType.RETAILER_TO_CONSUMER,
    )
    delivery_person: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_deliveries",
    )
    out_for_delivery_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    delivery_otp: models.CharField = models.CharField(
        max_length=12, blank=True, default=""
    )
    delivery_otp_expires_at = models.DateTimeField(null=True, blank=True)
    scheduled_pickup_time = models.DateTimeField(null=True, blank=True)
    total_amount: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    address: models.TextField = models.TextField(blank=True, default="")
    payment_order_id: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    payment_id: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["tracking_status"], name="orders_tracking_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_pickup(self) -> bool:
        return self.scheduled_pickup_time is not None

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether moving ``status`` to *new_status* is valid."""
        return new_status in STATUS_TRANSITIONS.get(self.status, set())

    def can_track_to(self, new_tracking: str) -> bool:
        """Check whether moving ``tracking_status`` forward is valid."""
        return new_tracking in TRACKING_TRANSITIONS.get(self.tracking_status, set())

    def has_active_otp(self, now: datetime | None = None) -> bool:
        if not self.delivery_otp:
            return False
        return not otp.is_expired(self.delivery_otp_expires_at, now or timezone.now())

    def clear_delivery_otp(self) -> None:
        self.delivery_otp = ""
        self.delivery_otp_expires_at = None

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``LM-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"LM-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status}/{self.tracking_status})"


class OrderItem(SoftDeleteModel):
    """Line item linking an Order to a Product.

    ``unit_price`` is a snapshot of the product price at the time of
    purchase.  ``subtotal`` is always ``quantity * unit_price``,
    recalculated on every save.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.unit_price:
            unit_price = getattr(self.product, "price", None)
            if unit_price is None:
                raise ValidationError({"unit_price": "Product price is required."})
            self.unit_price = unit_price
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product} x{self.quantity} ({self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order transitions.

    ``field`` says which state machine moved (``status`` or
    ``tracking_status``).  ``user`` is nullable: ``None`` means the change
    was performed by the system.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    field: models.CharField = models.CharField(
        max_length=20,
        choices=HistoryField.choices,
        default=HistoryField.STATUS,
    )
    old_value: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        null=True,
        blank=True,
    )
    new_value: models.CharField = models.CharField(max_length=20)
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} {self.field}: {self.old_value} -> {self.new_value}"
