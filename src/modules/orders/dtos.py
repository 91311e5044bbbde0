"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``CreateOrderItemDTO``: input for a single order line item.
- ``CreateOrderDTO``: input for order creation (nested items).
- ``DeliveryOTPReceiptDTO``: what the API may reveal about a fresh OTP.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

if TYPE_CHECKING:
    from modules.orders.models import Order


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single order item in a creation request.

    ``unit_price`` is resolved by the Service Layer from the product catalog.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - ``items`` must contain at least one item.
    - Each product appears at most once.
    - Delivery orders need an address; pickup orders need none.
    """

    model_config = ConfigDict(frozen=True)

    items: List[CreateOrderItemDTO]
    address: str = ""
    scheduled_pickup_time: Optional[datetime] = None
    payment_order_id: str = ""
    payment_id: str = ""
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in the same order.")
        return self

    @model_validator(mode="after")
    def address_required_for_delivery(self):
        if self.scheduled_pickup_time is None and not self.address.strip():
            raise ValueError("A delivery address is required unless the order is picked up.")
        return self


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class DeliveryOTPReceiptDTO(BaseModel):
    """Acknowledges an issued OTP without carrying the code."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    order_id: UUID
    expires_at: datetime

    @classmethod
    def from_entity(cls, order: Order) -> DeliveryOTPReceiptDTO:
        return cls(order_id=order.id, expires_at=order.delivery_otp_expires_at)
