"""Domain events for the Orders bounded context.

Events carry identifiers and timestamps only.  The delivery OTP never
travels on the bus or into the outbox.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed."""


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled and its stock released."""


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when the seller-controlled status changes."""

    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True, kw_only=True)
class OrderOutForDelivery(DomainEvent):
    """Raised when the seller dispatches an order."""

    delivery_person_id: UUID | None = None


@dataclass(frozen=True, kw_only=True)
class DeliveryOTPIssued(DomainEvent):
    """Raised when a fresh delivery OTP has been emailed to the buyer."""

    expires_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class OrderDelivered(DomainEvent):
    """Raised when the handoff OTP is verified."""


@dataclass(frozen=True, kw_only=True)
class OrderPickedUp(DomainEvent):
    """Raised when a store-pickup order is collected."""


@dataclass(frozen=True, kw_only=True)
class OrderReceived(DomainEvent):
    """Raised when the buyer confirms receipt."""
