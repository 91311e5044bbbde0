"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each carries
a stable ``code`` that the API returns next to the human-readable message,
so clients never have to pattern-match on error text.
"""

from __future__ import annotations


class OrderDomainError(Exception):
    """Base class for every rule violation in the order workflow."""

    code = "order_error"


class OrderNotFound(OrderDomainError):
    """The requested order does not exist or has been soft-deleted."""

    code = "not_found"


class OrderAccessDenied(OrderDomainError):
    """The acting user has the wrong role or no stake in the order."""

    code = "forbidden"


class InvalidOrderState(OrderDomainError):
    """The transition is not allowed from the order's current status."""

    code = "invalid_state"


class InvalidStatusValue(OrderDomainError):
    """A seller asked for a status outside ``confirmed`` / ``delivered``."""

    code = "invalid_status"


class InvalidOTP(OrderDomainError):
    """The submitted delivery OTP is wrong, or none is outstanding."""

    code = "invalid_otp"


class OTPExpired(InvalidOTP):
    """The outstanding delivery OTP passed its expiry; request a new one."""

    code = "otp_expired"


class DeliveryPersonNotFound(OrderDomainError):
    """The delivery person to assign is unknown, inactive or not a courier."""

    code = "delivery_person_not_found"


class NotificationFailed(OrderDomainError):
    """The email collaborator refused or failed to send a message."""

    code = "notification_failed"


class ProductNotFound(OrderDomainError):
    """A product referenced by an order item does not exist."""

    code = "product_not_found"


class InactiveProduct(OrderDomainError):
    """A product referenced by an order item is not on sale."""

    code = "inactive_product"


class InsufficientStock(OrderDomainError):
    """Not enough stock to fulfil the order."""

    code = "insufficient_stock"


class InvalidBuyer(OrderDomainError):
    """The buyer's role cannot purchase from the sellers in the cart."""

    code = "invalid_buyer"


class MixedDeliveryTypes(OrderDomainError):
    """A single order mixes retail and wholesale products."""

    code = "mixed_delivery_types"


class IdempotencyKeyConflict(OrderDomainError):
    """The idempotency key already belongs to another buyer's order."""

    code = "idempotency_conflict"
