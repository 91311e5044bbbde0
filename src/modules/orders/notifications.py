"""Order email notifications.

``EmailDeliveryNotifier`` renders a plain-text and an HTML body from the
templates under ``orders/email/`` and hands them to Django's mail framework.
Transport failures surface as ``NotificationFailed`` so the caller can roll
back (OTP) or retry (informational emails).
"""

from __future__ import annotations

import smtplib
from typing import TYPE_CHECKING, Any, Dict, Protocol

import structlog
from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from modules.orders.exceptions import NotificationFailed

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class IDeliveryNotifier(Protocol):
    def send_delivery_otp(self, order: Order, code: str) -> None: ...

    def send_out_for_delivery(self, order: Order) -> None: ...

    def send_delivery_confirmation(self, order: Order) -> None: ...


class EmailDeliveryNotifier:
    """Sends order emails to the buyer's address."""

    def send_delivery_otp(self, order: Order, code: str) -> None:
        context = self._base_context(order)
        context.update(
            otp=code,
            expires_at=order.delivery_otp_expires_at,
            ttl_minutes=settings.DELIVERY_OTP_TTL_MINUTES,
        )
        self._send(
            order,
            template="delivery_otp",
            subject=f"Your delivery OTP for order {order.order_number}",
            context=context,
        )

    def send_out_for_delivery(self, order: Order) -> None:
        context = self._base_context(order)
        courier = order.delivery_person
        context.update(
            delivery_person_name=courier.display_name if courier else "",
            delivery_person_phone=courier.phone if courier else "",
        )
        self._send(
            order,
            template="out_for_delivery",
            subject=f"Order {order.order_number} is out for delivery",
            context=context,
        )

    def send_delivery_confirmation(self, order: Order) -> None:
        context = self._base_context(order)
        context["items"] = [
            {
                "name": item.product.name,
                "quantity": item.quantity,
                "subtotal": item.subtotal,
            }
            for item in order.items.all()
        ]
        self._send(
            order,
            template="delivered",
            subject=f"Order {order.order_number} has been delivered",
            context=context,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _base_context(order: Order) -> Dict[str, Any]:
        return {
            "order_number": order.order_number,
            "recipient_name": order.customer.display_name,
            "address": order.address,
            "total_amount": order.total_amount,
        }

    @staticmethod
    def _send(order: Order, template: str, subject: str, context: Dict[str, Any]) -> None:
        recipient = order.customer.email
        log = logger.bind(order_id=str(order.id), template=template)
        if not recipient:
            log.warning("notification.no_recipient")
            raise NotificationFailed("The buyer has no email address on file.")

        text_message = render_to_string(f"orders/email/{template}.txt", context)
        html_message = render_to_string(f"orders/email/{template}.html", context)
        try:
            send_mail(
                subject=subject,
                message=text_message,
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[recipient],
                html_message=html_message,
            )
        except (smtplib.SMTPException, OSError) as exc:
            log.error("notification.send_failed", error=str(exc))
            raise NotificationFailed("Could not send the email. Try again.") from exc

        log.info("notification.sent")
