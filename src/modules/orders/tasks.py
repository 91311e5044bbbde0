"""Celery tasks for informational order emails.

Handlers queue these after the transition commits, so a slow or failing
mail server never blocks or rolls back the order change itself.
"""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.orders.exceptions import NotificationFailed
from modules.orders.notifications import EmailDeliveryNotifier
from modules.orders.repositories import OrderDjangoRepository

logger = structlog.get_logger(__name__)


@shared_task(bind=True, max_retries=3, name="orders.send_out_for_delivery_email")
def send_out_for_delivery_email(self, order_id: str) -> bool:
    """Tell the buyer the order left the store, with the courier's contact."""
    order = OrderDjangoRepository().get_by_id(order_id)
    if order is None:
        logger.warning("task.order_missing", order_id=order_id)
        return False
    try:
        EmailDeliveryNotifier().send_out_for_delivery(order)
    except NotificationFailed as exc:
        raise self.retry(countdown=60 * (self.request.retries + 1), exc=exc)
    return True


@shared_task(bind=True, max_retries=3, name="orders.send_delivery_confirmation_email")
def send_delivery_confirmation_email(self, order_id: str) -> bool:
    """Send the buyer a delivered notice with the item summary."""
    order = OrderDjangoRepository().get_by_id(order_id)
    if order is None:
        logger.warning("task.order_missing", order_id=order_id)
        return False
    try:
        EmailDeliveryNotifier().send_delivery_confirmation(order)
    except NotificationFailed as exc:
        raise self.retry(countdown=60 * (self.request.retries + 1), exc=exc)
    return True
