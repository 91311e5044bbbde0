from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import OrderDelivered, OrderOutForDelivery
        from modules.orders.handlers import (
            ORDER_EVENTS,
            order_activity_log_handler,
            order_delivered_handler,
            order_out_for_delivery_handler,
        )
        from shared.infrastructure.bus import event_bus

        for event_class in ORDER_EVENTS:
            event_bus.subscribe(event_class, order_activity_log_handler)
        event_bus.subscribe(OrderOutForDelivery, order_out_for_delivery_handler)
        event_bus.subscribe(OrderDelivered, order_delivered_handler)
