import django_filters

from modules.orders.constants import DeliveryType, OrderStatus, TrackingStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=OrderStatus.choices)
    tracking_status = django_filters.ChoiceFilter(choices=TrackingStatus.choices)
    delivery_type = django_filters.ChoiceFilter(choices=DeliveryType.choices)
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")

    class Meta:
        model = Order
        fields = [
            "status",
            "tracking_status",
            "delivery_type",
            "start_date",
            "end_date",
        ]
