"""Order URL configuration.

Routes accept paths with or without the trailing slash so mobile clients
posting to ``/orders/<id>/mark-delivered`` are not redirected.
"""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.orders.views import OrderViewSet

router = DefaultRouter()
router.trailing_slash = "/?"
router.register("orders", OrderViewSet, basename="order")

urlpatterns = router.urls
