"""Order API views.

Exposes ``OrderService`` and ``DeliveryService`` via HTTP using a DRF
ViewSet.  Domain exceptions are caught and translated into HTTP status
codes with the ``{error, code}`` envelope; the view never swallows
generic exceptions.
"""

from __future__ import annotations

from typing import Dict, Type

from pydantic import ValidationError as DTOValidationError
from rest_framework import serializers, status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.accounts.dtos import DeliveryPersonDTO
from modules.accounts.repositories import UserDjangoRepository
from modules.core.exceptions import error_response
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, DeliveryOTPReceiptDTO
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
    NotificationFailed,
    OrderAccessDenied,
    OrderDomainError,
    OrderNotFound,
    ProductNotFound,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.notifications import EmailDeliveryNotifier
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    MarkDeliveredSerializer,
    OrderSerializer,
    OutForDeliverySerializer,
    SellerOrderSerializer,
    SetOrderStatusSerializer,
)
from modules.orders.services import DeliveryService, OrderService
from modules.products.repositories import ProductDjangoRepository

ERROR_STATUS: Dict[Type[OrderDomainError], int] = {
    OrderNotFound: status.HTTP_404_NOT_FOUND,
    ProductNotFound: status.HTTP_404_NOT_FOUND,
    OrderAccessDenied: status.HTTP_403_FORBIDDEN,
    InvalidBuyer: status.HTTP_403_FORBIDDEN,
    InvalidOrderState: status.HTTP_409_CONFLICT,
    InsufficientStock: status.HTTP_409_CONFLICT,
    IdempotencyKeyConflict: status.HTTP_409_CONFLICT,
    InvalidStatusValue: status.HTTP_400_BAD_REQUEST,
    InvalidOTP: status.HTTP_400_BAD_REQUEST,
    DeliveryPersonNotFound: status.HTTP_400_BAD_REQUEST,
    InactiveProduct: status.HTTP_400_BAD_REQUEST,
    MixedDeliveryTypes: status.HTTP_400_BAD_REQUEST,
    NotificationFailed: status.HTTP_502_BAD_GATEWAY,
}


def domain_error_response(exc: OrderDomainError) -> Response:
    """Map a domain exception (or its nearest mapped ancestor) to a response."""
    status_code = next(
        (ERROR_STATUS[klass] for klass in type(exc).__mro__ if klass in ERROR_STATUS),
        status.HTTP_400_BAD_REQUEST,
    )
    return error_response(str(exc), exc.code, status_code)


class OrderViewSet(GenericViewSet):
    """ViewSet for the order lifecycle.

    Uses ``OrderService`` / ``DeliveryService`` with injected repositories
    (DIP).  Does **not** extend ``ModelViewSet``: all ORM access goes
    through the service/repository layer.
    """

    queryset = Order.objects.none()
    serializer_class = OrderSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        self._service = OrderService(
            order_repository=order_repository,
            product_repository=ProductDjangoRepository(),
        )
        self._delivery = DeliveryService(
            order_repository=order_repository,
            user_repository=UserDjangoRepository(),
            notifier=EmailDeliveryNotifier(),
        )

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action == "request_delivery_otp":
            throttle_scope = "delivery_otp"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create / List / Retrieve
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)
        data = create_serializer.validated_data

        try:
            dto = CreateOrderDTO(
                items=[
                    CreateOrderItemDTO(
                        product_id=item["product_id"],
                        quantity=item["quantity"],
                    )
                    for item in data["items"]
                ],
                address=data.get("address", ""),
                scheduled_pickup_time=data.get("scheduled_pickup_time"),
                payment_order_id=data.get("payment_order_id", ""),
                payment_id=data.get("payment_id", ""),
                notes=data.get("notes", ""),
                idempotency_key=request.headers.get("Idempotency-Key"),
            )
        except DTOValidationError as exc:
            raise serializers.ValidationError(
                {"non_field_errors": [err["msg"] for err in exc.errors()]}
            ) from exc

        try:
            order = self._service.create_order(dto, request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/ - the caller's own purchases."""
        orders = self._service.list_customer_orders(request.user)
        return Response(OrderSerializer(orders, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(str(pk), request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Seller status toggle
    # ------------------------------------------------------------------

    @action(detail=True, methods=["put"], url_path="status", url_name="status")
    def set_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/status/"""
        payload = SetOrderStatusSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        try:
            order = self._service.set_order_status(
                order_id=pk,
                new_status=payload.validated_data["status"],
                acting_user=request.user,
            )
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response({"order": OrderSerializer(order).data})

    # ------------------------------------------------------------------
    # Delivery tracking
    # ------------------------------------------------------------------

    @action(detail=True, methods=["put"], url_path="out-for-delivery", url_name="out-for-delivery")
    def out_for_delivery(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/out-for-delivery/"""
        payload = OutForDeliverySerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        try:
            order = self._delivery.mark_out_for_delivery(
                order_id=pk,
                acting_user=request.user,
                delivery_person_id=payload.validated_data.get("delivery_person_id"),
            )
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response({"order": OrderSerializer(order).data})

    @action(
        detail=True,
        methods=["post"],
        url_path="request-delivery-otp",
        url_name="request-delivery-otp",
    )
    def request_delivery_otp(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/request-delivery-otp/

        The code goes to the buyer by email only; the response carries
        the expiry so the courier's screen can show a countdown.
        """
        try:
            order = self._delivery.request_delivery_otp(order_id=pk, acting_user=request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        receipt = DeliveryOTPReceiptDTO.from_entity(order)
        return Response(receipt.model_dump(mode="json"))

    @action(detail=True, methods=["put"], url_path="mark-delivered", url_name="mark-delivered")
    def mark_delivered(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/mark-delivered/"""
        payload = MarkDeliveredSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        try:
            order = self._delivery.mark_delivered(
                order_id=pk,
                acting_user=request.user,
                submitted_otp=payload.validated_data["otp"],
            )
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response({"success": True, "order": OrderSerializer(order).data})

    @action(detail=True, methods=["put"], url_path="mark-received", url_name="mark-received")
    def mark_received(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/mark-received/"""
        try:
            order = self._delivery.mark_received(order_id=pk, acting_user=request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response({"order": OrderSerializer(order).data})

    @action(detail=True, methods=["put"], url_path="mark-picked-up", url_name="mark-picked-up")
    def mark_picked_up(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/mark-picked-up/"""
        try:
            order = self._delivery.mark_picked_up(order_id=pk, acting_user=request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response({"order": OrderSerializer(order).data})

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order and releases reserved stock.
        """
        payload = CancelOrderSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        try:
            order = self._service.cancel_order(
                order_id=pk,
                acting_user=request.user,
                notes=payload.validated_data["notes"],
            )
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response({"order": OrderSerializer(order).data})

    # ------------------------------------------------------------------
    # Role dashboards
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"])
    def seller(self, request: Request) -> Response:
        """GET /api/v1/orders/seller/

        Orders containing the caller's products, newest first, each with
        only the caller's own line items and their ``seller_subtotal``.
        Filterable by ``status``, ``tracking_status``, ``delivery_type``
        and a created-at date range.
        """
        try:
            queryset = self._service.list_seller_orders(request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        filterset = OrderFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            raise serializers.ValidationError(filterset.errors)
        return Response(SellerOrderSerializer(filterset.qs, many=True).data)

    @action(
        detail=False,
        methods=["get"],
        url_path="delivery/assigned",
        url_name="delivery-assigned",
    )
    def delivery_assigned(self, request: Request) -> Response:
        """GET /api/v1/orders/delivery/assigned/"""
        try:
            orders = self._delivery.list_assigned_orders(request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response(OrderSerializer(orders, many=True).data)

    @action(
        detail=False,
        methods=["get"],
        url_path="delivery/persons",
        url_name="delivery-persons",
    )
    def delivery_persons(self, request: Request) -> Response:
        """GET /api/v1/orders/delivery/persons/"""
        try:
            persons = self._delivery.list_delivery_persons(request.user)
        except OrderDomainError as exc:
            return domain_error_response(exc)
        return Response(
            [DeliveryPersonDTO.from_entity(person).model_dump(mode="json") for person in persons]
        )
