"""Order API views.

Exposes ``OrderService`` over HTTP using a DRF ViewSet.  Domain exceptions
propagate to ``envelope_exception_handler``; the view never swallows
generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.responses import success
from modules.orders.dtos import (
    BulkUpdateStatusDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    ShippingAddressDTO,
    UpdateStatusDTO,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.serializers import (
    BulkUpdateStatusSerializer,
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    UpdateStatusSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories import ProductDjangoRepository

ADMIN_ACTIONS = {"update_status", "bulk_status"}


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: all ORM access goes through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )

    def get_permissions(self):
        if self.action in ADMIN_ACTIONS:
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_orders(self.request.user)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        address = data["shippingAddress"]

        dto = CreateOrderDTO(
            user_id=request.user.pk,
            items=[
                CreateOrderItemDTO(
                    product_id=item["product"],
                    quantity=item["quantity"],
                    size=item.get("size"),
                    vase=item.get("vase"),
                    personal_note=item.get("personalNote", ""),
                )
                for item in data["items"]
            ],
            shipping_address=ShippingAddressDTO(
                full_name=address["fullName"],
                street=address["street"],
                city=address["city"],
                state=address.get("state", ""),
                zip_code=address["zipCode"],
                country=address["country"],
                phone=address.get("phone", ""),
            ),
            shipping_method=data["shippingMethod"],
            payment_method=data["paymentInfo"]["method"],
            notes=data.get("notes", ""),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )

        order, created = self._service.create_order(dto, request.user)
        return success(
            OrderSerializer(order).data,
            status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Owners see their own orders, admins see all.  Filtering is handled
        by ``OrderFilter`` and ordering by ``OrderingFilter``.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        order = self._service.get_order(pk, request.user)
        return success(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/status/ (admin)"""
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        dto = UpdateStatusDTO(
            status=data["status"],
            tracking_number=data.get("trackingNumber") or None,
            notes=data.get("notes", ""),
            notify_customer=data.get("notifyCustomer", True),
        )
        order = self._service.update_status(pk, dto, actor=request.user)
        return success(OrderSerializer(order).data, message="Order status updated")

    @action(detail=False, methods=["put"], url_path="bulk-status")
    def bulk_status(self, request: Request) -> Response:
        """PUT /api/v1/orders/bulk-status/ (admin)"""
        serializer = BulkUpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        dto = BulkUpdateStatusDTO(
            order_ids=data["orderIds"],
            status=data["status"],
            tracking_numbers=data.get("trackingNumbers") or {},
            notes=data.get("notes", ""),
        )
        report = self._service.bulk_update_status(dto, actor=request.user)
        return success(
            {
                "updated": report.updated,
                "succeeded": report.succeeded,
                "errors": report.failed,
            }
        )

    @action(detail=True, methods=["put"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/cancel/ (owner or admin)"""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.cancel_order(
            pk, request.user, notes=serializer.validated_data.get("reason", "")
        )
        return success(OrderSerializer(order).data, message="Order cancelled")
