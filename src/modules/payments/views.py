"""Payment API views.

The webhook endpoint is unauthenticated: the HMAC over the raw request body
is its only credential, so it must read ``request.body`` before DRF parses
anything.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.responses import success
from modules.orders.serializers import OrderSerializer
from modules.payments.gateway import get_gateway
from modules.payments.serializers import (
    CreateGatewayOrderSerializer,
    RefundSerializer,
    VerifyPaymentSerializer,
)
from modules.payments.services import PaymentReconciler

SIGNATURE_HEADER = "X-Razorpay-Signature"


def get_reconciler() -> PaymentReconciler:
    return PaymentReconciler(gateway=get_gateway())


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def create_gateway_order(request: Request) -> Response:
    """POST /api/v1/payments/create-order/"""
    serializer = CreateGatewayOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    handle = get_reconciler().create_gateway_order(
        data["orderId"], data["amount"], data.get("currency") or None, request.user
    )
    return success(handle, status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def verify_payment(request: Request) -> Response:
    """POST /api/v1/payments/verify/"""
    serializer = VerifyPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    order, applied = get_reconciler().verify(
        data["externalOrderId"],
        data["externalPaymentId"],
        data["externalSignature"],
        data["orderId"],
        request.user,
    )
    return success(
        OrderSerializer(order).data,
        message="Payment verified" if applied else "Payment already verified",
    )


class PaymentWebhookView(APIView):
    """POST /api/v1/payments/webhook/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "payment_webhook"

    def post(self, request: Request) -> Response:
        raw_body = request.body
        result = get_reconciler().handle_webhook(
            raw_body, request.headers.get(SIGNATURE_HEADER)
        )
        return success({"result": result})


@api_view(["POST"])
@permission_classes([IsAuthenticated, IsAdminUser])
def refund_payment(request: Request) -> Response:
    """POST /api/v1/payments/refund/ (admin)"""
    serializer = RefundSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    order, refund = get_reconciler().refund(
        data["orderId"],
        amount=data.get("amount"),
        reason=data.get("reason", ""),
        actor=request.user,
    )
    return success(
        {"order": OrderSerializer(order).data, "refund": refund},
        message="Refund processed",
    )


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payment_status(request: Request, order_id) -> Response:
    """GET /api/v1/payments/status/{order_id}/"""
    return success(get_reconciler().payment_status(order_id, request.user))
