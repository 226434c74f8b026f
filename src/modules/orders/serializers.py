"""Order DRF serializers for API input/output.

The wire format is camelCase; fields map onto the snake_case model and
DTO attributes through ``source``.  Business logic lives in the service
layer, which receives Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import PaymentMethod, ShippingMethod
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.products.serializers import ModifierField

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    product = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    size = ModifierField(required=False, allow_null=True)
    vase = ModifierField(required=False, allow_null=True)
    personalNote = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )


class ShippingAddressSerializer(serializers.Serializer):
    fullName = serializers.CharField(max_length=120)
    street = serializers.CharField(max_length=200)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(
        max_length=100, required=False, default="", allow_blank=True
    )
    zipCode = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=100)
    phone = serializers.CharField(
        max_length=30, required=False, default="", allow_blank=True
    )


class PaymentInfoSerializer(serializers.Serializer):
    method = serializers.ChoiceField(choices=PaymentMethod.choices)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the checkout request payload."""

    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    shippingAddress = ShippingAddressSerializer()
    paymentInfo = PaymentInfoSerializer()
    shippingMethod = serializers.ChoiceField(
        choices=ShippingMethod.choices, default=ShippingMethod.STANDARD
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    trackingNumber = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, max_length=64
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    notifyCustomer = serializers.BooleanField(required=False, default=True)


class BulkUpdateStatusSerializer(serializers.Serializer):
    orderIds = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, max_length=500
    )
    status = serializers.CharField()
    trackingNumbers = serializers.DictField(
        child=serializers.CharField(max_length=64), required=False, default=dict
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    product = serializers.UUIDField(source="product_id", read_only=True)
    productName = serializers.CharField(source="product_name", read_only=True)
    unitPrice = serializers.DecimalField(
        source="unit_price", max_digits=10, decimal_places=2, read_only=True
    )
    size = serializers.SerializerMethodField()
    vase = serializers.SerializerMethodField()
    personalNote = serializers.CharField(source="personal_note", read_only=True)
    lineTotal = serializers.DecimalField(
        source="line_total", max_digits=10, decimal_places=2, read_only=True
    )

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "productName",
            "quantity",
            "unitPrice",
            "size",
            "vase",
            "personalNote",
            "lineTotal",
        ]
        read_only_fields = fields

    def get_size(self, obj: OrderItem):
        if not obj.size_name:
            return None
        return {"name": obj.size_name, "price": str(obj.size_price)}

    def get_vase(self, obj: OrderItem):
        if not obj.vase_name:
            return None
        return {"name": obj.vase_name, "price": str(obj.vase_price)}


class StatusHistorySerializer(serializers.ModelSerializer):
    oldStatus = serializers.CharField(source="old_status", read_only=True)
    newStatus = serializers.CharField(source="new_status", read_only=True)
    changedBy = serializers.IntegerField(source="user_id", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = OrderStatusHistory
        fields = ["id", "oldStatus", "newStatus", "changedBy", "notes", "createdAt"]
        read_only_fields = fields


def _money_field(source: str | None = None) -> serializers.DecimalField:
    extra = {"source": source} if source else {}
    return serializers.DecimalField(
        max_digits=10, decimal_places=2, read_only=True, **extra
    )


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight order representation (no nested relations)."""

    orderNumber = serializers.CharField(source="order_number", read_only=True)
    user = serializers.IntegerField(source="user_id", read_only=True)
    paymentStatus = serializers.CharField(source="payment_status", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "orderNumber",
            "user",
            "status",
            "paymentStatus",
            "total",
            "createdAt",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order with line items, payment block and history."""

    orderNumber = serializers.CharField(source="order_number", read_only=True)
    user = serializers.IntegerField(source="user_id", read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    shippingAddress = serializers.JSONField(source="shipping_address", read_only=True)
    shippingMethod = serializers.CharField(source="shipping_method", read_only=True)
    paymentInfo = serializers.SerializerMethodField()
    subtotal = _money_field()
    shippingFee = _money_field("shipping_fee")
    tax = _money_field()
    discount = _money_field()
    total = _money_field()
    trackingNumber = serializers.CharField(source="tracking_number", read_only=True)
    confirmedAt = serializers.DateTimeField(source="confirmed_at", read_only=True)
    shippedAt = serializers.DateTimeField(source="shipped_at", read_only=True)
    deliveredAt = serializers.DateTimeField(source="delivered_at", read_only=True)
    cancelledAt = serializers.DateTimeField(source="cancelled_at", read_only=True)
    statusHistory = StatusHistorySerializer(
        source="status_history", many=True, read_only=True
    )
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "orderNumber",
            "user",
            "status",
            "items",
            "shippingAddress",
            "shippingMethod",
            "paymentInfo",
            "subtotal",
            "shippingFee",
            "tax",
            "discount",
            "total",
            "trackingNumber",
            "notes",
            "confirmedAt",
            "shippedAt",
            "deliveredAt",
            "cancelledAt",
            "statusHistory",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields

    def get_paymentInfo(self, obj: Order):
        return {
            "method": obj.payment_method,
            "status": obj.payment_status,
            "externalOrderId": obj.external_order_id,
            "externalPaymentId": obj.external_payment_id or None,
            "paidAt": obj.paid_at.isoformat() if obj.paid_at else None,
            "refundAmount": str(obj.refund_amount),
            "refundedAt": obj.refunded_at.isoformat() if obj.refunded_at else None,
            "failureReason": obj.payment_failure_reason or None,
        }
