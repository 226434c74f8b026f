"""Payment DRF serializers (camelCase wire format)."""

from __future__ import annotations

from rest_framework import serializers


class CreateGatewayOrderSerializer(serializers.Serializer):
    orderId = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    currency = serializers.CharField(required=False, max_length=3, allow_blank=True)


class VerifyPaymentSerializer(serializers.Serializer):
    orderId = serializers.UUIDField()
    externalOrderId = serializers.CharField(max_length=64)
    externalPaymentId = serializers.CharField(max_length=64)
    externalSignature = serializers.CharField(max_length=128)


class RefundSerializer(serializers.Serializer):
    orderId = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    reason = serializers.CharField(required=False, default="", allow_blank=True)
