"""Product representations shared by the order and shopping APIs."""

from __future__ import annotations

from rest_framework import serializers

from modules.products.models import Product


class ModifierField(serializers.Field):
    """A size or vase choice, sent either as a name or as ``{"name": ...}``.

    Any price the client sends alongside the name is ignored.
    """

    default_error_messages = {
        "invalid": "Expected an option name or an object with a 'name'.",
    }

    def to_internal_value(self, data):
        if isinstance(data, dict):
            data = data.get("name")
        if not isinstance(data, str) or not data.strip():
            self.fail("invalid")
        return data.strip()

    def to_representation(self, value):
        return value


class ProductSummarySerializer(serializers.ModelSerializer):
    isAvailable = serializers.BooleanField(source="is_available", read_only=True)
    isLowStock = serializers.BooleanField(source="is_low_stock", read_only=True)
    lowStockThreshold = serializers.IntegerField(
        source="low_stock_threshold", read_only=True
    )

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "price",
            "stock",
            "lowStockThreshold",
            "isAvailable",
            "isLowStock",
        ]
        read_only_fields = fields
