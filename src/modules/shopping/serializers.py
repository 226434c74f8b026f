"""Cart and wishlist serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.products.serializers import ModifierField, ProductSummarySerializer
from modules.shopping.models import Cart, CartItem, Wishlist


class MoveToCartSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)
    size = ModifierField(required=False, allow_null=True)
    vase = ModifierField(required=False, allow_null=True)
    personalNote = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )


class AddToCartSerializer(MoveToCartSerializer):
    productId = serializers.UUIDField()


class UpdateCartItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)


class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSummarySerializer(read_only=True)
    size = serializers.SerializerMethodField()
    vase = serializers.SerializerMethodField()
    personalNote = serializers.CharField(source="personal_note", read_only=True)
    lineTotal = serializers.DecimalField(
        source="line_total", max_digits=10, decimal_places=2, read_only=True
    )

    class Meta:
        model = CartItem
        fields = ["id", "product", "quantity", "price", "size", "vase", "personalNote", "lineTotal"]
        read_only_fields = fields

    def get_size(self, obj: CartItem):
        if not obj.size_name:
            return None
        return {"name": obj.size_name, "price": str(obj.size_price)}

    def get_vase(self, obj: CartItem):
        if not obj.vase_name:
            return None
        return {"name": obj.vase_name, "price": str(obj.vase_price)}


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Cart
        fields = ["id", "items", "subtotal", "total", "updatedAt"]
        read_only_fields = fields


class WishlistSerializer(serializers.ModelSerializer):
    products = ProductSummarySerializer(many=True, read_only=True)
    count = serializers.SerializerMethodField()

    class Meta:
        model = Wishlist
        fields = ["id", "products", "count"]
        read_only_fields = fields

    def get_count(self, obj: Wishlist) -> int:
        return obj.products.count()
