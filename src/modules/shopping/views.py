"""Wishlist and cart API views."""

from __future__ import annotations

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.responses import success
from modules.shopping.serializers import (
    AddToCartSerializer,
    CartSerializer,
    MoveToCartSerializer,
    UpdateCartItemSerializer,
    WishlistSerializer,
)
from modules.shopping.services import CartService, CartWishlistTransfer, WishlistService


class WishlistView(APIView):
    """GET / DELETE /api/v1/wishlist/"""

    def get(self, request: Request) -> Response:
        wishlist = WishlistService().get(request.user)
        return success(WishlistSerializer(wishlist).data)

    def delete(self, request: Request) -> Response:
        wishlist = WishlistService().clear(request.user)
        return success(WishlistSerializer(wishlist).data, message="Wishlist cleared")


class WishlistItemView(APIView):
    """POST / DELETE /api/v1/wishlist/{product_id}/"""

    def post(self, request: Request, product_id) -> Response:
        wishlist, added = WishlistService().add(request.user, product_id)
        return success(
            WishlistSerializer(wishlist).data,
            status.HTTP_201_CREATED if added else status.HTTP_200_OK,
            message="Added to wishlist" if added else "Already in wishlist",
        )

    def delete(self, request: Request, product_id) -> Response:
        wishlist = WishlistService().remove(request.user, product_id)
        return success(WishlistSerializer(wishlist).data, message="Removed from wishlist")


class MoveToCartView(APIView):
    """POST /api/v1/wishlist/{product_id}/move-to-cart/"""

    def post(self, request: Request, product_id) -> Response:
        serializer = MoveToCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        wishlist, cart = CartWishlistTransfer().move_to_cart(
            request.user,
            product_id,
            quantity=data["quantity"],
            size=data.get("size"),
            vase=data.get("vase"),
            personal_note=data.get("personalNote", ""),
        )
        return success(
            {
                "wishlist": WishlistSerializer(wishlist).data,
                "cart": CartSerializer(cart).data,
            },
            message="Moved to cart",
        )


class CartView(APIView):
    """GET / POST / DELETE /api/v1/cart/"""

    def get(self, request: Request) -> Response:
        return success(CartSerializer(CartService().get(request.user)).data)

    def post(self, request: Request) -> Response:
        serializer = AddToCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        cart = CartService().add_item(
            request.user,
            data["productId"],
            quantity=data["quantity"],
            size=data.get("size"),
            vase=data.get("vase"),
            personal_note=data.get("personalNote", ""),
        )
        return success(CartSerializer(cart).data, message="Added to cart")

    def delete(self, request: Request) -> Response:
        service = CartService()
        service.clear(request.user)
        return success(CartSerializer(service.get(request.user)).data, message="Cart cleared")


class CartItemView(APIView):
    """PUT / DELETE /api/v1/cart/{item_id}/"""

    def put(self, request: Request, item_id) -> Response:
        serializer = UpdateCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = CartService().update_item(
            request.user, item_id, serializer.validated_data["quantity"]
        )
        return success(CartSerializer(cart).data, message="Cart updated")

    def delete(self, request: Request, item_id) -> Response:
        cart = CartService().remove_item(request.user, item_id)
        return success(CartSerializer(cart).data, message="Removed from cart")
