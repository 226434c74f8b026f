"""Wishlist and cart URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.shopping import views

urlpatterns = [
    path("wishlist/", views.WishlistView.as_view(), name="wishlist"),
    path(
        "wishlist/<uuid:product_id>/",
        views.WishlistItemView.as_view(),
        name="wishlist-item",
    ),
    path(
        "wishlist/<uuid:product_id>/move-to-cart/",
        views.MoveToCartView.as_view(),
        name="wishlist-move-to-cart",
    ),
    path("cart/", views.CartView.as_view(), name="cart"),
    path("cart/<uuid:item_id>/", views.CartItemView.as_view(), name="cart-item"),
]
