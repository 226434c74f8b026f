"""Cart and wishlist exceptions."""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class NotInWishlist(DomainError):
    """The product is not in the caller's wishlist."""

    default_message = "Product not found in wishlist."


class CartItemNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Item not found in cart."
