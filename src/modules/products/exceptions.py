"""Product domain exceptions."""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class ProductNotFound(DomainError):
    """The requested product does not exist or has been soft-deleted."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Product not found."


class InvalidModifier(DomainError):
    """A size or vase that the product does not offer was requested."""

    default_message = "Invalid product option."
