"""Inventory domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import DomainError


class InsufficientStock(DomainError):
    """Not enough units on hand; the stock counter was left untouched."""

    default_message = "Insufficient stock."


class InvalidQuantity(DomainError):
    """A stock movement was requested for fewer than one unit."""

    default_message = "Quantity must be at least 1."
