"""Cart and Wishlist aggregates, one of each per user.

Rules implemented:
- A cart holds at most one line per product; adding the same product again
  merges by summing quantities.
- ``Cart.subtotal`` and ``Cart.total`` are recomputed from the lines on
  every mutation (``recalculate``).
- A wishlist is a set of products: adding a present product is a no-op.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel

ZERO = Decimal("0.00")


class Cart(BaseModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cart",
    )
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)

    class Meta:
        db_table = "carts"

    def recalculate(self) -> None:
        """Recompute totals from the current lines and persist them."""
        subtotal = sum((item.line_total for item in self.items.all()), ZERO)
        self.subtotal = subtotal
        self.total = subtotal
        self.save(update_fields=["subtotal", "total"])

    def __str__(self) -> str:
        return f"Cart({self.user_id}) {self.total}"


class CartItem(BaseModel):
    """A cart line; ``price`` is the product price when the line was added."""

    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.CASCADE,
        related_name="cart_items",
    )
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=10, decimal_places=2)
    size_name = models.CharField(max_length=50, blank=True, default="")
    size_price = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    vase_name = models.CharField(max_length=50, blank=True, default="")
    vase_price = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    personal_note = models.TextField(blank=True, default="")

    class Meta:
        db_table = "cart_items"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "product"], name="cart_items_unique_product"
            ),
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="cart_items_quantity_positive",
            ),
        ]

    @property
    def line_total(self) -> Decimal:
        return (self.price + self.size_price + self.vase_price) * self.quantity

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity}"


class Wishlist(BaseModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wishlist",
    )
    products = models.ManyToManyField(
        "products.Product",
        related_name="wishlisted_by",
        blank=True,
    )

    class Meta:
        db_table = "wishlists"

    def contains(self, product_id: Any) -> bool:
        return self.products.filter(pk=product_id).exists()

    def __str__(self) -> str:
        return f"Wishlist({self.user_id})"
