"""Product catalogue entry with its stock counter.

Business rules implemented:
- Price must be greater than zero.
- ``stock`` never goes below zero (unsigned column plus a CHECK constraint).
- ``is_available`` and ``is_low_stock`` are derived from ``stock`` on every
  read, so they cannot drift from the counter.
- ``stock`` is written only by ``modules.inventory.ledger``.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel
from modules.products.exceptions import InvalidModifier

logger = structlog.get_logger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 10


class Product(SoftDeleteModel):
    """A bouquet or arrangement that can be ordered.

    ``sizes`` and ``vases`` list the optional modifiers the product offers,
    each as ``{"name": str, "price": str}``.  Checkout and the wishlist
    transfer resolve modifier prices from here, never from the client.
    """

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(
        default=DEFAULT_LOW_STOCK_THRESHOLD
    )
    sizes = models.JSONField(default=list, blank=True)
    vases = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(price__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                check=models.Q(stock__gte=0),
                name="products_stock_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Derived inventory flags
    # ------------------------------------------------------------------

    @property
    def is_available(self) -> bool:
        return self.stock > 0

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    @staticmethod
    def _find_option(options: List[Dict[str, Any]], name: str) -> Optional[Decimal]:
        for option in options or []:
            if option.get("name") == name:
                return Decimal(str(option.get("price", "0")))
        return None

    def size_price(self, name: Optional[str]) -> Decimal:
        """Price of the size called *name*; ``0`` when no size was picked."""
        if not name:
            return Decimal("0.00")
        price = self._find_option(self.sizes, name)
        if price is None:
            raise InvalidModifier(f"Size '{name}' is not offered for {self.name}.")
        return price

    def vase_price(self, name: Optional[str]) -> Decimal:
        if not name:
            return Decimal("0.00")
        price = self._find_option(self.vases, name)
        if price is None:
            raise InvalidModifier(f"Vase '{name}' is not offered for {self.name}.")
        return price

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": "Stock cannot be negative."})

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product.created",
                product_id=str(self.id),
                name=self.name,
                stock=self.stock,
            )

    def __str__(self) -> str:
        return f"{self.name} ({self.stock} in stock)"
