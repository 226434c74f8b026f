"""Order, OrderItem and OrderStatusHistory models.

Rules implemented here:
- ``total == subtotal + shipping_fee + tax - discount``, recomputed on every
  save; negative components or a negative total are rejected.
- ``order_number`` is generated on first save (``FLW-YYYYMMDD-XXXXXX``).
- The owner FK uses PROTECT so financial history is never orphaned.
- Line items snapshot product name, price and modifier prices at checkout.
- ``status`` and ``payment_status`` are only ever written through
  conditional updates issued by ``OrderStateMachine`` and
  ``PaymentReconciler``; the model itself never changes them.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    CENTS,
    ORDER_NUMBER_MAX_RETRIES,
    ORDER_NUMBER_PREFIX,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from modules.orders.exceptions import InvalidMoneyAmount

logger = structlog.get_logger(__name__)

MONEY_FIELDS = ("subtotal", "shipping_fee", "tax", "discount")


def _money(**kwargs: Any) -> models.DecimalField:
    return models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00"), **kwargs
    )


class Order(BaseModel):
    """Order aggregate root.

    ``idempotency_key`` is only set for orders created through the API with
    an ``Idempotency-Key`` header.  ``external_order_id`` is the payment
    gateway's handle, unique once assigned.
    """

    order_number: models.CharField = models.CharField(
        max_length=24, unique=True, editable=False
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    shipping_address: models.JSONField = models.JSONField(default=dict)
    shipping_method: models.CharField = models.CharField(
        max_length=20,
        choices=ShippingMethod.choices,
        default=ShippingMethod.STANDARD,
    )

    # Payment
    payment_method: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    external_order_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, unique=True, null=True, blank=True
    )
    external_payment_id: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    external_signature: models.CharField = models.CharField(
        max_length=128, blank=True, default=""
    )
    payment_failure_reason: models.TextField = models.TextField(
        blank=True, default=""
    )
    refund_amount = _money()

    # Money
    subtotal = _money()
    shipping_fee = _money()
    tax = _money()
    discount = _money()
    total = _money(editable=False)

    # Lifecycle timestamps, each written at most once
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    tracking_number: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    # Inventory guards, claimed by conditional updates in the ledger
    stock_committed = models.BooleanField(default=False)
    inventory_restored = models.BooleanField(default=False)

    idempotency_key: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(total__gte=0),
                name="orders_total_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    @property
    def refundable_balance(self) -> Decimal:
        return max(self.total - self.refund_amount, Decimal("0.00"))

    # ------------------------------------------------------------------
    # Money
    # ------------------------------------------------------------------

    def compute_total(self) -> Decimal:
        """Return ``subtotal + shipping_fee + tax - discount`` to the cent.

        Raises:
            InvalidMoneyAmount: a component or the result is negative.
        """
        parts = {}
        for name in MONEY_FIELDS:
            value = Decimal(getattr(self, name) or 0).quantize(CENTS)
            if value < 0:
                raise InvalidMoneyAmount(f"{name} cannot be negative.")
            parts[name] = value
        total = (
            parts["subtotal"] + parts["shipping_fee"] + parts["tax"] - parts["discount"]
        )
        if total < 0:
            raise InvalidMoneyAmount("Order total cannot be negative.")
        return total

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.total = self.compute_total()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "total" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["total"]

        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status}/{self.payment_status})"


class OrderItem(BaseModel):
    """Immutable order line.

    ``line_total`` is ``(unit_price + size_price + vase_price) * quantity``,
    computed on save from the snapshot prices.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    product_name: models.CharField = models.CharField(max_length=100)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price = _money()
    size_name: models.CharField = models.CharField(
        max_length=50, blank=True, default=""
    )
    size_price = _money()
    vase_name: models.CharField = models.CharField(
        max_length=50, blank=True, default=""
    )
    vase_price = _money()
    personal_note: models.TextField = models.TextField(blank=True, default="")
    line_total = _money(editable=False)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    @property
    def unit_total(self) -> Decimal:
        return self.unit_price + self.size_price + self.vase_price

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.line_total = (self.unit_total * self.quantity).quantize(CENTS)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity} ({self.line_total})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail of status transitions.

    ``user`` is ``None`` when the system made the change (for example a
    payment webhook confirming the order).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id}: {self.old_status} -> {self.new_status}"
