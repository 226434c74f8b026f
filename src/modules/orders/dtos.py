"""Order DTOs for the Service Layer.

Framework-agnostic contracts between the API layer (DRF serializers) and
the services, built with Pydantic v2.  All DTOs are immutable
(``frozen=True``).

- ``CreateOrderItemDTO``: one checkout line.
- ``ShippingAddressDTO``: delivery address snapshot.
- ``CreateOrderDTO``: checkout request.
- ``UpdateStatusDTO`` / ``BulkUpdateStatusDTO``: admin status changes.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.orders.constants import PaymentMethod, ShippingMethod

# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """A checkout line.  Prices are resolved from the catalogue, never sent."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int
    size: Optional[str] = None
    vase: Optional[str] = None
    personal_note: str = ""

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class ShippingAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str = Field(min_length=1)
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = ""
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)
    phone: str = ""


class CreateOrderDTO(BaseModel):
    """Immutable checkout request.

    Validates:
    - ``items`` must contain at least one line.
    - ``discount`` cannot be negative.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    items: List[CreateOrderItemDTO]
    shipping_address: ShippingAddressDTO
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    payment_method: PaymentMethod = PaymentMethod.CARD
    discount: Decimal = Decimal("0.00")
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("discount")
    @classmethod
    def discount_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Discount cannot be negative.")
        return v


# ---------------------------------------------------------------------------
# Status changes (admin)
# ---------------------------------------------------------------------------


class UpdateStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    tracking_number: Optional[str] = None
    notes: str = ""
    notify_customer: bool = True


class BulkUpdateStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_ids: List[UUID]
    status: str
    tracking_numbers: Dict[str, str] = Field(default_factory=dict)
    notes: str = ""

    @field_validator("order_ids")
    @classmethod
    def order_ids_must_not_be_empty(cls, v: List[UUID]) -> List[UUID]:
        if not v:
            raise ValueError("At least one order id is required.")
        return v
