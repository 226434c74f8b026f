from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from modules.orders.constants import PaymentMethod, ShippingMethod
from modules.orders.dtos import (
    BulkUpdateStatusDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    ShippingAddressDTO,
)

pytestmark = pytest.mark.unit

ADDRESS = {
    "full_name": "Maria Silva",
    "street": "12 Garden Lane",
    "city": "Springfield",
    "zip_code": "62701",
    "country": "US",
}


class TestCreateOrderItemDTO:
    def test_valid(self):
        dto = CreateOrderItemDTO(product_id=uuid4(), quantity=2, size="Large")

        assert dto.quantity == 2
        assert dto.vase is None

    @pytest.mark.parametrize("qty", [0, -1])
    def test_quantity_must_be_positive(self, qty):
        with pytest.raises(ValidationError, match="Quantity must be at least 1"):
            CreateOrderItemDTO(product_id=uuid4(), quantity=qty)

    def test_is_frozen(self):
        dto = CreateOrderItemDTO(product_id=uuid4(), quantity=1)

        with pytest.raises(ValidationError):
            dto.quantity = 5


class TestCreateOrderDTO:
    def _build(self, **overrides):
        data = {
            "user_id": 1,
            "items": [{"product_id": str(uuid4()), "quantity": 1}],
            "shipping_address": ADDRESS,
        }
        data.update(overrides)
        return CreateOrderDTO(**data)

    def test_defaults(self):
        dto = self._build()

        assert dto.shipping_method == ShippingMethod.STANDARD
        assert dto.payment_method == PaymentMethod.CARD
        assert dto.discount == Decimal("0.00")
        assert dto.idempotency_key is None

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError, match="at least one item"):
            self._build(items=[])

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError, match="Discount cannot be negative"):
            self._build(discount="-1.00")

    def test_unknown_shipping_method_rejected(self):
        with pytest.raises(ValidationError):
            self._build(shipping_method="drone")

    def test_address_requires_city(self):
        with pytest.raises(ValidationError):
            ShippingAddressDTO(**{**ADDRESS, "city": ""})


class TestBulkUpdateStatusDTO:
    def test_requires_ids(self):
        with pytest.raises(ValidationError, match="At least one order id"):
            BulkUpdateStatusDTO(order_ids=[], status="shipped")
