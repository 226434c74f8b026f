"""Unit tests for the Order model: totals, numbering and transition table."""

from __future__ import annotations

import re
from decimal import Decimal

import pytest

from modules.orders.constants import TERMINAL_STATES, VALID_TRANSITIONS, OrderStatus
from modules.orders.exceptions import InvalidMoneyAmount
from modules.orders.models import Order

pytestmark = pytest.mark.unit


class TestOrderTotals:
    def test_total_is_subtotal_plus_shipping_plus_tax_minus_discount(self, make_order):
        order = make_order()

        assert order.subtotal == Decimal("200.00")
        assert order.total == Decimal("213.00")

    def test_line_total_includes_modifier_prices(self, make_order):
        order = make_order()
        item = order.items.first()
        item.size_price = Decimal("20.00")
        item.vase_price = Decimal("15.00")
        item.save()

        assert item.unit_total == Decimal("135.00")
        assert item.line_total == Decimal("270.00")

    def test_total_recomputed_on_partial_save(self, make_order):
        order = make_order()
        order.discount = Decimal("13.00")
        order.save(update_fields=["discount"])
        order.refresh_from_db()

        assert order.total == Decimal("205.00")

    def test_negative_component_rejected(self, customer):
        order = Order(
            user=customer,
            subtotal=Decimal("10.00"),
            shipping_fee=Decimal("-1.00"),
        )
        with pytest.raises(InvalidMoneyAmount):
            order.save()

    def test_discount_larger_than_total_rejected(self, customer):
        order = Order(
            user=customer,
            subtotal=Decimal("10.00"),
            discount=Decimal("50.00"),
        )
        with pytest.raises(InvalidMoneyAmount):
            order.save()

    def test_refundable_balance(self, make_order):
        order = make_order(refund_amount=Decimal("13.00"))

        assert order.refundable_balance == Decimal("200.00")


class TestOrderNumber:
    def test_generated_on_first_save(self, make_order):
        order = make_order()

        assert re.fullmatch(r"FLW-\d{8}-[0-9A-F]{6}", order.order_number)

    def test_unique_across_orders(self, make_order):
        numbers = {make_order().order_number for _ in range(5)}

        assert len(numbers) == 5


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
        ],
    )
    def test_allowed(self, current, target):
        assert Order(status=current).can_transition_to(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.CONFIRMED, OrderStatus.PENDING),
            (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
        ],
    )
    def test_rejected(self, current, target):
        assert not Order(status=current).can_transition_to(target)

    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == set()
            assert Order(status=state).is_terminal
