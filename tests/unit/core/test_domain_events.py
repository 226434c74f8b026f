from __future__ import annotations

import dataclasses
import json
from decimal import Decimal
from uuid import uuid4

import pytest

from modules.orders.events import OrderPlaced, OrderStatusChanged
from modules.payments.events import PaymentRefunded

pytestmark = pytest.mark.unit


class TestDomainEvents:
    def test_event_name_is_class_name(self):
        event = OrderPlaced(aggregate_id=uuid4(), order_number="FLW-1", total=Decimal("1.00"))

        assert event.event_name == "OrderPlaced"
        assert event.topic == "orders"

    def test_events_are_immutable(self):
        event = OrderPlaced(aggregate_id=uuid4(), order_number="FLW-1", total=Decimal("1.00"))

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.order_number = "FLW-2"

    def test_payload_is_json_serialisable(self):
        aggregate_id = uuid4()
        event = PaymentRefunded(
            aggregate_id=aggregate_id,
            order_number="FLW-1",
            amount=Decimal("50.00"),
            refund_amount=Decimal("50.00"),
            payment_status="partially_refunded",
        )

        payload = event.to_payload()
        json.dumps(payload)

        assert payload["aggregate_id"] == str(aggregate_id)
        assert payload["amount"] == "50.00"
        assert payload["event_name"] == "PaymentRefunded"

    def test_status_change_defaults(self):
        event = OrderStatusChanged(
            aggregate_id=uuid4(),
            order_number="FLW-1",
            old_status="pending",
            new_status="confirmed",
        )

        assert event.tracking_number is None
        assert event.notes == ""
