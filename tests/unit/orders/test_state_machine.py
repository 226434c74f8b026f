"""Unit tests for OrderStateMachine.

Covers:
- Valid and invalid transitions.
- Lifecycle timestamps written once.
- History rows on every transition.
- Stock restoration on cancel, at most once per order.
- Compare-and-swap conflicts.
- Notifications queued, and notifier failures never failing a transition.
- Bulk transitions with per-order failures.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import Mock
from uuid import uuid4

import pytest
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.core.notifier import Notifier
from modules.inventory.ledger import InventoryLedger
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import InvalidTransition, StatusConflict
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.state_machine import OrderStateMachine

pytestmark = pytest.mark.unit


@pytest.fixture()
def notifier():
    return Mock(spec=Notifier)


@pytest.fixture()
def machine(notifier):
    return OrderStateMachine(inventory=InventoryLedger(), notifier=notifier)


def _walk(machine, order, *targets):
    for target in targets:
        order = machine.transition(order, target)
    return order


class TestTransitions:
    def test_full_lifecycle(self, machine, make_order):
        order = _walk(
            machine,
            make_order(),
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        )

        assert order.status == OrderStatus.DELIVERED
        assert order.confirmed_at is not None
        assert order.shipped_at is not None
        assert order.delivered_at is not None
        assert order.cancelled_at is None

    def test_skipping_a_state_is_rejected(self, machine, make_order):
        order = make_order()

        with pytest.raises(InvalidTransition):
            machine.transition(order, OrderStatus.SHIPPED)

        assert Order.objects.get(pk=order.pk).status == OrderStatus.PENDING

    def test_unknown_status_is_rejected(self, machine, make_order):
        with pytest.raises(InvalidTransition, match="Unknown order status"):
            machine.transition(make_order(), "payment_failed")

    def test_terminal_state_has_no_exit(self, machine, make_order):
        order = machine.transition(make_order(), OrderStatus.CANCELLED)

        with pytest.raises(InvalidTransition):
            machine.transition(order, OrderStatus.CONFIRMED)

    def test_tracking_number_stored(self, machine, make_order):
        order = _walk(machine, make_order(), OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

        order = machine.transition(order, OrderStatus.SHIPPED, tracking_number="TRK-1")

        assert order.tracking_number == "TRK-1"


class TestTimestamps:
    def test_existing_timestamp_not_overwritten(self, machine, make_order):
        earlier = timezone.now() - timedelta(days=2)
        order = make_order(confirmed_at=earlier)

        order = machine.transition(order, OrderStatus.CONFIRMED)

        assert order.confirmed_at == earlier

    def test_processing_has_no_timestamp(self, machine, make_order):
        order = _walk(machine, make_order(), OrderStatus.CONFIRMED)
        confirmed_at = order.confirmed_at

        order = machine.transition(order, OrderStatus.PROCESSING)

        assert order.confirmed_at == confirmed_at


class TestHistory:
    def test_each_transition_appends_a_row(self, machine, make_order, staff):
        order = make_order()
        machine.transition(order, OrderStatus.CONFIRMED, notes="Paid", actor=staff)

        rows = list(OrderStatusHistory.objects.filter(order=order))
        assert len(rows) == 1
        assert rows[0].old_status == OrderStatus.PENDING
        assert rows[0].new_status == OrderStatus.CONFIRMED
        assert rows[0].notes == "Paid"
        assert rows[0].user == staff

    def test_system_transition_has_no_actor(self, machine, make_order):
        order = make_order()
        machine.transition(order, OrderStatus.CONFIRMED)

        assert OrderStatusHistory.objects.get(order=order).user is None


class TestCancellationRestock:
    def test_two_bouquet_order_restocked_once(self, machine, make_order, product):
        order = make_order()
        assert order.total == 213

        order = machine.transition(order, OrderStatus.CONFIRMED)
        InventoryLedger().commit_for_order(order)
        product.refresh_from_db()
        assert product.stock == 8

        order = machine.transition(order, OrderStatus.CANCELLED)
        product.refresh_from_db()
        assert product.stock == 10
        assert order.inventory_restored is True
        assert order.cancelled_at is not None

        with pytest.raises(InvalidTransition):
            machine.transition(order, OrderStatus.CANCELLED)
        product.refresh_from_db()
        assert product.stock == 10

    def test_cancel_before_payment_leaves_stock(self, machine, make_order, product):
        order = machine.transition(make_order(), OrderStatus.CANCELLED)

        product.refresh_from_db()
        assert product.stock == 10
        assert order.inventory_restored is False


class TestCompareAndSwap:
    def test_stale_order_raises_conflict(self, machine, make_order):
        order = make_order()
        stale = Order.objects.get(pk=order.pk)
        machine.transition(order, OrderStatus.CONFIRMED)

        with pytest.raises(StatusConflict):
            machine.transition(stale, OrderStatus.CANCELLED)

        assert Order.objects.get(pk=order.pk).status == OrderStatus.CONFIRMED

    def test_stale_cancel_does_not_restock_twice(self, machine, make_order, product):
        order = machine.transition(make_order(), OrderStatus.CONFIRMED)
        InventoryLedger().commit_for_order(order)
        stale = Order.objects.get(pk=order.pk)

        machine.transition(order, OrderStatus.CANCELLED)
        with pytest.raises(StatusConflict):
            machine.transition(stale, OrderStatus.CANCELLED)

        product.refresh_from_db()
        assert product.stock == 10


class TestNotifications:
    def test_status_change_is_queued(self, machine, notifier, make_order, customer):
        machine.transition(make_order(), OrderStatus.CONFIRMED)

        notifier.enqueue.assert_called_once()
        event = notifier.enqueue.call_args.args[0]
        assert event.event_name == "OrderStatusChanged"
        assert event.old_status == OrderStatus.PENDING
        assert event.new_status == OrderStatus.CONFIRMED
        assert notifier.enqueue.call_args.kwargs["recipient"] == customer.email

    def test_notify_false_skips_notification(self, machine, notifier, make_order):
        machine.transition(make_order(), OrderStatus.CONFIRMED, notify=False)

        notifier.enqueue.assert_not_called()

    def test_outbox_failure_does_not_fail_transition(self, make_order, monkeypatch):
        def broken_create(*args, **kwargs):
            raise RuntimeError("outbox unavailable")

        monkeypatch.setattr(OutboxEvent.objects, "create", broken_create)
        machine = OrderStateMachine(notifier=Notifier())

        order = machine.transition(make_order(), OrderStatus.CONFIRMED)

        assert order.status == OrderStatus.CONFIRMED
        assert Order.objects.get(pk=order.pk).status == OrderStatus.CONFIRMED


class TestBulkTransition:
    def test_partial_failures_are_reported(self, machine, make_order, staff):
        pending = make_order()
        delivered = make_order(status=OrderStatus.DELIVERED)
        missing = uuid4()

        report = machine.bulk_transition(
            [pending.pk, delivered.pk, missing], OrderStatus.CONFIRMED, actor=staff
        )

        assert report.updated == 1
        assert report.succeeded == [str(pending.pk)]
        failed = {row["id"]: row["reason"] for row in report.failed}
        assert set(failed) == {str(delivered.pk), str(missing)}
        assert "Cannot transition" in failed[str(delivered.pk)]
        assert Order.objects.get(pk=pending.pk).status == OrderStatus.CONFIRMED

    def test_tracking_numbers_applied_per_order(self, machine, make_order):
        first = make_order(status=OrderStatus.PROCESSING)
        second = make_order(status=OrderStatus.PROCESSING)

        machine.bulk_transition(
            [first.pk, second.pk],
            OrderStatus.SHIPPED,
            tracking_numbers={str(first.pk): "TRK-A"},
        )

        assert Order.objects.get(pk=first.pk).tracking_number == "TRK-A"
        assert Order.objects.get(pk=second.pk).tracking_number == ""
