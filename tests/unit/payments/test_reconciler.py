"""Unit tests for PaymentReconciler with a mocked gateway.

Covers:
- Gateway order creation and reuse.
- Client verification and webhook delivery converging on one confirmation.
- Duplicate and out-of-order deliveries.
- Failed payments.
- Partial and full refunds.
- Gateway timeouts leaving local state untouched.
"""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import Mock

import pytest
from django.conf import settings

from modules.core.models import OutboxEvent
from modules.inventory.exceptions import InsufficientStock
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.exceptions import OrderAccessDenied
from modules.orders.models import Order, OrderStatusHistory
from modules.payments.exceptions import (
    GatewayError,
    GatewayOutcomeUnknown,
    InvalidSignature,
    InvalidWebhookPayload,
    OrderNotPayable,
    PaymentMismatch,
    RefundNotAllowed,
)
from modules.payments.gateway import RazorpayGateway
from modules.payments.services import PaymentReconciler
from modules.payments.signatures import compute_signature, payment_message
from modules.products.models import Product

pytestmark = pytest.mark.unit

EXT_ORDER = "order_EXT1"
EXT_PAYMENT = "pay_EXT1"


@pytest.fixture()
def gateway():
    gw = Mock(spec=RazorpayGateway)
    gw.create_order.return_value = {"id": EXT_ORDER, "amount": 21300, "currency": "INR"}
    gw.refund.return_value = {"id": "rfnd_1", "amount": 5000, "status": "processed"}
    gw.fetch_payment.return_value = {
        "id": EXT_PAYMENT,
        "status": "captured",
        "amount": 21300,
        "currency": "INR",
        "method": "card",
    }
    return gw


@pytest.fixture()
def reconciler(gateway):
    return PaymentReconciler(gateway=gateway)


@pytest.fixture()
def awaiting_payment(make_order):
    return make_order(external_order_id=EXT_ORDER)


@pytest.fixture()
def paid_order(make_order):
    return make_order(
        status=OrderStatus.CONFIRMED,
        payment_status=PaymentStatus.COMPLETED,
        external_order_id=EXT_ORDER,
        external_payment_id=EXT_PAYMENT,
    )


def _client_signature(ext_order=EXT_ORDER, ext_payment=EXT_PAYMENT):
    return compute_signature(
        settings.RAZORPAY_KEY_SECRET, payment_message(ext_order, ext_payment)
    )


def _webhook(event="payment.captured", ext_order=EXT_ORDER, ext_payment=EXT_PAYMENT, **entity):
    body = json.dumps(
        {
            "event": event,
            "payload": {
                "payment": {
                    "entity": {"id": ext_payment, "order_id": ext_order, **entity}
                }
            },
        }
    ).encode()
    return body, compute_signature(settings.RAZORPAY_WEBHOOK_SECRET, body)


def _outbox(event_type):
    return OutboxEvent.objects.filter(event_type=event_type).count()


class TestCreateGatewayOrder:
    def test_attaches_external_order(self, reconciler, gateway, make_order, customer):
        order = make_order()

        handle = reconciler.create_gateway_order(order.pk, Decimal("213.00"), None, customer)

        assert handle["externalOrderId"] == EXT_ORDER
        assert handle["amount"] == Decimal("213.00")
        assert handle["currency"] == settings.DEFAULT_CURRENCY
        assert handle["keyId"] == settings.RAZORPAY_KEY_ID
        assert Order.objects.get(pk=order.pk).external_order_id == EXT_ORDER
        gateway.create_order.assert_called_once()
        assert gateway.create_order.call_args.kwargs["receipt"] == order.order_number

    def test_second_call_reuses_external_order(self, reconciler, gateway, make_order, customer):
        order = make_order()
        reconciler.create_gateway_order(order.pk, Decimal("213.00"), "INR", customer)

        handle = reconciler.create_gateway_order(order.pk, Decimal("213.00"), "INR", customer)

        assert handle["externalOrderId"] == EXT_ORDER
        assert gateway.create_order.call_count == 1

    def test_amount_must_match_total(self, reconciler, gateway, make_order, customer):
        with pytest.raises(PaymentMismatch):
            reconciler.create_gateway_order(
                make_order().pk, Decimal("200.00"), "INR", customer
            )
        gateway.create_order.assert_not_called()

    def test_cancelled_order_not_payable(self, reconciler, make_order, customer):
        order = make_order(status=OrderStatus.CANCELLED)

        with pytest.raises(OrderNotPayable):
            reconciler.create_gateway_order(order.pk, Decimal("213.00"), "INR", customer)

    def test_paid_order_not_payable(self, reconciler, paid_order, customer):
        with pytest.raises(OrderNotPayable):
            reconciler.create_gateway_order(
                paid_order.pk, Decimal("213.00"), "INR", customer
            )

    def test_other_user_denied(self, reconciler, make_order, other_customer):
        with pytest.raises(OrderAccessDenied):
            reconciler.create_gateway_order(
                make_order().pk, Decimal("213.00"), "INR", other_customer
            )

    def test_gateway_timeout_leaves_order_untouched(self, reconciler, gateway, make_order, customer):
        gateway.create_order.side_effect = GatewayOutcomeUnknown()
        order = make_order()

        with pytest.raises(GatewayOutcomeUnknown):
            reconciler.create_gateway_order(order.pk, Decimal("213.00"), "INR", customer)

        assert Order.objects.get(pk=order.pk).external_order_id is None


class TestVerify:
    def test_confirms_order_and_commits_stock(self, reconciler, awaiting_payment, customer, product):
        order, applied = reconciler.verify(
            EXT_ORDER, EXT_PAYMENT, _client_signature(), awaiting_payment.pk, customer
        )

        assert applied is True
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.status == OrderStatus.CONFIRMED
        assert order.external_payment_id == EXT_PAYMENT
        assert order.paid_at is not None
        assert order.confirmed_at is not None
        assert order.stock_committed is True
        product.refresh_from_db()
        assert product.stock == 8
        assert OrderStatusHistory.objects.get(order=order).notes == (
            "Payment confirmed via verify"
        )
        assert _outbox("PaymentConfirmed") == 1
        assert _outbox("OrderStatusChanged") == 0

    def test_bad_signature_changes_nothing(self, reconciler, awaiting_payment, customer, product):
        with pytest.raises(InvalidSignature):
            reconciler.verify(
                EXT_ORDER, EXT_PAYMENT, "0" * 64, awaiting_payment.pk, customer
            )

        order = Order.objects.get(pk=awaiting_payment.pk)
        assert order.payment_status == PaymentStatus.PENDING
        product.refresh_from_db()
        assert product.stock == 10

    def test_signature_for_other_payment_rejected(self, reconciler, awaiting_payment, customer):
        with pytest.raises(InvalidSignature):
            reconciler.verify(
                EXT_ORDER,
                EXT_PAYMENT,
                _client_signature(ext_payment="pay_OTHER"),
                awaiting_payment.pk,
                customer,
            )

    def test_order_id_must_match_external_order(self, reconciler, awaiting_payment, make_order, customer):
        other = make_order()

        with pytest.raises(PaymentMismatch):
            reconciler.verify(EXT_ORDER, EXT_PAYMENT, _client_signature(), other.pk, customer)

    def test_repeated_verify_is_noop(self, reconciler, awaiting_payment, customer, product):
        reconciler.verify(EXT_ORDER, EXT_PAYMENT, _client_signature(), awaiting_payment.pk, customer)

        _, applied = reconciler.verify(
            EXT_ORDER, EXT_PAYMENT, _client_signature(), awaiting_payment.pk, customer
        )

        assert applied is False
        product.refresh_from_db()
        assert product.stock == 8
        assert _outbox("PaymentConfirmed") == 1


class TestWebhook:
    def test_duplicate_capture_applied_once(self, reconciler, awaiting_payment, product):
        body, signature = _webhook()

        assert reconciler.handle_webhook(body, signature) == "confirmed"
        assert reconciler.handle_webhook(body, signature) == "duplicate"

        order = Order.objects.get(pk=awaiting_payment.pk)
        assert order.payment_status == PaymentStatus.COMPLETED
        product.refresh_from_db()
        assert product.stock == 8
        assert _outbox("PaymentConfirmed") == 1

    def test_webhook_after_verify_is_duplicate(self, reconciler, awaiting_payment, customer, product):
        reconciler.verify(EXT_ORDER, EXT_PAYMENT, _client_signature(), awaiting_payment.pk, customer)

        body, signature = _webhook()
        assert reconciler.handle_webhook(body, signature) == "duplicate"

        product.refresh_from_db()
        assert product.stock == 8

    def test_verify_after_webhook_is_noop(self, reconciler, awaiting_payment, customer, product):
        reconciler.handle_webhook(*_webhook())

        _, applied = reconciler.verify(
            EXT_ORDER, EXT_PAYMENT, _client_signature(), awaiting_payment.pk, customer
        )

        assert applied is False
        product.refresh_from_db()
        assert product.stock == 8

    def test_order_paid_event(self, reconciler, awaiting_payment):
        body = json.dumps(
            {
                "event": "order.paid",
                "payload": {
                    "order": {"entity": {"id": EXT_ORDER}},
                    "payment": {"entity": {"id": EXT_PAYMENT}},
                },
            }
        ).encode()
        signature = compute_signature(settings.RAZORPAY_WEBHOOK_SECRET, body)

        assert reconciler.handle_webhook(body, signature) == "confirmed"
        assert Order.objects.get(pk=awaiting_payment.pk).external_payment_id == EXT_PAYMENT

    def test_invalid_signature_rejected(self, reconciler, awaiting_payment):
        body, _ = _webhook()

        with pytest.raises(InvalidSignature):
            reconciler.handle_webhook(body, "deadbeef")
        assert Order.objects.get(pk=awaiting_payment.pk).payment_status == PaymentStatus.PENDING

    def test_signature_over_modified_body_rejected(self, reconciler, awaiting_payment):
        body, signature = _webhook()

        with pytest.raises(InvalidSignature):
            reconciler.handle_webhook(body + b" ", signature)

    def test_malformed_body(self, reconciler):
        body = b"not json"
        signature = compute_signature(settings.RAZORPAY_WEBHOOK_SECRET, body)

        with pytest.raises(InvalidWebhookPayload):
            reconciler.handle_webhook(body, signature)

    @pytest.mark.parametrize(
        "payload",
        [
            {"payment": "x"},
            {"payment": {"entity": ["pay_1"]}},
            "not an object",
        ],
    )
    def test_payload_of_wrong_shape(self, reconciler, payload):
        body = json.dumps({"event": "payment.captured", "payload": payload}).encode()
        signature = compute_signature(settings.RAZORPAY_WEBHOOK_SECRET, body)

        with pytest.raises(InvalidWebhookPayload):
            reconciler.handle_webhook(body, signature)

    def test_unknown_event_ignored(self, reconciler, awaiting_payment):
        assert reconciler.handle_webhook(*_webhook(event="refund.created")) == "ignored"
        assert Order.objects.get(pk=awaiting_payment.pk).payment_status == PaymentStatus.PENDING

    def test_unknown_order_ignored(self, reconciler):
        assert reconciler.handle_webhook(*_webhook(ext_order="order_UNKNOWN")) == "ignored"

    def test_failed_payment(self, reconciler, awaiting_payment, product):
        result = reconciler.handle_webhook(
            *_webhook(event="payment.failed", error_description="Card declined")
        )

        assert result == "failed"
        order = Order.objects.get(pk=awaiting_payment.pk)
        assert order.payment_status == PaymentStatus.FAILED
        assert order.payment_failure_reason == "Card declined"
        assert order.status == OrderStatus.PENDING
        product.refresh_from_db()
        assert product.stock == 10
        assert _outbox("PaymentFailed") == 1

    def test_capture_after_failure_is_noop(self, reconciler, awaiting_payment, product):
        reconciler.handle_webhook(*_webhook(event="payment.failed"))

        assert reconciler.handle_webhook(*_webhook()) == "duplicate"
        assert Order.objects.get(pk=awaiting_payment.pk).payment_status == PaymentStatus.FAILED
        product.refresh_from_db()
        assert product.stock == 10

    def test_capture_for_cancelled_order_recorded_without_stock(self, reconciler, make_order, product):
        order = make_order(status=OrderStatus.CANCELLED, external_order_id=EXT_ORDER)

        assert reconciler.handle_webhook(*_webhook()) == "confirmed"

        order = Order.objects.get(pk=order.pk)
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.status == OrderStatus.CANCELLED
        assert order.stock_committed is False
        product.refresh_from_db()
        assert product.stock == 10
        assert _outbox("PaymentConfirmed") == 0

    def test_insufficient_stock_rolls_back_confirmation(self, reconciler, awaiting_payment, product):
        Product.objects.filter(pk=product.pk).update(stock=1)

        with pytest.raises(InsufficientStock):
            reconciler.handle_webhook(*_webhook())

        order = Order.objects.get(pk=awaiting_payment.pk)
        assert order.payment_status == PaymentStatus.PENDING
        assert order.status == OrderStatus.PENDING
        assert order.stock_committed is False
        product.refresh_from_db()
        assert product.stock == 1


class TestRefund:
    def test_partial_then_full(self, reconciler, gateway, paid_order, staff, product):
        order, refund = reconciler.refund(paid_order.pk, Decimal("50.00"), "damaged", staff)

        assert refund["refundId"] == "rfnd_1"
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED
        assert order.refund_amount == Decimal("50.00")
        assert order.refunded_at is not None

        gateway.refund.return_value = {"id": "rfnd_2", "amount": 16300, "status": "processed"}
        order, refund = reconciler.refund(paid_order.pk, actor=staff)

        assert refund["amount"] == Decimal("163.00")
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.refund_amount == Decimal("213.00")
        assert gateway.refund.call_args.args[1] == Decimal("163.00")
        product.refresh_from_db()
        assert product.stock == 10
        assert _outbox("PaymentRefunded") == 2

    def test_full_refund_by_default(self, reconciler, gateway, paid_order, staff):
        gateway.refund.return_value = {"id": "rfnd_1", "amount": 21300, "status": "processed"}

        order, _ = reconciler.refund(paid_order.pk, actor=staff)

        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.refund_amount == order.total

    def test_amount_above_balance_rejected(self, reconciler, gateway, paid_order, staff):
        with pytest.raises(RefundNotAllowed, match="exceeds"):
            reconciler.refund(paid_order.pk, Decimal("213.01"), actor=staff)
        gateway.refund.assert_not_called()

    def test_zero_amount_rejected(self, reconciler, paid_order, staff):
        with pytest.raises(RefundNotAllowed):
            reconciler.refund(paid_order.pk, Decimal("0"), actor=staff)

    def test_unpaid_order_rejected(self, reconciler, gateway, awaiting_payment, staff):
        with pytest.raises(RefundNotAllowed):
            reconciler.refund(awaiting_payment.pk, actor=staff)
        gateway.refund.assert_not_called()

    def test_fully_refunded_order_rejected(self, reconciler, make_order, staff):
        order = make_order(
            payment_status=PaymentStatus.REFUNDED,
            external_payment_id=EXT_PAYMENT,
            refund_amount=Decimal("213.00"),
        )

        with pytest.raises(RefundNotAllowed):
            reconciler.refund(order.pk, actor=staff)

    def test_gateway_timeout_records_nothing(self, reconciler, gateway, paid_order, staff):
        gateway.refund.side_effect = GatewayOutcomeUnknown()

        with pytest.raises(GatewayOutcomeUnknown):
            reconciler.refund(paid_order.pk, Decimal("50.00"), actor=staff)

        order = Order.objects.get(pk=paid_order.pk)
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.refund_amount == Decimal("0.00")
        assert _outbox("PaymentRefunded") == 0


class TestPaymentStatus:
    def test_includes_gateway_details(self, reconciler, paid_order, customer):
        data = reconciler.payment_status(paid_order.pk, customer)

        assert data["paymentStatus"] == PaymentStatus.COMPLETED
        assert data["orderStatus"] == OrderStatus.CONFIRMED
        assert data["paymentDetails"]["status"] == "captured"
        assert data["paymentDetails"]["amount"] == Decimal("213.00")

    def test_gateway_failure_degrades_to_local_state(self, reconciler, gateway, paid_order, customer):
        gateway.fetch_payment.side_effect = GatewayError()

        data = reconciler.payment_status(paid_order.pk, customer)

        assert data["paymentStatus"] == PaymentStatus.COMPLETED
        assert data["paymentDetails"] is None

    def test_other_user_denied(self, reconciler, paid_order, other_customer):
        with pytest.raises(OrderAccessDenied):
            reconciler.payment_status(paid_order.pk, other_customer)
