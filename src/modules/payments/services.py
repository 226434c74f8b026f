"""Payment reconciliation.

Payment confirmation reaches the shop twice: the client calls ``verify``
right after checkout and the gateway pushes a signed webhook, possibly more
than once and in any order relative to ``verify``.  Both paths authenticate
their input with an HMAC before reading it and then converge on
``_confirm_payment``, whose first step is a compare-and-swap of
``payment_status`` from ``pending`` to ``completed``.  Only the caller that
wins that swap confirms the order, commits stock and queues the
confirmation; every other delivery is a successful no-op.

Gateway calls never run inside a database transaction and a gateway error
never mutates local payment or inventory state.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

import structlog
from django.conf import settings
from django.db import models, transaction
from django.db.models import Case, F, Value, When
from django.db.models.functions import Coalesce
from django.utils import timezone

from modules.core.notifier import Notifier, notifier as default_notifier
from modules.inventory.exceptions import InsufficientStock
from modules.inventory.ledger import InventoryLedger, ledger as default_ledger
from modules.orders.constants import (
    CENTS,
    REFUNDABLE_PAYMENT_STATES,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order
from modules.orders.repositories import IOrderRepository, OrderDjangoRepository
from modules.orders.services import ensure_owner_or_admin
from modules.orders.state_machine import OrderStateMachine
from modules.payments.events import PaymentConfirmed, PaymentFailed, PaymentRefunded
from modules.payments.exceptions import (
    GatewayError,
    InvalidWebhookPayload,
    OrderNotPayable,
    PaymentMismatch,
    RefundNotAllowed,
)
from modules.payments.gateway import RazorpayGateway, from_minor_units
from modules.payments.signatures import payment_message, verify_signature

logger = structlog.get_logger(__name__)

CONFIRMING_EVENTS = {"payment.captured", "order.paid"}
FAILING_EVENTS = {"payment.failed"}

# Webhook outcomes
CONFIRMED = "confirmed"
FAILED = "failed"
DUPLICATE = "duplicate"
IGNORED = "ignored"


def _object(value: Any) -> Dict[str, Any]:
    """Return *value* as a JSON object; missing means empty."""
    value = value or {}
    if not isinstance(value, dict):
        raise InvalidWebhookPayload()
    return value


def _paid_at(now):
    return Coalesce(F("paid_at"), Value(now), output_field=models.DateTimeField())


class PaymentReconciler:
    def __init__(
        self,
        gateway: Optional[RazorpayGateway] = None,
        state_machine: Optional[OrderStateMachine] = None,
        inventory: Optional[InventoryLedger] = None,
        notifier: Optional[Notifier] = None,
        order_repository: Optional[IOrderRepository] = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = inventory or default_ledger
        self._notifier = notifier or default_notifier
        self._state_machine = state_machine or OrderStateMachine(
            inventory=self._ledger, notifier=self._notifier
        )
        self._orders = order_repository or OrderDjangoRepository()

    @property
    def gateway(self) -> RazorpayGateway:
        if self._gateway is None:
            self._gateway = RazorpayGateway()
        return self._gateway

    def _get_order(self, order_id: Any) -> Order:
        order = self._orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    # ------------------------------------------------------------------
    # Gateway order
    # ------------------------------------------------------------------

    def create_gateway_order(
        self,
        order_id: Any,
        amount: Decimal,
        currency: Optional[str],
        user: Any,
    ) -> Dict[str, Any]:
        """Open (or return the already opened) gateway order for *order_id*.

        Raises:
            OrderNotFound / OrderAccessDenied: unknown order or not the owner.
            OrderNotPayable: the order is cancelled or no longer pending payment.
            PaymentMismatch: *amount* differs from the order total.
            GatewayError: the gateway could not create the order.
        """
        order = self._get_order(order_id)
        ensure_owner_or_admin(order, user)
        currency = currency or settings.DEFAULT_CURRENCY
        log = logger.bind(order_id=str(order.pk), order_number=order.order_number)

        if (
            order.status == OrderStatus.CANCELLED
            or order.payment_status != PaymentStatus.PENDING
        ):
            raise OrderNotPayable()
        if Decimal(amount).quantize(CENTS) != order.total:
            log.warning("payment.amount_mismatch", amount=str(amount), total=str(order.total))
            raise PaymentMismatch(
                f"Amount {amount} does not match the order total {order.total}."
            )

        if not order.external_order_id:
            data = self.gateway.create_order(
                order.total,
                currency,
                receipt=order.order_number,
                notes={"orderId": str(order.pk)},
            )
            stored = Order.objects.filter(
                pk=order.pk, external_order_id__isnull=True
            ).update(external_order_id=data["id"], updated_at=timezone.now())
            if not stored:
                log.warning("payment.gateway_order_race", discarded=data["id"])
            order.refresh_from_db()
            log.info("payment.gateway_order_attached", external_order_id=order.external_order_id)

        return {
            "externalOrderId": order.external_order_id,
            "amount": order.total,
            "currency": currency,
            "keyId": settings.RAZORPAY_KEY_ID,
            "orderId": str(order.pk),
            "orderNumber": order.order_number,
        }

    # ------------------------------------------------------------------
    # Entry point 1: client verification
    # ------------------------------------------------------------------

    def verify(
        self,
        external_order_id: str,
        external_payment_id: str,
        external_signature: str,
        order_id: Any,
        user: Any,
    ) -> Tuple[Order, bool]:
        """Confirm a payment reported by the client.

        Returns ``(order, applied)``; ``applied`` is ``False`` when the
        payment had already been reconciled.
        """
        verify_signature(
            settings.RAZORPAY_KEY_SECRET,
            payment_message(external_order_id, external_payment_id),
            external_signature,
        )
        order = self._orders.get_by_external_order_id(external_order_id)
        if order is None or str(order.pk) != str(order_id):
            logger.warning(
                "payment.verify_mismatch",
                external_order_id=external_order_id,
                order_id=str(order_id),
            )
            raise PaymentMismatch()
        ensure_owner_or_admin(order, user)

        applied = self._confirm_payment(
            order.pk, external_payment_id, external_signature, source="verify"
        )
        return self._get_order(order.pk), applied

    # ------------------------------------------------------------------
    # Entry point 2: gateway webhook
    # ------------------------------------------------------------------

    def handle_webhook(self, raw_body: bytes, signature_header: Optional[str]) -> str:
        """Apply a signed gateway event; returns what happened.

        Unknown events and events for unknown orders are acknowledged and
        ignored so the gateway stops redelivering them.
        """
        verify_signature(settings.RAZORPAY_WEBHOOK_SECRET, raw_body, signature_header)
        try:
            event = json.loads(raw_body)
        except ValueError as exc:
            raise InvalidWebhookPayload() from exc
        if not isinstance(event, dict):
            raise InvalidWebhookPayload()

        name = event.get("event", "")
        payload = _object(event.get("payload"))
        payment = _object(_object(payload.get("payment")).get("entity"))
        log = logger.bind(webhook_event=name, external_payment_id=payment.get("id"))

        if name not in CONFIRMING_EVENTS | FAILING_EVENTS:
            log.info("payment.webhook_ignored")
            return IGNORED

        external_order_id = payment.get("order_id")
        if name == "order.paid":
            order_entity = _object(_object(payload.get("order")).get("entity"))
            external_order_id = order_entity.get("id") or external_order_id

        order = self._orders.get_by_external_order_id(external_order_id or "")
        if order is None:
            log.warning("payment.webhook_unknown_order", external_order_id=external_order_id)
            return IGNORED

        if name in FAILING_EVENTS:
            reason = (
                payment.get("error_description")
                or payment.get("error_reason")
                or "Payment failed"
            )
            return FAILED if self._fail_payment(order.pk, reason) else DUPLICATE

        applied = self._confirm_payment(
            order.pk, payment.get("id") or "", "", source="webhook"
        )
        return CONFIRMED if applied else DUPLICATE

    # ------------------------------------------------------------------
    # Convergence
    # ------------------------------------------------------------------

    def _confirm_payment(
        self,
        order_pk: Any,
        external_payment_id: str,
        external_signature: str,
        source: str,
    ) -> bool:
        log = logger.bind(order_id=str(order_pk), source=source)
        now = timezone.now()
        changes: Dict[str, Any] = {
            "payment_status": PaymentStatus.COMPLETED,
            "paid_at": _paid_at(now),
            "updated_at": now,
        }
        if external_payment_id:
            changes["external_payment_id"] = external_payment_id
        if external_signature:
            changes["external_signature"] = external_signature

        try:
            with transaction.atomic():
                applied = Order.objects.filter(
                    pk=order_pk, payment_status=PaymentStatus.PENDING
                ).update(**changes)
                if not applied:
                    log.info("payment.confirmation_duplicate")
                    return False

                order = Order.objects.select_related("user").get(pk=order_pk)
                if order.status == OrderStatus.CANCELLED:
                    log.warning("payment.captured_for_cancelled_order")
                    return True

                if order.status == OrderStatus.PENDING:
                    self._state_machine.transition(
                        order,
                        OrderStatus.CONFIRMED,
                        notes=f"Payment confirmed via {source}",
                        notify=False,
                    )
                self._ledger.commit_for_order(order)
        except InsufficientStock:
            log.error("payment.confirmation_rolled_back", reason="insufficient_stock")
            raise

        log.info("payment.confirmed", order_number=order.order_number)
        self._notifier.enqueue(
            PaymentConfirmed(
                aggregate_id=order.pk,
                order_number=order.order_number,
                external_payment_id=external_payment_id or order.external_payment_id,
                amount=order.total,
                source=source,
            ),
            recipient=order.user.email,
        )
        return True

    @transaction.atomic
    def _fail_payment(self, order_pk: Any, reason: str) -> bool:
        log = logger.bind(order_id=str(order_pk))
        applied = Order.objects.filter(
            pk=order_pk, payment_status=PaymentStatus.PENDING
        ).update(
            payment_status=PaymentStatus.FAILED,
            payment_failure_reason=reason,
            updated_at=timezone.now(),
        )
        if not applied:
            log.info("payment.failure_duplicate")
            return False

        order = Order.objects.select_related("user").get(pk=order_pk)
        log.warning("payment.failed", reason=reason)
        self._notifier.enqueue(
            PaymentFailed(
                aggregate_id=order.pk,
                order_number=order.order_number,
                reason=reason,
            ),
            recipient=order.user.email,
        )
        return True

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def refund(
        self,
        order_id: Any,
        amount: Optional[Decimal] = None,
        reason: str = "",
        actor: Any = None,
    ) -> Tuple[Order, Dict[str, Any]]:
        """Refund part or all of a captured payment.

        The gateway is called first; the local record only changes once the
        gateway accepted the refund.  Stock is not touched.

        Raises:
            RefundNotAllowed: nothing captured, nothing left to refund, or
                *amount* exceeds the remaining balance.
            GatewayError / GatewayOutcomeUnknown: the gateway call failed.
        """
        order = self._get_order(order_id)
        log = logger.bind(order_id=str(order.pk), order_number=order.order_number)

        if (
            not order.external_payment_id
            or order.payment_status not in REFUNDABLE_PAYMENT_STATES
        ):
            raise RefundNotAllowed("No captured payment to refund for this order.")

        balance = order.refundable_balance
        amount = balance if amount is None else Decimal(amount).quantize(CENTS)
        if amount <= 0:
            raise RefundNotAllowed("Refund amount must be greater than zero.")
        if amount > balance:
            raise RefundNotAllowed(
                f"Refund amount {amount} exceeds the refundable balance {balance}."
            )

        refund = self.gateway.refund(
            order.external_payment_id,
            amount,
            notes={
                "orderId": str(order.pk),
                "adminId": str(getattr(actor, "pk", "") or ""),
                "reason": reason or "requested_by_customer",
            },
        )

        now = timezone.now()
        with transaction.atomic():
            recorded = Order.objects.filter(
                pk=order.pk,
                payment_status__in=REFUNDABLE_PAYMENT_STATES,
                refund_amount__lte=F("total") - amount,
            ).update(
                refund_amount=F("refund_amount") + amount,
                refunded_at=Coalesce(
                    F("refunded_at"), Value(now), output_field=models.DateTimeField()
                ),
                updated_at=now,
            )
            if not recorded:
                log.error(
                    "payment.refund_not_recorded",
                    refund_id=refund.get("id"),
                    amount=str(amount),
                )
                raise RefundNotAllowed(
                    f"Order changed while refund {refund.get('id')} was issued; "
                    "it needs manual reconciliation."
                )
            Order.objects.filter(pk=order.pk).update(
                payment_status=Case(
                    When(refund_amount__gte=F("total"), then=Value(PaymentStatus.REFUNDED)),
                    default=Value(PaymentStatus.PARTIALLY_REFUNDED),
                    output_field=models.CharField(),
                )
            )

        order = Order.objects.select_related("user").get(pk=order.pk)
        log.info(
            "payment.refunded",
            amount=str(amount),
            refund_amount=str(order.refund_amount),
            payment_status=order.payment_status,
        )
        self._notifier.enqueue(
            PaymentRefunded(
                aggregate_id=order.pk,
                order_number=order.order_number,
                amount=amount,
                refund_amount=order.refund_amount,
                payment_status=order.payment_status,
            ),
            recipient=order.user.email,
        )
        return order, {
            "refundId": refund.get("id"),
            "amount": from_minor_units(refund["amount"]) if "amount" in refund else amount,
            "status": refund.get("status"),
        }

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def payment_status(self, order_id: Any, user: Any) -> Dict[str, Any]:
        order = self._get_order(order_id)
        ensure_owner_or_admin(order, user)

        details = None
        if order.external_payment_id:
            try:
                payment = self.gateway.fetch_payment(order.external_payment_id)
            except GatewayError:
                logger.warning("payment.status_lookup_failed", order_id=str(order.pk))
            else:
                details = {
                    "id": payment.get("id"),
                    "status": payment.get("status"),
                    "amount": from_minor_units(payment.get("amount", 0)),
                    "currency": payment.get("currency"),
                    "method": payment.get("method"),
                }

        return {
            "orderId": str(order.pk),
            "orderNumber": order.order_number,
            "paymentStatus": order.payment_status,
            "orderStatus": order.status,
            "total": order.total,
            "refundAmount": order.refund_amount,
            "paidAt": order.paid_at,
            "paymentDetails": details,
        }
