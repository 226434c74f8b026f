"""Notification events raised by the payment reconciler."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class PaymentEvent(DomainEvent):
    order_number: str

    topic = "payments"


@dataclass(frozen=True, kw_only=True)
class PaymentConfirmed(PaymentEvent):
    external_payment_id: str
    amount: Decimal
    source: str


@dataclass(frozen=True, kw_only=True)
class PaymentFailed(PaymentEvent):
    reason: str


@dataclass(frozen=True, kw_only=True)
class PaymentRefunded(PaymentEvent):
    amount: Decimal
    refund_amount: Decimal
    payment_status: str
