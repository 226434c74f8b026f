"""Payment domain exceptions."""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class InvalidSignature(DomainError):
    """The HMAC sent by the client or the gateway does not match."""

    default_message = "Invalid payment signature."


class PaymentMismatch(DomainError):
    """The gateway order does not belong to the order named in the request."""

    default_message = "Payment does not match the order."


class RefundNotAllowed(DomainError):
    """The order has no captured payment or nothing left to refund."""

    default_message = "Refund is not allowed for this order."


class GatewayError(DomainError):
    """The payment gateway was unreachable or rejected the request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment gateway error."


class GatewayOutcomeUnknown(GatewayError):
    """The request may have reached the gateway but no answer came back.

    Nothing was changed locally; the webhook or a later status check
    settles the outcome.
    """

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Payment gateway timed out; outcome unknown."


class OrderNotPayable(DomainError):
    """The order is cancelled or its payment is no longer pending."""

    default_message = "Order is not awaiting payment."


class InvalidWebhookPayload(DomainError):
    """A correctly signed webhook body is not a JSON event."""

    default_message = "Malformed webhook payload."
