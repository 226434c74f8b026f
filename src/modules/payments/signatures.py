"""HMAC-SHA256 signatures used by the payment gateway."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional, Union

import structlog

from modules.payments.exceptions import InvalidSignature

logger = structlog.get_logger(__name__)


def compute_signature(secret: str, message: Union[str, bytes]) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def payment_message(external_order_id: str, external_payment_id: str) -> str:
    return f"{external_order_id}|{external_payment_id}"


def verify_signature(
    secret: str, message: Union[str, bytes], signature: Optional[str]
) -> None:
    """Raise ``InvalidSignature`` unless *signature* is the HMAC of *message*.

    An unset secret rejects every signature.
    """
    if not secret:
        logger.error("payment.signature_secret_missing")
        raise InvalidSignature("Payment signature secret is not configured.")
    if not signature:
        raise InvalidSignature("Missing payment signature.")
    expected = compute_signature(secret, message)
    if not hmac.compare_digest(expected, signature.strip()):
        logger.warning("payment.signature_mismatch")
        raise InvalidSignature()
