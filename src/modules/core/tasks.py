"""Celery tasks that deliver queued notifications."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)

SUBJECTS = {
    "OrderPlaced": "We received your order",
    "OrderStatusChanged": "Your order status changed",
    "PaymentConfirmed": "Payment received",
    "PaymentFailed": "Payment failed",
    "PaymentRefunded": "Refund processed",
}


def _send(event: OutboxEvent) -> None:
    payload = event.payload or {}
    subject = SUBJECTS.get(event.event_type, event.event_type)
    order_number = payload.get("order_number")
    if order_number:
        subject = f"{subject} ({order_number})"
    body = "\n".join(
        f"{key}: {value}"
        for key, value in sorted(payload.items())
        if key not in {"event_id", "event_name"}
    )
    send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [event.recipient],
        fail_silently=False,
    )


def deliver_event(outbox_id: str) -> str:
    """Try to deliver one outbox row and return its resulting status.

    Raises nothing: delivery failures are recorded on the row, which ends in
    ``DEAD_LETTER`` once ``NOTIFICATION_MAX_RETRIES`` attempts have failed.
    """
    event = OutboxEvent.objects.filter(id=outbox_id).first()
    if event is None:
        logger.warning("notification.missing", outbox_id=outbox_id)
        return "MISSING"

    log = logger.bind(
        outbox_id=outbox_id,
        event_type=event.event_type,
        aggregate_id=event.aggregate_id,
    )
    if not event.is_deliverable:
        log.info("notification.skipped", status=event.status)
        return event.status

    if not event.recipient:
        log.warning("notification.no_recipient")
        event.mark_as_published()
        return event.status

    try:
        _send(event)
    except Exception as exc:
        event.mark_as_failed(str(exc), settings.NOTIFICATION_MAX_RETRIES)
        if event.status == EventStatus.DEAD_LETTER:
            log.error(
                "notification.dead_lettered",
                retry_count=event.retry_count,
                error=str(exc),
            )
        else:
            log.warning(
                "notification.delivery_failed",
                retry_count=event.retry_count,
                error=str(exc),
            )
        return event.status

    event.mark_as_published()
    log.info("notification.delivered")
    return event.status


@shared_task(bind=True, name="core.dispatch_notification", max_retries=None)
def dispatch_notification(self, outbox_id: str) -> str:
    status = deliver_event(outbox_id)
    if status == EventStatus.FAILED:
        raise self.retry(countdown=settings.NOTIFICATION_RETRY_DELAY)
    return status


@shared_task(name="core.flush_notifications")
def flush_notifications() -> int:
    """Re-dispatch outbox rows that are still waiting for delivery."""
    pending_ids = list(
        OutboxEvent.objects.filter(
            status__in=[EventStatus.PENDING, EventStatus.FAILED],
            retry_count__lt=settings.NOTIFICATION_MAX_RETRIES,
        ).values_list("id", flat=True)
    )
    for outbox_id in pending_ids:
        dispatch_notification.delay(str(outbox_id))
    logger.info("notification.flush_completed", dispatched=len(pending_ids))
    return len(pending_ids)
