"""Best-effort customer notifications.

``Notifier.enqueue`` writes the event into the ``outbox_events`` table inside
a savepoint and schedules the Celery dispatch once the surrounding
transaction commits.  A failure at any step is logged and swallowed: a
notification problem must never roll back or fail the business operation
that produced it.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class Notifier:
    def enqueue(
        self, event: DomainEvent, recipient: str = ""
    ) -> Optional[OutboxEvent]:
        log = logger.bind(
            event_type=event.event_name, aggregate_id=str(event.aggregate_id)
        )
        try:
            with transaction.atomic():
                outbox = OutboxEvent.objects.create(
                    event_type=event.event_name,
                    aggregate_id=str(event.aggregate_id),
                    payload=event.to_payload(),
                    recipient=recipient or "",
                    topic=event.topic,
                )
        except Exception:
            log.exception("notification.enqueue_failed")
            return None

        transaction.on_commit(lambda: _schedule_dispatch(str(outbox.id)))
        log.info("notification.enqueued", outbox_id=str(outbox.id))
        return outbox


def _schedule_dispatch(outbox_id: str) -> None:
    from modules.core.tasks import dispatch_notification

    try:
        dispatch_notification.delay(outbox_id)
    except Exception:
        # The periodic flush task picks the row up later.
        logger.exception("notification.schedule_failed", outbox_id=outbox_id)


notifier = Notifier()
