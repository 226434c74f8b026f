"""Single choke point for order status changes.

``OrderStateMachine.transition`` is the only code that writes
``Order.status``.  The write is a compare-and-swap keyed on the status the
caller observed: if another request moved the order in the meantime the
update matches no row and ``StatusConflict`` is raised instead of applying
side effects twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.db.models import F, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from modules.core.exceptions import DomainError
from modules.core.notifier import Notifier, notifier as default_notifier
from modules.inventory.ledger import InventoryLedger, ledger as default_ledger
from modules.orders.constants import STATUS_TIMESTAMP_FIELDS, OrderStatus
from modules.orders.events import OrderStatusChanged
from modules.orders.exceptions import InvalidTransition, OrderNotFound, StatusConflict
from modules.orders.models import Order, OrderStatusHistory

logger = structlog.get_logger(__name__)


@dataclass
class BulkTransitionReport:
    succeeded: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return len(self.succeeded)


def _actor_or_none(actor: Any) -> Any:
    return actor if getattr(actor, "is_authenticated", False) else None


class OrderStateMachine:
    """Validate and apply order status transitions.

    Side effects of a successful transition, in order:
    1. the matching lifecycle timestamp is set if it was still empty;
    2. a status history row is appended;
    3. on ``cancelled``, committed stock is restored through the ledger
       (at most once per order);
    4. an ``OrderStatusChanged`` notification is queued (best effort).
    """

    def __init__(
        self,
        inventory: Optional[InventoryLedger] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._ledger = inventory or default_ledger
        self._notifier = notifier or default_notifier

    @transaction.atomic
    def transition(
        self,
        order: Order,
        target: str,
        *,
        notes: str = "",
        tracking_number: Optional[str] = None,
        actor: Any = None,
        notify: bool = True,
    ) -> Order:
        """Move *order* to *target*.

        Raises:
            InvalidTransition: *target* is unknown or not allowed from the
                order's current status.
            StatusConflict: the order no longer holds the status it was
                loaded with.
        """
        current = order.status
        log = logger.bind(
            order_id=str(order.pk), current_status=current, new_status=target
        )

        if target not in OrderStatus.values:
            log.warning("order.unknown_status")
            raise InvalidTransition(f"Unknown order status '{target}'.")
        if not order.can_transition_to(target):
            log.warning("order.invalid_transition")
            raise InvalidTransition(f"Cannot transition from {current} to {target}.")

        now = timezone.now()
        changes: Dict[str, Any] = {"status": target, "updated_at": now}
        timestamp_field = STATUS_TIMESTAMP_FIELDS.get(target)
        if timestamp_field:
            changes[timestamp_field] = Coalesce(
                F(timestamp_field),
                Value(now),
                output_field=models.DateTimeField(),
            )
        if tracking_number:
            changes["tracking_number"] = tracking_number

        applied = Order.objects.filter(pk=order.pk, status=current).update(**changes)
        if not applied:
            log.warning("order.status_conflict")
            raise StatusConflict(
                f"Order {order.order_number} is no longer {current}; "
                "reload and retry."
            )

        order.refresh_from_db()
        OrderStatusHistory.objects.create(
            order=order,
            old_status=current,
            new_status=target,
            user=_actor_or_none(actor),
            notes=notes or "",
        )

        if target == OrderStatus.CANCELLED:
            restored = self._ledger.restore_for_order(order)
            log = log.bind(inventory_restored=restored)

        log.info("order.status_updated")

        if notify:
            self._notifier.enqueue(
                OrderStatusChanged(
                    aggregate_id=order.pk,
                    order_number=order.order_number,
                    old_status=current,
                    new_status=target,
                    tracking_number=order.tracking_number or None,
                    notes=notes or "",
                ),
                recipient=order.user.email,
            )
        return order

    def bulk_transition(
        self,
        order_ids: Iterable[Any],
        target: str,
        *,
        notes: str = "",
        tracking_numbers: Optional[Dict[str, str]] = None,
        actor: Any = None,
        notify: bool = True,
    ) -> BulkTransitionReport:
        """Apply *target* to each order independently.

        Every order runs in its own transaction, so one failure never
        rolls back or stops the others.
        """
        tracking_numbers = tracking_numbers or {}
        report = BulkTransitionReport()

        for order_id in order_ids:
            key = str(order_id)
            try:
                with transaction.atomic():
                    order = Order.objects.select_related("user").filter(pk=key).first()
                    if order is None:
                        raise OrderNotFound(f"Order {key} not found.")
                    self.transition(
                        order,
                        target,
                        notes=notes,
                        tracking_number=tracking_numbers.get(key),
                        actor=actor,
                        notify=notify,
                    )
            except DomainError as exc:
                report.failed.append({"id": key, "reason": exc.message})
                continue
            except (ValueError, ValidationError):
                report.failed.append({"id": key, "reason": "Invalid order id."})
                continue
            report.succeeded.append(key)

        logger.info(
            "order.bulk_status_updated",
            new_status=target,
            updated=report.updated,
            failed=len(report.failed),
        )
        return report
