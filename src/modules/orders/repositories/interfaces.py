"""Order repository interface.

Extends ``IRepository[Order]`` with what the Order aggregate needs: atomic
creation with line items, status history and idempotency-key look-up.
Status and payment-status writes are deliberately absent: they belong to
the state machine and the payment reconciler.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from django.db import models

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` holds the order columns plus ``items``, a list of dicts
        with the line snapshot fields.
        """

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        """Return a lazily evaluated queryset so views can filter and page it."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user: Any = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def get_by_external_order_id(self, external_order_id: str) -> Optional[Order]:
        """Retrieve an order by the payment gateway's order id."""
