"""Notification events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderEvent(DomainEvent):
    order_number: str

    topic = "orders"


@dataclass(frozen=True, kw_only=True)
class OrderPlaced(OrderEvent):
    """Raised once a checkout has been persisted."""

    total: Decimal


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(OrderEvent):
    old_status: str
    new_status: str
    tracking_number: Optional[str] = None
    notes: str = ""
