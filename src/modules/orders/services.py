"""Order service layer (use cases).

Orchestrates checkout, reads and the caller-facing status operations.
Write operations are atomic; the service defines the unit-of-work
boundary.  Status changes themselves are delegated to
``OrderStateMachine``.

Rules enforced:
- Checkout stock checks are advisory: nothing is reserved or decremented
  until the payment is confirmed.
- Prices and modifier prices come from the catalogue, never from the client.
- ``tax = subtotal * TAX_RATE`` rounded half-up to the cent.
- Only the owner or an administrator may read or cancel an order.
- Customers may cancel only while the order is pending or confirmed.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog
from django.conf import settings
from django.db import IntegrityError, models, transaction

from modules.core.notifier import Notifier, notifier as default_notifier
from modules.inventory.exceptions import InsufficientStock
from modules.orders.constants import (
    CENTS,
    CUSTOMER_CANCELLABLE_STATES,
    OrderStatus,
)
from modules.orders.events import OrderPlaced
from modules.orders.exceptions import (
    InvalidTransition,
    OrderAccessDenied,
    OrderNotFound,
)
from modules.orders.state_machine import BulkTransitionReport, OrderStateMachine
from modules.products.exceptions import ProductNotFound
from modules.shopping.services import CartService

if TYPE_CHECKING:
    from modules.orders.dtos import (
        BulkUpdateStatusDTO,
        CreateOrderDTO,
        UpdateStatusDTO,
    )
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


def is_admin(user: Any) -> bool:
    return bool(getattr(user, "is_staff", False))


def ensure_owner_or_admin(order: Order, user: Any) -> None:
    if is_admin(user) or order.user_id == getattr(user, "pk", None):
        return
    logger.warning(
        "order.access_denied",
        order_id=str(order.pk),
        user_id=getattr(user, "pk", None),
    )
    raise OrderAccessDenied()


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and collaborators via constructor injection.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        state_machine: Optional[OrderStateMachine] = None,
        notifier: Optional[Notifier] = None,
        cart_service: Optional[CartService] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._state_machine = state_machine or OrderStateMachine()
        self._notifier = notifier or default_notifier
        self._carts = cart_service or CartService()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO, user: Any) -> Tuple[Order, bool]:
        """Persist a checkout.  Returns ``(order, created)``.

        ``created`` is ``False`` when the idempotency key was already used,
        in which case the original order is returned untouched.

        Raises:
            ProductNotFound: a product does not exist.
            InsufficientStock: a product does not currently have enough
                units (advisory check, nothing is reserved).
            InvalidModifier: a size or vase is not offered by the product.
        """
        log = logger.bind(user_id=dto.user_id)
        log.info("order.creation_started", item_count=len(dto.items))

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                ensure_owner_or_admin(existing, user)
                log.info("order.idempotency_hit", order_id=str(existing.id))
                return existing, False

        products = self._product_repo.get_many(str(i.product_id) for i in dto.items)

        requested: Dict[str, int] = defaultdict(int)
        for item in dto.items:
            requested[str(item.product_id)] += item.quantity

        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None:
                raise ProductNotFound(f"Product {product_id} not found.")
            if product.stock < quantity:
                log.warning(
                    "order.insufficient_stock",
                    product_id=product_id,
                    requested=quantity,
                    available=product.stock,
                )
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}: "
                    f"requested {quantity}, available {product.stock}."
                )

        lines: List[Dict[str, Any]] = []
        subtotal = Decimal("0.00")
        for item in dto.items:
            product = products[str(item.product_id)]
            size_price = product.size_price(item.size)
            vase_price = product.vase_price(item.vase)
            lines.append(
                {
                    "product": product,
                    "product_name": product.name,
                    "quantity": item.quantity,
                    "unit_price": product.price,
                    "size_name": item.size or "",
                    "size_price": size_price,
                    "vase_name": item.vase or "",
                    "vase_price": vase_price,
                    "personal_note": item.personal_note,
                }
            )
            subtotal += (product.price + size_price + vase_price) * item.quantity

        subtotal = subtotal.quantize(CENTS)
        tax = (subtotal * settings.TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
        shipping_fee = settings.SHIPPING_FEES[str(dto.shipping_method)]

        try:
            with transaction.atomic():
                order = self._order_repo.create(
                    {
                        "user_id": dto.user_id,
                        "shipping_address": dto.shipping_address.model_dump(),
                        "shipping_method": str(dto.shipping_method),
                        "payment_method": str(dto.payment_method),
                        "subtotal": subtotal,
                        "shipping_fee": shipping_fee,
                        "tax": tax,
                        "discount": dto.discount,
                        "notes": dto.notes,
                        "idempotency_key": dto.idempotency_key,
                        "items": lines,
                    }
                )
        except IntegrityError:
            # A concurrent request with the same key won the race.
            if not dto.idempotency_key:
                raise
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing is None:
                raise
            ensure_owner_or_admin(existing, user)
            log.info("order.idempotency_race", order_id=str(existing.id))
            return existing, False

        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order placed",
            user=user,
        )
        self._carts.clear(user)

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total=str(order.total),
        )
        self._notifier.enqueue(
            OrderPlaced(
                aggregate_id=order.id,
                order_number=order.order_number,
                total=order.total,
            ),
            recipient=getattr(user, "email", ""),
        )
        return self._order_repo.get_by_id(order.id) or order, True

    def update_status(self, order_id: Any, dto: UpdateStatusDTO, actor: Any) -> Order:
        """Admin status change through the state machine."""
        order = self._get(order_id)
        self._state_machine.transition(
            order,
            dto.status,
            notes=dto.notes,
            tracking_number=dto.tracking_number,
            actor=actor,
            notify=dto.notify_customer,
        )
        return self._get(order_id)

    def bulk_update_status(
        self, dto: BulkUpdateStatusDTO, actor: Any
    ) -> BulkTransitionReport:
        return self._state_machine.bulk_transition(
            dto.order_ids,
            dto.status,
            notes=dto.notes,
            tracking_numbers=dto.tracking_numbers,
            actor=actor,
        )

    def cancel_order(self, order_id: Any, user: Any, notes: str = "") -> Order:
        """Cancel an order on behalf of its owner or an administrator.

        Raises:
            OrderNotFound: order does not exist.
            OrderAccessDenied: caller is neither owner nor admin.
            InvalidTransition: the order is past ``confirmed``.
        """
        order = self._get(order_id)
        ensure_owner_or_admin(order, user)
        if order.status not in CUSTOMER_CANCELLABLE_STATES:
            logger.warning(
                "order.cancel_not_allowed",
                order_id=str(order.pk),
                current_status=order.status,
            )
            raise InvalidTransition(f"Cannot cancel order in status {order.status}.")

        self._state_machine.transition(
            order,
            OrderStatus.CANCELLED,
            notes=notes or "Order cancelled",
            actor=user,
        )
        return self._get(order_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get(self, order_id: Any) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_order(self, order_id: Any, user: Any) -> Order:
        order = self._get(order_id)
        ensure_owner_or_admin(order, user)
        return order

    def list_orders(self, user: Any) -> "models.QuerySet[Order]":
        """Admins see every order; everybody else only their own."""
        if is_admin(user):
            return self._order_repo.list()
        return self._order_repo.list({"user_id": user.pk})
