"""Stock counter mutations.

Every change to ``Product.stock`` goes through ``InventoryLedger``.  Each
movement is a single conditional ``UPDATE`` evaluated by the database, so
two concurrent decrements can never both succeed against the same last unit
and the counter can never go negative.

Order-level operations are guarded by two durable flags on the order:

- ``stock_committed`` is claimed by ``commit_for_order`` before decrementing.
- ``inventory_restored`` is claimed by ``restore_for_order`` before
  incrementing, and only when stock was committed in the first place.

A second call of either operation finds its flag already claimed and does
nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Tuple

import structlog
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from modules.inventory.exceptions import InsufficientStock, InvalidQuantity
from modules.orders.models import Order, OrderItem
from modules.products.exceptions import ProductNotFound
from modules.products.models import Product

if TYPE_CHECKING:
    from uuid import UUID

logger = structlog.get_logger(__name__)


class InventoryLedger:
    # ------------------------------------------------------------------
    # Single-product movements
    # ------------------------------------------------------------------

    def decrement(self, product_id: Any, qty: int) -> None:
        """Take *qty* units off the product, all or nothing.

        Raises:
            InvalidQuantity: ``qty < 1``.
            ProductNotFound: no product with that id.
            InsufficientStock: fewer than *qty* units on hand.
        """
        if qty < 1:
            raise InvalidQuantity(f"Cannot decrement stock by {qty}.")

        updated = Product.objects.filter(pk=product_id, stock__gte=qty).update(
            stock=F("stock") - qty, updated_at=timezone.now()
        )
        if updated:
            logger.info(
                "inventory.decremented", product_id=str(product_id), quantity=qty
            )
            return

        product = Product.objects.filter(pk=product_id).only("name", "stock").first()
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found.")
        logger.warning(
            "inventory.insufficient_stock",
            product_id=str(product_id),
            requested=qty,
            available=product.stock,
        )
        raise InsufficientStock(
            f"Insufficient stock for {product.name}: "
            f"requested {qty}, available {product.stock}."
        )

    def increment(self, product_id: Any, qty: int) -> None:
        if qty < 1:
            raise InvalidQuantity(f"Cannot increment stock by {qty}.")

        updated = Product.objects.filter(pk=product_id).update(
            stock=F("stock") + qty, updated_at=timezone.now()
        )
        if not updated:
            raise ProductNotFound(f"Product {product_id} not found.")
        logger.info("inventory.incremented", product_id=str(product_id), quantity=qty)

    # ------------------------------------------------------------------
    # Order-level movements
    # ------------------------------------------------------------------

    @staticmethod
    def _quantities(order_id: UUID) -> List[Tuple[Any, int]]:
        """Units per product for an order, sorted by product id."""
        rows = (
            OrderItem.objects.filter(order_id=order_id)
            .values("product_id")
            .annotate(total=Sum("quantity"))
            .order_by("product_id")
        )
        return [(row["product_id"], row["total"]) for row in rows]

    @transaction.atomic
    def commit_for_order(self, order: Order) -> bool:
        """Decrement stock for every line of *order* exactly once.

        Returns ``False`` when stock was already committed.  Any
        ``InsufficientStock`` rolls back the flag and every decrement made so
        far.
        """
        log = logger.bind(order_id=str(order.pk))
        claimed = Order.objects.filter(pk=order.pk, stock_committed=False).update(
            stock_committed=True, updated_at=timezone.now()
        )
        if not claimed:
            log.info("inventory.commit_skipped")
            return False

        quantities = self._quantities(order.pk)
        for product_id, qty in quantities:
            self.decrement(product_id, qty)

        order.stock_committed = True
        log.info("inventory.committed", products=len(quantities))
        return True

    @transaction.atomic
    def restore_for_order(self, order: Order) -> bool:
        """Give back the units taken by ``commit_for_order``, at most once.

        Returns ``False`` when nothing was committed or stock was already
        restored.
        """
        log = logger.bind(order_id=str(order.pk))
        claimed = Order.objects.filter(
            pk=order.pk, stock_committed=True, inventory_restored=False
        ).update(inventory_restored=True, updated_at=timezone.now())
        if not claimed:
            log.info("inventory.restore_skipped")
            return False

        quantities = self._quantities(order.pk)
        for product_id, qty in quantities:
            self.increment(product_id, qty)

        order.inventory_restored = True
        log.info("inventory.restored", products=len(quantities))
        return True


ledger = InventoryLedger()
