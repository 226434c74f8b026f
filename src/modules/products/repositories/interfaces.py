"""Product repository interface.

Read-side contract used by checkout, the wishlist and the inventory ledger.
Stock mutations never go through here: they belong to
``modules.inventory.ledger``.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def get_many(self, ids: Iterable[str]) -> Dict[str, "Product"]:
        """Return live products keyed by ``str(id)``; missing ids are skipped."""

    @abstractmethod
    def has_stock(self, id: str, quantity: int) -> bool:
        """Check whether ``stock >= quantity`` right now (advisory only)."""
