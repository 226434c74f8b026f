"""Generic repository contract.

Services talk to persistence through subclasses of ``IRepository`` so the
ORM stays behind one seam.  Concrete implementations live next to each
module as ``*DjangoRepository``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base generic repository contract.

    ``T`` is the aggregate managed by the repository (``Order``,
    ``Product``, ``Wishlist``...).
    """

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[T]:
        """Return the entity with primary key *id*, or ``None``."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[T]:
        """List entities matching optional ORM look-ups."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist (create or update) an entity."""
